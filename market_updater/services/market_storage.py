from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

from market_updater.errors import SinkError
from market_updater.models.market import MarketRecord

logger = logging.getLogger("market_updater.storage")

Document = Dict[str, Any]


@dataclass
class UpsertBatch:
    """Ordered (key, document) writes staged for a single commit."""

    writes: List[Tuple[str, Document]] = field(default_factory=list)

    def set(self, key: str, document: Document) -> None:
        self.writes.append((key, document))

    def __len__(self) -> int:
        return len(self.writes)

    def __iter__(self) -> Iterator[Tuple[str, Document]]:
        return iter(self.writes)


class DocumentStore(Protocol):
    """
    Anything that can upsert a document at a path and commit a batch of upserts.
    Implementations raise SinkError when a write fails.
    """

    async def set_document(self, path: str, document: Document) -> None: ...

    async def commit_batch(self, batch: UpsertBatch) -> None: ...

    async def get_document(self, path: str) -> Optional[Document]: ...


@dataclass(frozen=True)
class SinkReport:
    mode: str
    collection: str
    attempted: int
    written: int
    failed: int

    @property
    def ok(self) -> bool:
        return self.failed == 0


def document_path(collection: str, symbol: str) -> str:
    return f"{collection}/{symbol}"


def project_document(record: MarketRecord) -> Document:
    """The stored subset: name, rank, symbol and the primary quote price when known."""
    doc: Document = {
        "name": record.name,
        "rank": record.rank,
        "symbol": record.symbol,
    }
    if record.price is not None:
        doc["price"] = record.price
    return doc


async def upsert_each(store: DocumentStore, collection: str, records: Sequence[MarketRecord]) -> SinkReport:
    """
    One set per record, in order. A failed write is logged and the next
    record is still attempted; there is no transaction across records.
    """
    written = 0
    failed = 0

    for record in records:
        path = document_path(collection, record.symbol)
        try:
            await store.set_document(path, project_document(record))
        except SinkError as e:
            failed += 1
            logger.error("write failed | %s | err=%s", path, e)
            continue

        written += 1
        logger.debug("add coin: %s", record.symbol)

    return SinkReport(mode="individual", collection=collection, attempted=len(records), written=written, failed=failed)


async def upsert_batch(store: DocumentStore, collection: str, records: Sequence[MarketRecord]) -> SinkReport:
    """Stage every record and commit once. Atomicity is whatever the store gives a batch."""
    if not records:
        return SinkReport(mode="batch", collection=collection, attempted=0, written=0, failed=0)

    batch = UpsertBatch()
    for record in records:
        batch.set(document_path(collection, record.symbol), project_document(record))
        logger.debug("add coin: %s", record.symbol)

    try:
        await store.commit_batch(batch)
    except SinkError as e:
        logger.error("batch commit failed | %s | writes=%d | err=%s", collection, len(batch), e)
        return SinkReport(mode="batch", collection=collection, attempted=len(batch), written=0, failed=len(batch))

    return SinkReport(mode="batch", collection=collection, attempted=len(batch), written=len(batch), failed=0)
