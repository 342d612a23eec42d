# market_updater/jobs/pipeline.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from market_updater.config.settings import Settings
from market_updater.errors import FetchError
from market_updater.services.coinmarketcap import CmcConfig, fetch_listings
from market_updater.services.market_storage import DocumentStore, SinkReport, upsert_batch, upsert_each
from market_updater.services.normalizer import normalize

logger = logging.getLogger("market_updater.pipeline")


class PipelineKind(str, Enum):
    INDIVIDUAL = "individual"
    BATCH = "batch"


@dataclass(frozen=True)
class TickResult:
    kind: PipelineKind
    fetched: int = 0
    report: Optional[SinkReport] = None
    error: Optional[FetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and (self.report is None or self.report.ok)


async def run_tick(
    kind: PipelineKind,
    settings: Settings,
    store: DocumentStore,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> TickResult:
    """
    fetch -> normalize -> upsert, once.

    Fetch failures end the tick here (logged, returned in the result);
    write failures were already logged by the sink.
    """
    try:
        listings = await fetch_listings(CmcConfig.from_settings(settings), settings.CMC_LIMIT, transport=transport)
    except FetchError as e:
        logger.warning("fetch failed | %s | %s: %s", kind.value, type(e).__name__, e)
        return TickResult(kind=kind, error=e)

    records = normalize(listings, settings.CMC_CONVERT)

    if kind is PipelineKind.BATCH:
        report = await upsert_batch(store, settings.BATCH_COLLECTION, records)
    else:
        report = await upsert_each(store, settings.MARKET_COLLECTION, records)

    logger.info(
        "market info is updated | %s | collection=%s | written=%d | failed=%d",
        kind.value,
        report.collection,
        report.written,
        report.failed,
    )
    return TickResult(kind=kind, fetched=len(records), report=report)
