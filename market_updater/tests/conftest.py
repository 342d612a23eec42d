from __future__ import annotations

import json
from typing import Any, Dict, Optional

import httpx
import pytest

from market_updater.config.settings import Settings
from market_updater.errors import SinkError


class MemoryStore:
    """In-memory DocumentStore. Set fail_paths / fail_batch to simulate write errors."""

    def __init__(self) -> None:
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.set_calls: list[str] = []
        self.batches: list[list[tuple[str, Dict[str, Any]]]] = []
        self.fail_paths: set[str] = set()
        self.fail_batch = False

    async def set_document(self, path: str, document: Dict[str, Any]) -> None:
        self.set_calls.append(path)
        if path in self.fail_paths:
            raise SinkError(f"simulated failure for {path}")
        self.docs[path] = dict(document)

    async def commit_batch(self, batch) -> None:
        self.batches.append(list(batch))
        if self.fail_batch:
            raise SinkError("simulated batch failure")
        for path, document in batch:
            self.docs[path] = dict(document)

    async def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        doc = self.docs.get(path)
        return dict(doc) if doc is not None else None


def make_listing(id: int, name: str, symbol: str, rank: int, **usd: Any) -> Dict[str, Any]:
    item: Dict[str, Any] = {"id": id, "name": name, "symbol": symbol, "cmc_rank": rank}
    if usd:
        item["quote"] = {"USD": usd}
    return item


def make_envelope(data: Any = None, error_code: int = 0, error_message: Optional[str] = None) -> bytes:
    body: Dict[str, Any] = {"status": {"error_code": error_code, "error_message": error_message}}
    if data is not None:
        body["data"] = data
    return json.dumps(body).encode()


def make_mock_transport(body: bytes, status_code: int = 200, seen: Optional[list] = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, content=body, headers={"content-type": "application/json"})

    return httpx.MockTransport(handler)


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def settings() -> Settings:
    return Settings(CMC_API_KEY="test-key", PROJECT_ID="test-project")


@pytest.fixture()
def listing():
    return make_listing


@pytest.fixture()
def envelope():
    return make_envelope


@pytest.fixture()
def mock_transport():
    return make_mock_transport
