from __future__ import annotations

import pytest
from google.api_core.exceptions import ServiceUnavailable
from google.auth.credentials import AnonymousCredentials
from google.auth.exceptions import DefaultCredentialsError

from market_updater.db import firestore as firestore_module
from market_updater.db.firestore import FirestoreDocumentStore, create_firestore_store
from market_updater.errors import ConfigError, SinkError
from market_updater.models.market import MarketRecord
from market_updater.services.market_storage import UpsertBatch, upsert_batch, upsert_each


class _Snapshot:
    def __init__(self, data):
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class _DocRef:
    def __init__(self, client, path):
        self.client = client
        self.path = path

    async def set(self, data):
        if self.client.error:
            raise self.client.error
        self.client.docs[self.path] = dict(data)

    async def get(self):
        return _Snapshot(self.client.docs.get(self.path))


class _WriteBatch:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def set(self, ref, data):
        self.ops.append((ref.path, dict(data)))

    async def commit(self):
        if self.client.error:
            raise self.client.error
        self.client.commits.append([p for p, _ in self.ops])
        for path, data in self.ops:
            self.client.docs[path] = data


class _FakeAsyncClient:
    """Just enough of google.cloud.firestore.AsyncClient for the store binding."""

    def __init__(self):
        self.docs = {}
        self.commits = []
        self.error = None

    def document(self, path):
        parts = path.split("/")
        if len(parts) % 2 or not all(parts):
            raise ValueError("A document must have an even number of path elements")
        return _DocRef(self, path)

    def batch(self):
        return _WriteBatch(self)


@pytest.fixture()
def client():
    return _FakeAsyncClient()


RECORDS = [
    MarketRecord(id=1, name="Bitcoin", symbol="BTC", rank=1, price="65000.123456789012345678"),
    MarketRecord(id=1027, name="Ethereum", symbol="ETH", rank=2),
]


@pytest.mark.asyncio
async def test_set_and_get_document(client):
    store = FirestoreDocumentStore(client)

    await store.set_document("Market/BTC", {"name": "Bitcoin", "rank": 1, "symbol": "BTC"})

    assert await store.get_document("Market/BTC") == {"name": "Bitcoin", "rank": 1, "symbol": "BTC"}
    assert await store.get_document("Market/XYZ") is None


@pytest.mark.asyncio
async def test_commit_batch_is_one_commit(client):
    store = FirestoreDocumentStore(client)
    batch = UpsertBatch()
    batch.set("BatchMarket/BTC", {"symbol": "BTC"})
    batch.set("BatchMarket/ETH", {"symbol": "ETH"})

    await store.commit_batch(batch)

    assert client.commits == [["BatchMarket/BTC", "BatchMarket/ETH"]]


@pytest.mark.asyncio
async def test_api_errors_become_sink_errors(client):
    store = FirestoreDocumentStore(client)
    client.error = ServiceUnavailable("firestore down")

    with pytest.raises(SinkError):
        await store.set_document("Market/BTC", {"symbol": "BTC"})

    with pytest.raises(SinkError):
        await store.commit_batch(UpsertBatch([("BatchMarket/BTC", {"symbol": "BTC"})]))


@pytest.mark.asyncio
async def test_sinks_round_trip_price_text(client):
    store = FirestoreDocumentStore(client)

    await upsert_each(store, "Market", RECORDS)
    await upsert_batch(store, "BatchMarket", RECORDS)

    for collection in ("Market", "BatchMarket"):
        btc = await store.get_document(f"{collection}/BTC")
        eth = await store.get_document(f"{collection}/ETH")
        assert btc["price"] == "65000.123456789012345678"
        assert "price" not in eth


@pytest.mark.asyncio
async def test_sink_failures_are_swallowed_with_firestore_errors(client):
    store = FirestoreDocumentStore(client)
    client.error = ServiceUnavailable("firestore down")

    each = await upsert_each(store, "Market", RECORDS)
    batch = await upsert_batch(store, "BatchMarket", RECORDS)

    assert each.failed == 2 and batch.failed == 2
    assert client.docs == {}


def test_create_store_wraps_credential_errors(monkeypatch):
    def no_creds(project=None):
        raise DefaultCredentialsError("could not find default credentials")

    monkeypatch.setattr(firestore_module.firestore, "AsyncClient", no_creds)

    with pytest.raises(ConfigError, match="my-project"):
        create_firestore_store("my-project")


def test_create_store_builds_client(monkeypatch):
    seen = {}

    def fake_client(project=None):
        seen["project"] = project
        return _FakeAsyncClient()

    monkeypatch.setattr(firestore_module.firestore, "AsyncClient", fake_client)

    store = create_firestore_store("my-project")

    assert seen["project"] == "my-project"
    assert isinstance(store.client, _FakeAsyncClient)


SLASHED = [
    MarketRecord(id=9, name="Wrapped A", symbol="A/B", rank=9),
    MarketRecord(id=10, name="Cee", symbol="C", rank=10),
]


@pytest.mark.asyncio
async def test_bad_symbol_does_not_stop_later_records(client):
    store = FirestoreDocumentStore(client)

    report = await upsert_each(store, "Market", SLASHED)

    assert (report.attempted, report.written, report.failed) == (2, 1, 1)
    assert list(client.docs) == ["Market/C"]


@pytest.mark.asyncio
async def test_bad_symbol_fails_batch_as_sink_error(client):
    store = FirestoreDocumentStore(client)

    with pytest.raises(SinkError, match="invalid document path"):
        await store.commit_batch(UpsertBatch([("BatchMarket/A/B", {"symbol": "A/B"})]))

    report = await upsert_batch(store, "BatchMarket", SLASHED)
    assert report.failed == 2
    assert client.commits == [] and client.docs == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["Market/A/B", "Market/BTC/extra"])
async def test_real_client_rejected_paths_become_sink_errors(path):
    real = firestore_module.firestore.AsyncClient(project="test-project", credentials=AnonymousCredentials())
    store = FirestoreDocumentStore(real)

    with pytest.raises(SinkError, match="invalid document path"):
        await store.set_document(path, {"symbol": "x"})

    with pytest.raises(SinkError, match="invalid document path"):
        await store.commit_batch(UpsertBatch([(path, {"symbol": "x"})]))
