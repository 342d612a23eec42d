from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import firestore

from market_updater.errors import ConfigError, SinkError
from market_updater.services.market_storage import UpsertBatch

logger = logging.getLogger("market_updater.firestore")


class FirestoreDocumentStore:
    """DocumentStore backed by a shared google.cloud.firestore.AsyncClient."""

    def __init__(self, client: firestore.AsyncClient) -> None:
        self._client = client

    @property
    def client(self) -> firestore.AsyncClient:
        return self._client

    async def set_document(self, path: str, document: Dict[str, Any]) -> None:
        try:
            ref = self._client.document(path)
            await ref.set(document)
        except ValueError as exc:
            # rejected path, e.g. a symbol containing "/" or an empty symbol
            raise SinkError(f"set {path} failed: invalid document path: {exc}") from exc
        except GoogleAPIError as exc:
            raise SinkError(f"set {path} failed: {exc}") from exc

    async def commit_batch(self, batch: UpsertBatch) -> None:
        try:
            write_batch = self._client.batch()
            for path, document in batch:
                write_batch.set(self._client.document(path), document)
            await write_batch.commit()
        except ValueError as exc:
            raise SinkError(f"batch of {len(batch)} writes rejected: invalid document path: {exc}") from exc
        except GoogleAPIError as exc:
            raise SinkError(f"batch commit of {len(batch)} writes failed: {exc}") from exc

    async def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            snapshot = await self._client.document(path).get()
        except ValueError as exc:
            raise SinkError(f"get {path} failed: invalid document path: {exc}") from exc
        except GoogleAPIError as exc:
            raise SinkError(f"get {path} failed: {exc}") from exc
        return snapshot.to_dict() if snapshot.exists else None


def create_firestore_store(project_id: str) -> FirestoreDocumentStore:
    """Build the Firestore client once at startup. Any failure here is fatal."""
    try:
        client = firestore.AsyncClient(project=project_id)
    except (GoogleAuthError, GoogleAPIError, ValueError) as exc:
        raise ConfigError(f"failed to create firestore client for project {project_id!r}: {exc}") from exc

    logger.info("firestore client ready | project=%s", project_id)
    return FirestoreDocumentStore(client)
