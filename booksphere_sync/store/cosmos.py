"""
Azure Cosmos DB document store.

Maps the hierarchical document paths onto a single container:

    {
        "id": "{doc_id}",
        "collection": "{collection path}",   # partition key
        "data": {...document fields...}
    }

All documents of a collection share one partition, so a collection
snapshot is a single-partition query. Cosmos DB has no push listeners for
point reads, so live subscriptions poll and emit a snapshot only when the
set of ``_etag`` values changes (the first poll always emits).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)
from azure.identity.aio import DefaultAzureCredential

from ..config import CosmosAuthMethod, StoreConfig
from ..exceptions import (
    AuthenticationError,
    DocumentExistsError,
    StorageConnectionError,
    SubscriptionError,
)
from ..paths import normalize_collection_path, split_document_path
from ..streams import ErrorHandler, Handler, SnapshotStream, Subscription
from .base import CollectionSnapshot, DocumentSnapshot, DocumentStore

logger = logging.getLogger(__name__)

PARTITION_KEY_PATH = "/collection"

COLLECTION_QUERY = "SELECT * FROM c WHERE c.collection = @collection"


def _to_item(collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
    return {"id": doc_id, "collection": collection, "data": data}


def _to_snapshot(collection: str, item: dict[str, Any]) -> DocumentSnapshot:
    return DocumentSnapshot(
        path=f"{collection}/{item['id']}",
        doc_id=item["id"],
        exists=True,
        data=dict(item.get("data") or {}),
    )


def _translate(endpoint: str, error: CosmosHttpResponseError) -> Exception:
    """Map SDK errors onto the engine's exception types."""
    status = error.status_code or 0
    if status in (401, 403):
        return AuthenticationError("cosmos", str(error))
    if status in (408, 429, 449) or status >= 500:
        return StorageConnectionError(endpoint, error)
    return error


class CosmosDocumentStore(DocumentStore):
    """Document store backed by one Cosmos DB container.

    Use ``await CosmosDocumentStore.create(config)`` or
    ``async with CosmosDocumentStore(config) as store``.
    """

    def __init__(self, config: StoreConfig):
        self.config = config
        self._client: CosmosClient | None = None
        self._credential: DefaultAzureCredential | None = None
        self._database: DatabaseProxy | None = None
        self._container: ContainerProxy | None = None
        self._pollers: list[asyncio.Task[None]] = []
        self._initialized = False

    @classmethod
    async def create(cls, config: StoreConfig) -> CosmosDocumentStore:
        store = cls(config)
        await store.initialize()
        return store

    async def initialize(self) -> None:
        """Connect and ensure the database and container exist."""
        if self._initialized:
            return

        endpoint = self.config.cosmos_endpoint or ""
        try:
            if self.config.cosmos_auth_method == CosmosAuthMethod.KEY:
                if not self.config.cosmos_key:
                    raise AuthenticationError("cosmos", "Key required for key auth")
                self._client = CosmosClient(endpoint, credential=self.config.cosmos_key)
            else:
                self._credential = DefaultAzureCredential()
                self._client = CosmosClient(endpoint, credential=self._credential)

            self._database = await self._client.create_database_if_not_exists(
                id=self.config.cosmos_database
            )
            self._container = await self._database.create_container_if_not_exists(
                id=self.config.cosmos_container,
                partition_key=PartitionKey(path=PARTITION_KEY_PATH),
            )
            self._initialized = True
            logger.info(
                "Cosmos document store initialized",
                extra={
                    "endpoint": endpoint,
                    "database": self.config.cosmos_database,
                    "container": self.config.cosmos_container,
                },
            )

        except AuthenticationError:
            raise
        except CosmosHttpResponseError as e:
            if e.status_code in (401, 403):
                raise AuthenticationError("cosmos", str(e)) from e
            raise StorageConnectionError(endpoint, e) from e
        except Exception as e:
            raise StorageConnectionError(endpoint, e) from e

    def _require_container(self) -> ContainerProxy:
        if self._container is None:
            raise StorageConnectionError(
                self.config.cosmos_endpoint or "cosmos",
                RuntimeError("Store not initialized"),
            )
        return self._container

    async def close(self) -> None:
        for task in self._pollers:
            task.cancel()
        for task in self._pollers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._pollers.clear()

        if self._client:
            await self._client.close()
            self._client = None
        if self._credential:
            await self._credential.close()
            self._credential = None
        self._database = None
        self._container = None
        self._initialized = False

    # =========================================================================
    # Reads and writes
    # =========================================================================

    async def _call(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await operation()
        except (CosmosResourceNotFoundError, CosmosResourceExistsError):
            raise
        except CosmosHttpResponseError as e:
            translated = _translate(self.config.cosmos_endpoint or "cosmos", e)
            if translated is e:
                raise
            raise translated from e

    async def _query_collection(self, collection: str) -> list[dict[str, Any]]:
        container = self._require_container()
        items: list[dict[str, Any]] = []
        async for item in container.query_items(
            query=COLLECTION_QUERY,
            parameters=[{"name": "@collection", "value": collection}],
            partition_key=collection,
        ):
            items.append(item)
        return items

    async def _read_item(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        container = self._require_container()
        try:
            return await self._call(
                lambda: container.read_item(item=doc_id, partition_key=collection)
            )
        except CosmosResourceNotFoundError:
            return None

    async def get_document(self, document_path: str) -> DocumentSnapshot:
        collection, doc_id = split_document_path(document_path)
        item = await self._read_item(collection, doc_id)
        if item is None:
            return DocumentSnapshot(path=f"{collection}/{doc_id}", doc_id=doc_id, exists=False)
        return _to_snapshot(collection, item)

    async def create_document(self, document_path: str, data: dict[str, Any]) -> None:
        collection, doc_id = split_document_path(document_path)
        container = self._require_container()
        try:
            await self._call(
                lambda: container.create_item(body=_to_item(collection, doc_id, data))
            )
        except CosmosResourceExistsError as e:
            raise DocumentExistsError(document_path) from e

    async def set_document(
        self,
        document_path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        collection, doc_id = split_document_path(document_path)
        container = self._require_container()

        if merge and data:
            operations = [
                {"op": "set", "path": f"/data/{key}", "value": value}
                for key, value in data.items()
            ]
            try:
                await self._call(
                    lambda: container.patch_item(
                        item=doc_id,
                        partition_key=collection,
                        patch_operations=operations,
                    )
                )
                return
            except CosmosResourceNotFoundError:
                logger.debug(f"Merge target missing, creating: {document_path}")

        await self._call(lambda: container.upsert_item(body=_to_item(collection, doc_id, data)))

    async def delete_document(self, document_path: str) -> bool:
        collection, doc_id = split_document_path(document_path)
        container = self._require_container()
        try:
            await self._call(lambda: container.delete_item(item=doc_id, partition_key=collection))
            return True
        except CosmosResourceNotFoundError:
            return False

    # =========================================================================
    # Polling subscriptions
    # =========================================================================

    def subscribe_collection(
        self,
        collection_path: str,
        on_snapshot: Handler[CollectionSnapshot],
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        collection = normalize_collection_path(collection_path)

        async def poll() -> tuple[Any, CollectionSnapshot]:
            items = await self._query_collection(collection)
            fingerprint = tuple((item["id"], item.get("_etag")) for item in items)
            snapshot = CollectionSnapshot(
                path=collection,
                documents=tuple(_to_snapshot(collection, item) for item in items),
            )
            return fingerprint, snapshot

        return self._start_poller(collection, poll, on_snapshot, on_error)

    def subscribe_document(
        self,
        document_path: str,
        on_snapshot: Handler[DocumentSnapshot],
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        collection, doc_id = split_document_path(document_path)
        path = f"{collection}/{doc_id}"

        async def poll() -> tuple[Any, DocumentSnapshot]:
            item = await self._read_item(collection, doc_id)
            if item is None:
                return None, DocumentSnapshot(path=path, doc_id=doc_id, exists=False)
            return item.get("_etag"), _to_snapshot(collection, item)

        return self._start_poller(path, poll, on_snapshot, on_error)

    def _start_poller(
        self,
        path: str,
        poll: Callable[[], Awaitable[tuple[Any, Any]]],
        on_snapshot: Handler[Any],
        on_error: ErrorHandler | None,
    ) -> Subscription:
        stream: SnapshotStream[Any] = SnapshotStream(f"cosmos:{path}")
        inner = stream.subscribe(on_snapshot, on_error)
        interval = self.config.poll_interval

        async def run() -> None:
            last: Any = object()
            while True:
                try:
                    fingerprint, snapshot = await poll()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Snapshot poll failed for {path}: {e}")
                    stream.fail(SubscriptionError(path, e))
                    return
                if fingerprint != last:
                    last = fingerprint
                    stream.publish(snapshot)
                await asyncio.sleep(interval)

        task = asyncio.get_running_loop().create_task(run(), name=f"cosmos-poll:{path}")
        self._pollers.append(task)

        def release() -> None:
            task.cancel()
            inner.cancel()
            stream.close()
            if task in self._pollers:
                self._pollers.remove(task)

        return Subscription(release, name=path)
