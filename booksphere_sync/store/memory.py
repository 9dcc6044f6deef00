"""
In-process document store with live listeners.

Backs the test suite, the demo script and single-process deployments.
Behaves like a hosted document database from the engine's point of view:
writes are asynchronous, listeners receive complete snapshots through
their own ordered channel, and failures can be injected per path.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ..exceptions import DocumentExistsError, StorageConnectionError, SubscriptionError
from ..paths import normalize_collection_path, split_document_path
from ..streams import ErrorHandler, Handler, SnapshotStream, Subscription
from .base import CollectionSnapshot, DocumentSnapshot, DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class WriteRecord:
    """One write accepted by the store (for inspection in tests and demos)."""

    operation: str  # "create", "set", "merge", "delete"
    path: str
    data: dict[str, Any] | None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class _Listener:
    kind: str  # "collection" or "document"
    path: str
    stream: SnapshotStream[Any]


@dataclass
class _InjectedFailure:
    path_prefix: str
    remaining: int
    error: Exception


class MemoryDocumentStore(DocumentStore):
    """Document store kept in process memory.

    Collections keep documents in insertion order. Every accepted write is
    appended to ``writes``, which keeps the most recent ``write_log_size``.

    Args:
        write_latency: Seconds each write waits before it is applied
        write_log_size: Number of write records kept for inspection
    """

    def __init__(self, write_latency: float = 0.0, write_log_size: int = 1000):
        self.write_latency = write_latency
        self.writes: deque[WriteRecord] = deque(maxlen=write_log_size)
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._listeners: list[_Listener] = []
        self._failures: list[_InjectedFailure] = []
        self._retired: list[SnapshotStream[Any]] = []
        self._closed = False

    # =========================================================================
    # Failure injection
    # =========================================================================

    def fail_writes(
        self,
        path_prefix: str = "",
        times: int = 1,
        error: Exception | None = None,
    ) -> None:
        """Make the next ``times`` writes under ``path_prefix`` raise ``error``.

        The default error is a transient ``StorageConnectionError``.
        """
        self._failures.append(
            _InjectedFailure(
                path_prefix=path_prefix,
                remaining=times,
                error=error or StorageConnectionError("memory"),
            )
        )

    def break_listeners(self, path: str, cause: Exception | None = None) -> int:
        """Fail every live listener on ``path``.

        Returns:
            Number of listeners failed
        """
        broken = [listener for listener in self._listeners if listener.path == path]
        for listener in broken:
            listener.stream.fail(SubscriptionError(path, cause))
            self._listeners.remove(listener)
            self._retired.append(listener.stream)
        return len(broken)

    def _check_failure(self, path: str) -> None:
        for failure in self._failures:
            if failure.remaining > 0 and path.startswith(failure.path_prefix):
                failure.remaining -= 1
                if failure.remaining == 0:
                    self._failures.remove(failure)
                raise failure.error

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe_collection(
        self,
        collection_path: str,
        on_snapshot: Handler[CollectionSnapshot],
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        path = normalize_collection_path(collection_path)
        return self._listen("collection", path, on_snapshot, on_error)

    def subscribe_document(
        self,
        document_path: str,
        on_snapshot: Handler[DocumentSnapshot],
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        collection, doc_id = split_document_path(document_path)
        return self._listen("document", f"{collection}/{doc_id}", on_snapshot, on_error)

    def _listen(
        self,
        kind: str,
        path: str,
        on_snapshot: Handler[Any],
        on_error: ErrorHandler | None,
    ) -> Subscription:
        if self._closed:
            return Subscription.inactive(path)

        stream: SnapshotStream[Any] = SnapshotStream(f"{kind}:{path}")
        listener = _Listener(kind=kind, path=path, stream=stream)
        inner = stream.subscribe(on_snapshot, on_error)
        self._listeners.append(listener)
        stream.publish(self._snapshot_for(listener))
        logger.debug(f"Listener opened: {kind} {path}")

        def release() -> None:
            inner.cancel()
            stream.close()
            if listener in self._listeners:
                self._listeners.remove(listener)
            logger.debug(f"Listener released: {kind} {path}")

        return Subscription(release, name=path)

    def _snapshot_for(self, listener: _Listener) -> Any:
        if listener.kind == "collection":
            return self._collection_snapshot(listener.path)
        return self._document_snapshot(listener.path)

    def _collection_snapshot(self, collection_path: str) -> CollectionSnapshot:
        docs = self._collections.get(collection_path, {})
        return CollectionSnapshot(
            path=collection_path,
            documents=tuple(
                DocumentSnapshot(
                    path=f"{collection_path}/{doc_id}",
                    doc_id=doc_id,
                    exists=True,
                    data=copy.deepcopy(data),
                )
                for doc_id, data in docs.items()
            ),
        )

    def _document_snapshot(self, document_path: str) -> DocumentSnapshot:
        collection, doc_id = split_document_path(document_path)
        data = self._collections.get(collection, {}).get(doc_id)
        return DocumentSnapshot(
            path=f"{collection}/{doc_id}",
            doc_id=doc_id,
            exists=data is not None,
            data=copy.deepcopy(data) if data is not None else {},
        )

    def _notify(self, document_path: str) -> None:
        collection, _ = split_document_path(document_path)
        for listener in list(self._listeners):
            if (listener.kind == "collection" and listener.path == collection) or (
                listener.kind == "document" and listener.path == document_path
            ):
                listener.stream.publish(self._snapshot_for(listener))

    async def drain(self) -> None:
        """Wait until every listener has handled every queued snapshot."""
        while True:
            self._retired = [s for s in self._retired if s.subscriber_count]
            pending = [listener.stream for listener in self._listeners] + self._retired
            await asyncio.gather(*(stream.drain() for stream in pending))
            if not any(stream.has_pending for stream in pending):
                return

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # =========================================================================
    # Reads and writes
    # =========================================================================

    def documents(self, collection_path: str) -> dict[str, dict[str, Any]]:
        """Synchronous copy of a collection's documents (for inspection)."""
        path = normalize_collection_path(collection_path)
        return copy.deepcopy(self._collections.get(path, {}))

    async def get_document(self, document_path: str) -> DocumentSnapshot:
        await asyncio.sleep(0)
        return self._document_snapshot(document_path)

    async def create_document(self, document_path: str, data: dict[str, Any]) -> None:
        collection, doc_id = await self._before_write(document_path)
        docs = self._collections.setdefault(collection, {})
        if doc_id in docs:
            raise DocumentExistsError(document_path)
        docs[doc_id] = copy.deepcopy(data)
        self._record("create", document_path, data)

    async def set_document(
        self,
        document_path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        collection, doc_id = await self._before_write(document_path)
        docs = self._collections.setdefault(collection, {})
        if merge and doc_id in docs:
            docs[doc_id].update(copy.deepcopy(data))
        else:
            docs[doc_id] = copy.deepcopy(data)
        self._record("merge" if merge else "set", document_path, data)

    async def delete_document(self, document_path: str) -> bool:
        collection, doc_id = await self._before_write(document_path)
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            return False
        del docs[doc_id]
        self._record("delete", document_path, None)
        return True

    async def _before_write(self, document_path: str) -> tuple[str, str]:
        collection, doc_id = split_document_path(document_path)
        if self.write_latency > 0:
            await asyncio.sleep(self.write_latency)
        else:
            await asyncio.sleep(0)
        self._check_failure(f"{collection}/{doc_id}")
        return collection, doc_id

    def _record(self, operation: str, document_path: str, data: dict[str, Any] | None) -> None:
        collection, doc_id = split_document_path(document_path)
        self.writes.append(
            WriteRecord(
                operation=operation,
                path=f"{collection}/{doc_id}",
                data=copy.deepcopy(data),
            )
        )
        self._notify(f"{collection}/{doc_id}")

    async def close(self) -> None:
        self._closed = True
        for listener in self._listeners:
            listener.stream.close()
        self._listeners.clear()
