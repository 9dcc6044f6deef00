"""
Generic collection mirror.

Keeps a local, ordered ``id -> T`` mapping in step with a remote
collection. Every notification carries the complete collection, so the
mapping is rebuilt from scratch each time rather than patched.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from .exceptions import SubscriptionError, ValidationError
from .store.base import CollectionSnapshot, DocumentStore
from .streams import Handler, Subscription

logger = logging.getLogger(__name__)

T = TypeVar("T")

Decoder = Callable[[str, dict[str, Any]], T]


class CollectionMirror(Generic[T]):
    """Local read-only replica of one remote collection.

    Args:
        store: Remote document store
        decode: Builds a ``T`` from ``(doc_id, fields)``; documents it
            rejects with ``ValidationError`` are skipped with a warning
        name: Label for log messages

    Example:
        >>> mirror = CollectionMirror(store, Book.from_document, name="catalog")
        >>> mirror.open("artifacts/app/public/data/books", on_snapshot)
        >>> await mirror.wait_ready()
        >>> mirror.cancel()
    """

    def __init__(self, store: DocumentStore, decode: Decoder[T], name: str = "mirror"):
        self.store = store
        self.decode = decode
        self.name = name
        self.collection_path: str | None = None
        self.error: SubscriptionError | None = None
        self.snapshot_count = 0
        self.document_count = 0  # Raw documents in the latest snapshot, invalid ones included
        self._entries: dict[str, T] = {}
        self._subscription: Subscription | None = None
        self._on_snapshot: Handler[Mapping[str, T]] | None = None
        self._ready = asyncio.Event()

    @property
    def entries(self) -> Mapping[str, T]:
        """Read-only view of the latest mapping."""
        return MappingProxyType(self._entries)

    @property
    def ready(self) -> bool:
        """True once the first snapshot has been applied."""
        return self._ready.is_set()

    @property
    def is_open(self) -> bool:
        return self._subscription is not None and not self._subscription.cancelled

    async def wait_ready(self) -> None:
        await self._ready.wait()

    def open(
        self,
        collection_path: str,
        on_snapshot: Handler[Mapping[str, T]] | None = None,
    ) -> Subscription:
        """Subscribe to ``collection_path``.

        ``on_snapshot`` receives the rebuilt mapping after every remote
        notification, the initial load included.

        Raises:
            RuntimeError: If the mirror is already open
        """
        if self.is_open:
            raise RuntimeError(f"{self.name} is already open on {self.collection_path}")

        self.collection_path = collection_path
        self._on_snapshot = on_snapshot
        self.error = None
        self._subscription = self.store.subscribe_collection(
            collection_path, self._apply, self._fail
        )
        logger.debug(f"{self.name}: subscribed to {collection_path}")
        return self._subscription

    def cancel(self) -> None:
        """Release the subscription; safe to call repeatedly or before ``open``."""
        if self._subscription is None:
            return
        self._subscription.cancel()
        self._subscription = None

    async def _apply(self, snapshot: CollectionSnapshot) -> None:
        entries: dict[str, T] = {}
        for doc in snapshot.documents:
            try:
                entries[doc.doc_id] = self.decode(doc.doc_id, doc.data)
            except ValidationError as e:
                logger.warning(
                    f"{self.name}: skipping invalid document {doc.path}: {e.message}",
                    extra={"path": doc.path},
                )

        self._entries = entries
        self.document_count = len(snapshot)
        self.snapshot_count += 1
        self._ready.set()

        if self._on_snapshot is not None:
            result = self._on_snapshot(MappingProxyType(entries))
            if asyncio.iscoroutine(result):
                await result

    def _fail(self, error: Exception) -> None:
        if not isinstance(error, SubscriptionError):
            error = SubscriptionError(self.collection_path or self.name, error)
        self.error = error
        self._subscription = None
        logger.error(
            f"{self.name}: listener failed, keeping last snapshot "
            f"({len(self._entries)} entries)",
            extra=error.details,
        )
