"""
Abstract remote document store interface.

Defines the contract every store backend must implement: live
subscriptions that deliver complete snapshots, and the three write
flavours the sync engine needs (create, create-or-replace, merge).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ..streams import ErrorHandler, Handler, Subscription


@dataclass(frozen=True)
class DocumentSnapshot:
    """Complete current state of one document.

    Attributes:
        path: Full document path
        doc_id: Last path segment
        exists: False when the document is absent
        data: Document fields (empty when absent)
    """

    path: str
    doc_id: str
    exists: bool
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CollectionSnapshot:
    """Complete current state of a collection, in store order."""

    path: str
    documents: tuple[DocumentSnapshot, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.documents

    def __len__(self) -> int:
        return len(self.documents)


class DocumentStore(ABC):
    """Abstract remote document store.

    Implementations must:
    - Deliver a snapshot on subscribe (initial load) and after every change
    - Deliver a single subscription's snapshots in order
    - Report listener failures through ``on_error`` (at most once, after
      which the subscription is dead)
    - Make ``Subscription.cancel()`` idempotent
    """

    @abstractmethod
    def subscribe_collection(
        self,
        collection_path: str,
        on_snapshot: Handler[CollectionSnapshot],
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        """Listen to every change of a collection."""
        ...

    @abstractmethod
    def subscribe_document(
        self,
        document_path: str,
        on_snapshot: Handler[DocumentSnapshot],
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        """Listen to every change of a single document."""
        ...

    @abstractmethod
    async def get_document(self, document_path: str) -> DocumentSnapshot:
        """Read a document once."""
        ...

    @abstractmethod
    async def create_document(self, document_path: str, data: dict[str, Any]) -> None:
        """Create a document that must not exist yet.

        Raises:
            DocumentExistsError: If the document already exists
        """
        ...

    @abstractmethod
    async def set_document(
        self,
        document_path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Write a document.

        With ``merge=False`` the document is created or fully replaced.
        With ``merge=True`` only the given fields are updated, other fields
        are left untouched, and the document is created if absent.
        """
        ...

    @abstractmethod
    async def delete_document(self, document_path: str) -> bool:
        """Delete a document.

        Returns:
            True if deleted, False if it did not exist
        """
        ...

    async def close(self) -> None:
        """Release connections and cancel listeners."""
        return None

    async def __aenter__(self) -> DocumentStore:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
