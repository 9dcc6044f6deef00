"""
Catalog service.

Mirrors the deployment's book collection and seeds the default books into
it the first time it is observed empty.

State machine:

    UNINITIALIZED -> SUBSCRIBED -> (SEED_ATTEMPTED | SEED_SKIPPED) -> LIVE

Only the very first snapshot decides about seeding. A collection that
later becomes empty stays empty.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum

from .exceptions import SessionError
from .identity.types import Session
from .logging_utils import get_sync_logger
from .mirror import CollectionMirror
from .models import DEFAULT_BOOKS, Book
from .paths import catalog_collection_path, document_path
from .store.base import DocumentStore
from .streams import Handler, SnapshotStream, Subscription
from .writes import PendingWrite, WriteQueue


class CatalogState(Enum):
    UNINITIALIZED = "uninitialized"
    SUBSCRIBED = "subscribed"
    SEED_ATTEMPTED = "seed_attempted"
    SEED_SKIPPED = "seed_skipped"
    LIVE = "live"


class CatalogService:
    """Read-only local catalog kept in sync with the remote collection.

    Args:
        store: Remote document store
        deployment_id: Deployment scoping the catalog path
        writes: Write queue used for seeding (a private one if omitted)
        default_books: Books seeded into an empty catalog
    """

    def __init__(
        self,
        store: DocumentStore,
        deployment_id: str,
        writes: WriteQueue | None = None,
        default_books: Iterable[Book] = DEFAULT_BOOKS,
    ):
        self.store = store
        self.deployment_id = deployment_id
        self.collection_path = catalog_collection_path(deployment_id)
        self.log = get_sync_logger("catalog", deployment_id=deployment_id)
        self.writes = writes or WriteQueue(name="catalog")
        self.default_books = tuple(default_books)
        self.state = CatalogState.UNINITIALIZED
        self.seed_writes: list[PendingWrite] = []  # Writes of the latest seed
        self.mirror: CollectionMirror[Book] = CollectionMirror(
            store, Book.from_document, name="catalog"
        )
        self._seed_decided = False
        self._changes: SnapshotStream[list[Book]] = SnapshotStream(
            "catalog-books", replay_latest=True
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, session: Session) -> None:
        """Open the catalog subscription.

        The catalog does not depend on the session identity, only on the
        session having been resolved. Calling ``start`` again is a no-op.

        Raises:
            SessionError: If the session has not been resolved yet
        """
        if not session.ready:
            raise SessionError("Catalog requires a resolved session")
        if self.state != CatalogState.UNINITIALIZED:
            return

        self.mirror.open(self.collection_path, self._on_snapshot)
        self.state = CatalogState.SUBSCRIBED
        self.log.info("Catalog subscribed", extra={"path": self.collection_path})

    def stop(self) -> None:
        """Cancel the catalog subscription (idempotent)."""
        self.mirror.cancel()
        self._changes.close()

    def _on_snapshot(self, entries: Mapping[str, Book]) -> None:
        if not self._seed_decided:
            self._seed_decided = True
            if self.mirror.document_count:
                self.state = CatalogState.SEED_SKIPPED
            else:
                self.log.info("No books found, seeding default catalog")
                self.seed()
                self.state = CatalogState.SEED_ATTEMPTED
        else:
            self.state = CatalogState.LIVE

        self._changes.publish(list(entries.values()))

    # =========================================================================
    # Seeding
    # =========================================================================

    def seed(self) -> list[PendingWrite]:
        """Write every default book under its own id.

        Uses create-or-replace writes, so repeated or concurrent seeding
        converges on the same documents. Each write succeeds or fails on
        its own.
        """
        writes = []
        for book in self.default_books:
            path = document_path(self.collection_path, book.id)
            writes.append(
                self.writes.submit(
                    "catalog.seed",
                    lambda path=path, body=book.to_document(): self.store.set_document(
                        path, body
                    ),
                    path=path,
                )
            )
        self.seed_writes = writes
        return writes

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def books(self) -> list[Book]:
        """Books of the latest snapshot, in collection order."""
        return list(self.mirror.entries.values())

    @property
    def ready(self) -> bool:
        return self.mirror.ready

    def get(self, book_id: str) -> Book | None:
        return self.mirror.entries.get(book_id)

    async def wait_ready(self) -> None:
        """Wait for the first catalog snapshot."""
        await self.mirror.wait_ready()

    def subscribe(self, handler: Handler[list[Book]]) -> Subscription:
        """Receive the book list after every catalog snapshot."""
        return self._changes.subscribe(handler)
