"""
Shared test configuration and fixtures.

Everything runs against the in-process ``MemoryDocumentStore``. Remote
writes and snapshot delivery are asynchronous, so tests call ``settle``
to let queued writes and the notifications they trigger run to completion
before asserting.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from decimal import Decimal

import pytest

from booksphere_sync.identity import Session, SignInMethod
from booksphere_sync.models import Book
from booksphere_sync.store import MemoryDocumentStore
from booksphere_sync.writes import RetryConfig, WriteQueue

# No backoff delay so retried writes settle within one ``settle`` call
FAST_RETRY = RetryConfig(max_retries=2, backoff_base=0.0, backoff_max=0.0)


async def settle_store(store: MemoryDocumentStore, *queues: WriteQueue, rounds: int = 5) -> None:
    """Run queued writes and snapshot deliveries until nothing is left.

    Handlers may queue new writes (seeding, cart creation) whose echoes
    trigger further snapshots, hence the repeated rounds.
    """
    for _ in range(rounds):
        for queue in queues:
            await queue.join()
        await store.drain()


def _make_book(book_id: str = "b1", price: str = "9.99", title: str | None = None) -> Book:
    return Book(
        id=book_id,
        title=title or f"Book {book_id}",
        author="Test Author",
        price=Decimal(price),
        image_url=f"https://example.com/{book_id}.png",
        description="A test book.",
    )


@pytest.fixture
async def store() -> AsyncIterator[MemoryDocumentStore]:
    """In-process document store, closed after the test."""
    store = MemoryDocumentStore()
    yield store
    await store.close()


@pytest.fixture
async def writes() -> AsyncIterator[WriteQueue]:
    """Write queue without retry delays."""
    queue = WriteQueue(FAST_RETRY, name="test")
    yield queue
    await queue.close()


@pytest.fixture
def session() -> Session:
    return Session(identity="user-1", ready=True, method=SignInMethod.ANONYMOUS)


@pytest.fixture
def anonymous_failure() -> Session:
    """Session whose sign-in failed: resolved, but without identity."""
    return Session(identity=None, ready=True, method=None)


@pytest.fixture
def hitchhiker() -> Book:
    return Book(
        id="2",
        title="The Hitchhiker's Guide to the Galaxy",
        author="Douglas Adams",
        price=Decimal("15.50"),
        image_url="https://placehold.co/400x600/1e293b/d4d4d8?text=Book+2",
        description="A comedic science fiction series.",
    )


@pytest.fixture
def settle():
    """``await settle(store, *queues)``: see ``settle_store``."""
    return settle_store


@pytest.fixture
def make_book():
    """Factory for test books: ``make_book("b1", "9.99")``."""
    return _make_book


@pytest.fixture
def deployment_id() -> str:
    return "test-app"
