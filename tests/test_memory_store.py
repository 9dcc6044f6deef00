"""Tests for MemoryDocumentStore."""

from __future__ import annotations

import pytest

from booksphere_sync.exceptions import (
    DocumentExistsError,
    StorageConnectionError,
    SubscriptionError,
)
from booksphere_sync.store import MemoryDocumentStore
from booksphere_sync.store.base import CollectionSnapshot, DocumentSnapshot

BOOKS = "artifacts/app/public/data/books"
CART = "artifacts/app/users/u1/cart/myCart"


class TestReadsAndWrites:
    """Tests for document reads and writes."""

    async def test_set_and_get(self, store: MemoryDocumentStore) -> None:
        await store.set_document(f"{BOOKS}/1", {"title": "Dune", "price": 22.0})

        snapshot = await store.get_document(f"{BOOKS}/1")

        assert snapshot.exists
        assert snapshot.doc_id == "1"
        assert snapshot.data == {"title": "Dune", "price": 22.0}

    async def test_missing_document(self, store: MemoryDocumentStore) -> None:
        snapshot = await store.get_document(CART)

        assert not snapshot.exists
        assert snapshot.data == {}

    async def test_set_replaces_document(self, store: MemoryDocumentStore) -> None:
        await store.set_document(f"{BOOKS}/1", {"title": "Dune", "author": "Herbert"})
        await store.set_document(f"{BOOKS}/1", {"title": "Dune Messiah"})

        assert store.documents(BOOKS) == {"1": {"title": "Dune Messiah"}}

    async def test_merge_keeps_other_fields(self, store: MemoryDocumentStore) -> None:
        await store.set_document(CART, {"items": [], "note": "keep"})
        await store.set_document(CART, {"items": [{"id": "1"}]}, merge=True)

        snapshot = await store.get_document(CART)

        assert snapshot.data == {"items": [{"id": "1"}], "note": "keep"}

    async def test_merge_creates_missing_document(self, store: MemoryDocumentStore) -> None:
        await store.set_document(CART, {"items": []}, merge=True)

        assert (await store.get_document(CART)).exists
        assert store.writes[-1].operation == "merge"

    async def test_create_conflict(self, store: MemoryDocumentStore) -> None:
        await store.create_document(CART, {"items": []})

        with pytest.raises(DocumentExistsError):
            await store.create_document(CART, {"items": []})

    async def test_delete(self, store: MemoryDocumentStore) -> None:
        await store.set_document(f"{BOOKS}/1", {"title": "Dune"})

        assert await store.delete_document(f"{BOOKS}/1") is True
        assert await store.delete_document(f"{BOOKS}/1") is False
        assert store.documents(BOOKS) == {}

    async def test_stored_data_is_copied(self, store: MemoryDocumentStore) -> None:
        data = {"items": [{"id": "1"}]}
        await store.set_document(CART, data)
        data["items"].clear()

        assert (await store.get_document(CART)).data == {"items": [{"id": "1"}]}

    async def test_write_log(self, store: MemoryDocumentStore) -> None:
        await store.create_document(CART, {"items": []})
        await store.set_document(CART, {"items": []}, merge=True)
        await store.delete_document(CART)

        assert [(w.operation, w.path) for w in store.writes] == [
            ("create", CART),
            ("merge", CART),
            ("delete", CART),
        ]

    async def test_write_log_is_bounded(self) -> None:
        store = MemoryDocumentStore(write_log_size=3)

        for n in range(10):
            await store.set_document(f"{BOOKS}/{n}", {"title": f"Book {n}"})

        assert [w.path for w in store.writes] == [f"{BOOKS}/{n}" for n in (7, 8, 9)]
        assert len(store.documents(BOOKS)) == 10
        await store.close()


class TestFailureInjection:
    """Tests for injected write failures."""

    async def test_fail_writes(self, store: MemoryDocumentStore) -> None:
        store.fail_writes(path_prefix="artifacts/app/users", times=1)

        with pytest.raises(StorageConnectionError):
            await store.set_document(CART, {"items": []})
        await store.set_document(CART, {"items": []})

        assert len(store.writes) == 1

    async def test_other_paths_unaffected(self, store: MemoryDocumentStore) -> None:
        store.fail_writes(path_prefix="artifacts/app/users", times=1)

        await store.set_document(f"{BOOKS}/1", {"title": "Dune"})

        assert len(store.writes) == 1


class TestListeners:
    """Tests for live collection and document listeners."""

    async def test_collection_listener_gets_initial_and_updates(
        self, store: MemoryDocumentStore
    ) -> None:
        snapshots: list[CollectionSnapshot] = []
        store.subscribe_collection(BOOKS, snapshots.append)
        await store.drain()

        await store.set_document(f"{BOOKS}/1", {"title": "Dune"})
        await store.set_document(f"{BOOKS}/2", {"title": "Emma"})
        await store.drain()

        assert [len(s) for s in snapshots] == [0, 1, 2]
        assert snapshots[0].empty
        assert [d.doc_id for d in snapshots[-1].documents] == ["1", "2"]

    async def test_document_listener(self, store: MemoryDocumentStore) -> None:
        snapshots: list[DocumentSnapshot] = []
        store.subscribe_document(CART, snapshots.append)

        await store.create_document(CART, {"items": []})
        await store.drain()

        assert [s.exists for s in snapshots] == [False, True]

    async def test_document_listener_ignores_siblings(self, store: MemoryDocumentStore) -> None:
        snapshots: list[DocumentSnapshot] = []
        store.subscribe_document(CART, snapshots.append)

        await store.create_document("artifacts/app/users/u2/cart/myCart", {"items": []})
        await store.drain()

        assert len(snapshots) == 1

    async def test_cancel_releases_listener(self, store: MemoryDocumentStore) -> None:
        snapshots: list[CollectionSnapshot] = []
        token = store.subscribe_collection(BOOKS, snapshots.append)
        await store.drain()

        token.cancel()
        token.cancel()
        await store.set_document(f"{BOOKS}/1", {"title": "Dune"})
        await store.drain()

        assert len(snapshots) == 1
        assert store.listener_count == 0

    async def test_break_listeners(self, store: MemoryDocumentStore) -> None:
        errors: list[Exception] = []
        store.subscribe_document(CART, lambda s: None, errors.append)

        assert store.break_listeners(CART, RuntimeError("network")) == 1
        await store.drain()

        assert len(errors) == 1
        assert isinstance(errors[0], SubscriptionError)
        assert store.listener_count == 0

    async def test_closed_store_returns_inactive_tokens(self) -> None:
        store = MemoryDocumentStore()
        await store.close()

        token = store.subscribe_collection(BOOKS, lambda s: None)

        assert token.cancelled
