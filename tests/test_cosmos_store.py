"""Tests for CosmosDocumentStore against a mocked container.

No live Cosmos DB account is needed: the SDK container is replaced with
``AsyncMock`` objects and the tests check the item layout and error
translation.
"""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from booksphere_sync.config import StoreBackend, StoreConfig
from booksphere_sync.exceptions import (
    AuthenticationError,
    DocumentExistsError,
    StorageConnectionError,
    SubscriptionError,
)
from booksphere_sync.store.base import CollectionSnapshot, DocumentSnapshot
from booksphere_sync.store.cosmos import COLLECTION_QUERY, CosmosDocumentStore

BOOKS = "artifacts/app/public/data/books"
CART_COLLECTION = "artifacts/app/users/u1/cart"
CART = f"{CART_COLLECTION}/myCart"


def _items(*items: dict[str, Any]):
    """Async iterator over query results, like ``query_items`` returns."""

    async def gen():
        for item in items:
            yield item

    return gen()


@pytest.fixture
def config() -> StoreConfig:
    return StoreConfig(
        backend=StoreBackend.COSMOS,
        cosmos_endpoint="https://test.documents.azure.com:443/",
        poll_interval=0.01,
    )


@pytest.fixture
def container() -> MagicMock:
    container = MagicMock()
    container.read_item = AsyncMock()
    container.create_item = AsyncMock()
    container.upsert_item = AsyncMock()
    container.patch_item = AsyncMock()
    container.delete_item = AsyncMock()
    container.query_items = MagicMock(side_effect=lambda **kwargs: _items())
    return container


@pytest.fixture
async def cosmos_store(config: StoreConfig, container: MagicMock):
    store = CosmosDocumentStore(config)
    store._container = container
    yield store
    await store.close()


class TestWrites:
    """Tests for the item layout of writes."""

    async def test_set_document_upserts_item(
        self, cosmos_store: CosmosDocumentStore, container: MagicMock
    ) -> None:
        await cosmos_store.set_document(f"{BOOKS}/1", {"title": "Dune"})

        container.upsert_item.assert_awaited_once_with(
            body={"id": "1", "collection": BOOKS, "data": {"title": "Dune"}}
        )

    async def test_merge_patches_data_fields(
        self, cosmos_store: CosmosDocumentStore, container: MagicMock
    ) -> None:
        await cosmos_store.set_document(CART, {"items": []}, merge=True)

        container.patch_item.assert_awaited_once_with(
            item="myCart",
            partition_key=CART_COLLECTION,
            patch_operations=[{"op": "set", "path": "/data/items", "value": []}],
        )
        container.upsert_item.assert_not_awaited()

    async def test_merge_falls_back_to_upsert(
        self, cosmos_store: CosmosDocumentStore, container: MagicMock
    ) -> None:
        container.patch_item.side_effect = CosmosResourceNotFoundError(
            status_code=404, message="missing"
        )

        await cosmos_store.set_document(CART, {"items": []}, merge=True)

        container.upsert_item.assert_awaited_once_with(
            body={"id": "myCart", "collection": CART_COLLECTION, "data": {"items": []}}
        )

    async def test_create_conflict(
        self, cosmos_store: CosmosDocumentStore, container: MagicMock
    ) -> None:
        container.create_item.side_effect = CosmosResourceExistsError(
            status_code=409, message="conflict"
        )

        with pytest.raises(DocumentExistsError):
            await cosmos_store.create_document(CART, {"items": []})

    async def test_delete_missing(
        self, cosmos_store: CosmosDocumentStore, container: MagicMock
    ) -> None:
        container.delete_item.side_effect = CosmosResourceNotFoundError(
            status_code=404, message="missing"
        )

        assert await cosmos_store.delete_document(CART) is False


class TestErrorTranslation:
    """Tests for mapping SDK errors."""

    @pytest.mark.parametrize("status", [408, 429, 503])
    async def test_transient_errors(
        self, cosmos_store: CosmosDocumentStore, container: MagicMock, status: int
    ) -> None:
        container.upsert_item.side_effect = CosmosHttpResponseError(
            status_code=status, message="busy"
        )

        with pytest.raises(StorageConnectionError):
            await cosmos_store.set_document(CART, {"items": []})

    async def test_forbidden(
        self, cosmos_store: CosmosDocumentStore, container: MagicMock
    ) -> None:
        container.upsert_item.side_effect = CosmosHttpResponseError(
            status_code=403, message="forbidden"
        )

        with pytest.raises(AuthenticationError):
            await cosmos_store.set_document(CART, {"items": []})

    async def test_other_errors_pass_through(
        self, cosmos_store: CosmosDocumentStore, container: MagicMock
    ) -> None:
        container.upsert_item.side_effect = CosmosHttpResponseError(
            status_code=400, message="bad request"
        )

        with pytest.raises(CosmosHttpResponseError):
            await cosmos_store.set_document(CART, {"items": []})

    async def test_not_initialized(self, config: StoreConfig) -> None:
        store = CosmosDocumentStore(config)

        with pytest.raises(StorageConnectionError):
            await store.set_document(CART, {"items": []})


class TestReads:
    """Tests for reads and polling subscriptions."""

    async def test_get_document(
        self, cosmos_store: CosmosDocumentStore, container: MagicMock
    ) -> None:
        container.read_item.return_value = {
            "id": "myCart",
            "collection": CART_COLLECTION,
            "data": {"items": []},
            "_etag": "e1",
        }

        snapshot = await cosmos_store.get_document(CART)

        assert snapshot == DocumentSnapshot(
            path=CART, doc_id="myCart", exists=True, data={"items": []}
        )
        container.read_item.assert_awaited_once_with(
            item="myCart", partition_key=CART_COLLECTION
        )

    async def test_get_missing_document(
        self, cosmos_store: CosmosDocumentStore, container: MagicMock
    ) -> None:
        container.read_item.side_effect = CosmosResourceNotFoundError(
            status_code=404, message="missing"
        )

        snapshot = await cosmos_store.get_document(CART)

        assert not snapshot.exists

    async def test_collection_poll_emits_only_on_change(
        self, cosmos_store: CosmosDocumentStore, container: MagicMock
    ) -> None:
        book = {"id": "1", "collection": BOOKS, "data": {"title": "Dune"}, "_etag": "e1"}
        container.query_items.side_effect = lambda **kwargs: _items(book)
        snapshots: list[CollectionSnapshot] = []

        token = cosmos_store.subscribe_collection(BOOKS, snapshots.append)
        await asyncio.sleep(0.05)
        token.cancel()

        assert len(snapshots) == 1
        assert snapshots[0].documents[0].data == {"title": "Dune"}
        assert container.query_items.call_count > 1
        kwargs = container.query_items.call_args.kwargs
        assert kwargs["query"] == COLLECTION_QUERY
        assert kwargs["partition_key"] == BOOKS

    async def test_document_poll_reports_missing_then_created(
        self, cosmos_store: CosmosDocumentStore, container: MagicMock
    ) -> None:
        container.read_item.side_effect = [
            CosmosResourceNotFoundError(status_code=404, message="missing"),
            {"id": "myCart", "collection": CART_COLLECTION, "data": {"items": []}, "_etag": "e1"},
        ] + [
            {"id": "myCart", "collection": CART_COLLECTION, "data": {"items": []}, "_etag": "e1"}
        ] * 50
        snapshots: list[DocumentSnapshot] = []

        token = cosmos_store.subscribe_document(CART, snapshots.append)
        await asyncio.sleep(0.05)
        token.cancel()

        assert [s.exists for s in snapshots] == [False, True]

    async def test_poll_failure_reported_once(
        self, cosmos_store: CosmosDocumentStore, container: MagicMock
    ) -> None:
        container.read_item.side_effect = CosmosHttpResponseError(
            status_code=503, message="unavailable"
        )
        errors: list[Exception] = []

        cosmos_store.subscribe_document(CART, lambda s: None, errors.append)
        await asyncio.sleep(0.05)

        assert len(errors) == 1
        assert isinstance(errors[0], SubscriptionError)
        assert isinstance(errors[0].cause, StorageConnectionError)
