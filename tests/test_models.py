"""Tests for the book and cart models."""

from __future__ import annotations

from decimal import Decimal

import pytest

from booksphere_sync.exceptions import ValidationError
from booksphere_sync.models import (
    DEFAULT_BOOKS,
    Book,
    Cart,
    CartItem,
    items_from_wire,
    items_to_wire,
    parse_price,
)


class TestParsePrice:
    """Tests for wire price parsing."""

    def test_float_price(self) -> None:
        assert parse_price(15.5) == Decimal("15.50")

    def test_string_price(self) -> None:
        assert parse_price("29.99") == Decimal("29.99")

    def test_integer_price(self) -> None:
        assert parse_price(22) == Decimal("22.00")

    @pytest.mark.parametrize("value", [None, True, "abc", -1, float("nan"), float("inf")])
    def test_rejects_invalid(self, value) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_price(value)
        assert exc_info.value.field == "price"


class TestBook:
    """Tests for Book."""

    def test_document_omits_id(self) -> None:
        """Catalog documents are keyed by id, so the body carries none."""
        book = DEFAULT_BOOKS[1]

        doc = book.to_document()

        assert "id" not in doc
        assert doc["title"] == "The Hitchhiker's Guide to the Galaxy"
        assert doc["price"] == 15.5
        assert doc["imageUrl"].startswith("https://")

    def test_from_document(self) -> None:
        book = Book.from_document(
            "7",
            {"title": "Emma", "author": "Jane Austen", "price": 8.25, "imageUrl": "x.png"},
        )

        assert book.id == "7"
        assert book.price == Decimal("8.25")
        assert book.image_url == "x.png"
        assert book.description == ""

    def test_document_echo_is_value_equal(self) -> None:
        """A book read back from its own document equals the book written."""
        for book in DEFAULT_BOOKS:
            assert Book.from_document(book.id, book.to_document()) == book

    def test_missing_title_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            Book.from_document("7", {"price": 1})
        assert exc_info.value.field == "title"

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Book(id="", title="t", author="a", price=Decimal("1"))

    def test_numeric_price_coerced(self) -> None:
        book = Book(id="1", title="t", author="a", price=3.5)  # type: ignore[arg-type]
        assert book.price == Decimal("3.5")

    def test_negative_price_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Book(id="1", title="t", author="a", price=Decimal("-0.01"))

    @pytest.mark.parametrize("price", ["NaN", "sNaN", "Infinity", "-Infinity"])
    def test_non_finite_decimal_rejected(self, price: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            Book(id="1", title="t", author="a", price=Decimal(price))
        assert exc_info.value.field == "price"


class TestCartItem:
    """Tests for CartItem."""

    def test_flat_wire_format(self) -> None:
        """Cart items serialize as the book's fields plus quantity."""
        item = CartItem(book=DEFAULT_BOOKS[0], quantity=2)

        data = item.to_dict()

        assert data["id"] == "1"
        assert data["title"] == "The Lord of the Rings"
        assert data["quantity"] == 2
        assert CartItem.from_dict(data) == item

    def test_subtotal(self) -> None:
        item = CartItem(book=DEFAULT_BOOKS[0], quantity=3)
        assert item.subtotal == Decimal("89.97")

    def test_integral_float_quantity_accepted(self) -> None:
        data = {**DEFAULT_BOOKS[2].to_dict(), "quantity": 2.0}
        assert CartItem.from_dict(data).quantity == 2

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True])
    def test_invalid_quantity_rejected(self, quantity) -> None:
        with pytest.raises(ValidationError):
            CartItem(book=DEFAULT_BOOKS[0], quantity=quantity)


class TestWireItems:
    """Tests for the cart document ``items`` field."""

    def test_absent_field_is_empty(self) -> None:
        assert items_from_wire(None) == ()

    def test_non_list_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            items_from_wire({"id": "1"})
        assert exc_info.value.field == "items"

    def test_order_preserved(self) -> None:
        items = (CartItem(DEFAULT_BOOKS[3], 1), CartItem(DEFAULT_BOOKS[0], 4))

        restored = items_from_wire(items_to_wire(items))

        assert [item.id for item in restored] == ["4", "1"]

    def test_invalid_entry_rejected_by_default(self) -> None:
        with pytest.raises(ValidationError):
            items_from_wire([{"id": "1", "quantity": 1}])

    def test_invalid_entries_reported_and_skipped(self) -> None:
        """With a callback, only the entries that fail to parse are dropped."""
        rejected: list[int] = []
        raw = [
            {"id": "1", "quantity": 1},
            "not an object",
            {**DEFAULT_BOOKS[2].to_dict(), "quantity": 2},
        ]

        items = items_from_wire(raw, on_invalid=lambda index, error: rejected.append(index))

        assert items == (CartItem(DEFAULT_BOOKS[2], 2),)
        assert rejected == [0, 1]

    def test_cart_document(self) -> None:
        cart = Cart(owner_identity="user-1", items=(CartItem(DEFAULT_BOOKS[4], 1),))
        assert cart.to_document() == {"items": [CartItem(DEFAULT_BOOKS[4], 1).to_dict()]}


class TestDefaultBooks:
    """Tests for the seeded default catalog."""

    def test_five_books_with_unique_ids(self) -> None:
        assert [book.id for book in DEFAULT_BOOKS] == ["1", "2", "3", "4", "5"]

    def test_prices(self) -> None:
        prices = {book.title: book.price for book in DEFAULT_BOOKS}
        assert prices["The Lord of the Rings"] == Decimal("29.99")
        assert prices["Dune"] == Decimal("22.00")
        assert prices["1984"] == Decimal("12.99")
        assert prices["Pride and Prejudice"] == Decimal("10.75")
