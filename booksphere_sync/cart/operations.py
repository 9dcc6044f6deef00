"""Pure cart item operations.

Each function takes the current items and returns a new tuple; none of
them mutate their input or raise.
"""

from __future__ import annotations

from decimal import Decimal

from ..models import Book, CartItem

CENTS = Decimal("0.01")


def add_item(items: tuple[CartItem, ...], book: Book) -> tuple[CartItem, ...]:
    """Increment the quantity of ``book`` or append it with quantity one."""
    if any(item.id == book.id for item in items):
        return tuple(
            item.with_quantity(item.quantity + 1) if item.id == book.id else item
            for item in items
        )
    return (*items, CartItem(book=book, quantity=1))


def remove_item(items: tuple[CartItem, ...], book_id: str) -> tuple[CartItem, ...]:
    """Drop every item with ``book_id`` (no-op if absent)."""
    return tuple(item for item in items if item.id != book_id)


def clear_items(items: tuple[CartItem, ...]) -> tuple[CartItem, ...]:
    return ()


def item_count(items: tuple[CartItem, ...]) -> int:
    """Total number of copies in the cart."""
    return sum(item.quantity for item in items)


def cart_total(items: tuple[CartItem, ...]) -> Decimal:
    """Sum of price times quantity, rounded to cents."""
    total = sum((item.subtotal for item in items), Decimal("0"))
    return total.quantize(CENTS)
