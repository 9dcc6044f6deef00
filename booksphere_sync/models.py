"""
Core data types for the storefront.

Books are mirrored read-only from the catalog collection; cart items are
books plus a quantity, stored as the ``items`` field of the per-user cart
document. Wire documents use the storefront's camelCase ``imageUrl`` key.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from .exceptions import ValidationError


def parse_price(value: Any) -> Decimal:
    """Convert a wire price into a non-negative Decimal.

    Raises:
        ValidationError: If the value is not a finite, non-negative number
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("price", "must be a number", repr(value))
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("price", "must be a number", repr(value)) from None
    if not price.is_finite() or price < 0:
        raise ValidationError("price", "must be a finite, non-negative number", str(value))
    return price


def _require_str(data: dict[str, Any], key: str, default: str | None = None) -> str:
    value = data.get(key, default)
    if not isinstance(value, str):
        raise ValidationError(key, "must be a string", repr(value))
    return value


@dataclass(frozen=True)
class Book:
    """A purchasable catalog entry.

    Identity is ``id``; every other field is replaced wholesale on write.
    """

    id: str
    title: str
    author: str
    price: Decimal
    image_url: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError("id", "must not be empty")
        object.__setattr__(self, "price", parse_price(self.price))

    def to_document(self) -> dict[str, Any]:
        """Catalog document body: the book's fields minus ``id``."""
        return {
            "title": self.title,
            "author": self.author,
            "price": float(self.price),
            "imageUrl": self.image_url,
            "description": self.description,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize including ``id``."""
        return {"id": self.id, **self.to_document()}

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> Book:
        """Build a book from a catalog document keyed by ``doc_id``."""
        return cls(
            id=doc_id,
            title=_require_str(data, "title"),
            author=_require_str(data, "author", ""),
            price=parse_price(data.get("price")),
            image_url=_require_str(data, "imageUrl", ""),
            description=_require_str(data, "description", ""),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Book:
        """Deserialize a dictionary that carries its own ``id``."""
        return cls.from_document(_require_str(data, "id"), data)


@dataclass(frozen=True)
class CartItem:
    """A book in the cart with a positive quantity."""

    book: Book
    quantity: int = 1

    def __post_init__(self) -> None:
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValidationError("quantity", "must be an integer", repr(self.quantity))
        if self.quantity < 1:
            raise ValidationError("quantity", "must be positive", str(self.quantity))

    @property
    def id(self) -> str:
        return self.book.id

    @property
    def subtotal(self) -> Decimal:
        return self.book.price * self.quantity

    def with_quantity(self, quantity: int) -> CartItem:
        return CartItem(book=self.book, quantity=quantity)

    def to_dict(self) -> dict[str, Any]:
        """Serialize as a flat book dictionary plus ``quantity``."""
        return {**self.book.to_dict(), "quantity": self.quantity}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CartItem:
        quantity = data.get("quantity", 1)
        if isinstance(quantity, float) and quantity.is_integer():
            quantity = int(quantity)
        return cls(book=Book.from_dict(data), quantity=quantity)


@dataclass(frozen=True)
class Cart:
    """The single cart owned by one session identity."""

    owner_identity: str
    items: tuple[CartItem, ...] = field(default_factory=tuple)

    def to_document(self) -> dict[str, Any]:
        return {"items": items_to_wire(self.items)}


def items_to_wire(items: tuple[CartItem, ...]) -> list[dict[str, Any]]:
    """Serialize cart items for the ``items`` document field."""
    return [item.to_dict() for item in items]


def items_from_wire(
    raw: Any,
    on_invalid: Callable[[int, ValidationError], None] | None = None,
) -> tuple[CartItem, ...]:
    """Parse the ``items`` document field, defaulting to empty if absent.

    Args:
        raw: Value of the ``items`` field
        on_invalid: Called with ``(index, error)`` for each entry that does
            not parse; the entry is then skipped instead of failing the
            whole field

    Raises:
        ValidationError: If the field is not a list, or an entry is invalid
            and no ``on_invalid`` callback was given
    """
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ValidationError("items", "must be a list", type(raw).__name__)

    items = []
    for index, entry in enumerate(raw):
        try:
            if not isinstance(entry, dict):
                raise ValidationError("items", "entries must be objects", type(entry).__name__)
            items.append(CartItem.from_dict(entry))
        except ValidationError as e:
            if on_invalid is None:
                raise
            on_invalid(index, e)
    return tuple(items)


def _placeholder_image(number: int) -> str:
    return f"https://placehold.co/400x600/1e293b/d4d4d8?text=Book+{number}"


# Seeded into an empty catalog on first load
DEFAULT_BOOKS: tuple[Book, ...] = (
    Book(
        id="1",
        title="The Lord of the Rings",
        author="J.R.R. Tolkien",
        price=Decimal("29.99"),
        image_url=_placeholder_image(1),
        description="A classic high fantasy novel.",
    ),
    Book(
        id="2",
        title="The Hitchhiker's Guide to the Galaxy",
        author="Douglas Adams",
        price=Decimal("15.50"),
        image_url=_placeholder_image(2),
        description="A comedic science fiction series.",
    ),
    Book(
        id="3",
        title="Dune",
        author="Frank Herbert",
        price=Decimal("22.00"),
        image_url=_placeholder_image(3),
        description="An epic science fiction novel.",
    ),
    Book(
        id="4",
        title="1984",
        author="George Orwell",
        price=Decimal("12.99"),
        image_url=_placeholder_image(4),
        description="A dystopian social science fiction novel.",
    ),
    Book(
        id="5",
        title="Pride and Prejudice",
        author="Jane Austen",
        price=Decimal("10.75"),
        image_url=_placeholder_image(5),
        description="A romantic novel of manners.",
    ),
)
