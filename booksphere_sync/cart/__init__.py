"""
Per-user shopping cart.

``CartService`` owns the cart document of the current session identity;
``operations`` holds the pure item arithmetic it is built on.
"""

from . import operations
from .operations import add_item, cart_total, clear_items, item_count, remove_item
from .service import CartService, CartState, CheckoutResult

__all__ = [
    "CartService",
    "CartState",
    "CheckoutResult",
    "operations",
    "add_item",
    "remove_item",
    "clear_items",
    "item_count",
    "cart_total",
]
