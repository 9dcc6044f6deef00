"""
Cart service.

Mirrors the single cart document owned by the session identity and is
the only write path for the local cart. Mutations are optimistic: the new
items are visible as soon as the method returns, and the remote merge
write is queued behind them.

Remote snapshots always win. A snapshot that arrives after an optimistic
edit replaces local items even if it reflects an older write that is
still in flight (last writer wins by arrival order).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from ..exceptions import DocumentExistsError, SessionError, SubscriptionError, ValidationError
from ..identity.types import Session
from ..logging_utils import get_sync_logger
from ..models import Book, Cart, CartItem, items_from_wire, items_to_wire
from ..paths import cart_document_path
from ..store.base import DocumentSnapshot, DocumentStore
from ..streams import Handler, SnapshotStream, Subscription
from ..writes import PendingWrite, WriteQueue
from . import operations

Items = tuple[CartItem, ...]


class CartState(Enum):
    INACTIVE = "inactive"  # No identity, or not started
    LOADING = "loading"  # Subscribed, waiting for the first snapshot
    LIVE = "live"  # Following the remote document
    FAILED = "failed"  # Listener failed; local items frozen


@dataclass(frozen=True)
class CheckoutResult:
    """Outcome of the checkout placeholder (no payment is taken)."""

    items: Items
    item_count: int
    total: Decimal
    clear_write: PendingWrite


class CartService:
    """Per-user cart kept in sync with its remote document.

    Args:
        store: Remote document store
        deployment_id: Deployment scoping the cart path
        writes: Write queue for cart persistence (a private one if omitted)
    """

    def __init__(
        self,
        store: DocumentStore,
        deployment_id: str,
        writes: WriteQueue | None = None,
    ):
        self.store = store
        self.deployment_id = deployment_id
        self.log = get_sync_logger("cart", deployment_id=deployment_id, identity=None)
        self.writes = writes or WriteQueue(name="cart")
        self.state = CartState.INACTIVE
        self.identity: str | None = None
        self.document_path: str | None = None
        self.init_write: PendingWrite | None = None
        self.error: SubscriptionError | None = None
        self._items: Items = ()
        self._first_read = True
        self._subscription: Subscription | None = None
        self._ready = asyncio.Event()
        self._changes: SnapshotStream[Items] = SnapshotStream("cart-items", replay_latest=True)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, session: Session) -> None:
        """Subscribe to the cart document of ``session.identity``.

        Without an identity the cart stays inactive. Starting again with a
        different identity switches carts; with the same identity it is a
        no-op.
        """
        if not session.has_identity:
            if self.identity is not None:
                self.stop()
                self._replace(())
            self.log.warning("No session identity; cart unavailable")
            return
        if session.identity == self.identity and self._subscription is not None:
            return

        switching = self.identity is not None and session.identity != self.identity
        self.stop()
        if switching:
            self._replace(())

        self.identity = session.identity
        self.log = self.log.bind(identity=session.identity)
        self.document_path = cart_document_path(self.deployment_id, session.identity)
        self._first_read = True
        self._ready = asyncio.Event()
        self.error = None
        self.state = CartState.LOADING
        self._subscription = self.store.subscribe_document(
            self.document_path, self._on_snapshot, self._on_error
        )
        self.log.info("Cart subscribed", extra={"path": self.document_path})

    def stop(self) -> None:
        """Cancel the cart subscription (idempotent). Local items are kept."""
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self.identity = None
        self.log = self.log.bind(identity=None)
        self.document_path = None
        self.state = CartState.INACTIVE

    def close(self) -> None:
        """Stop and release local observers."""
        self.stop()
        self._changes.close()

    def _on_snapshot(self, snapshot: DocumentSnapshot) -> None:
        first_read, self._first_read = self._first_read, False
        if first_read and not snapshot.exists:
            self._replace(())
            self.init_write = self._create_cart(snapshot.path)
            self._mark_live()
            return

        def skip(index: int, error: ValidationError) -> None:
            self.log.warning(
                f"Skipping invalid cart item {index}: {error.message}",
                extra={"path": snapshot.path},
            )

        try:
            items = items_from_wire(snapshot.data.get("items"), on_invalid=skip)
        except ValidationError as e:
            # Local items stay as they were
            self.log.error(
                f"Ignoring malformed cart snapshot: {e.message}",
                extra={"path": snapshot.path},
            )
        else:
            self._replace(items)
        self._mark_live()

    def _on_error(self, error: Exception) -> None:
        if not isinstance(error, SubscriptionError):
            error = SubscriptionError(self.document_path or "cart", error)
        self.error = error
        self.state = CartState.FAILED
        self._subscription = None
        self.log.error("Cart listener failed; local cart frozen", extra=error.details)

    def _mark_live(self) -> None:
        self.state = CartState.LIVE
        self._ready.set()

    def _create_cart(self, path: str) -> PendingWrite:
        async def create() -> None:
            try:
                await self.store.create_document(path, {"items": []})
            except DocumentExistsError:
                self.log.info(f"Cart created concurrently by another client: {path}")

        return self.writes.submit("cart.create", create, path=path)

    async def wait_ready(self) -> None:
        """Wait for the first cart snapshot."""
        await self._ready.wait()

    # =========================================================================
    # Mutations
    # =========================================================================

    def add(self, book: Book) -> PendingWrite:
        """Add one copy of ``book``."""
        return self._mutate("cart.add", operations.add_item(self._items, book))

    def remove(self, book_id: str) -> PendingWrite:
        """Remove every copy of ``book_id``."""
        return self._mutate("cart.remove", operations.remove_item(self._items, book_id))

    def clear(self) -> PendingWrite:
        """Empty the cart."""
        return self._mutate("cart.clear", operations.clear_items(self._items))

    def checkout(self) -> CheckoutResult:
        """Checkout placeholder: always succeeds, then clears the cart.

        No payment is processed.
        """
        items = self._items
        count = operations.item_count(items)
        total = operations.cart_total(items)
        self.log.info(f"Checkout: {count} item(s), total {total}")
        return CheckoutResult(items=items, item_count=count, total=total, clear_write=self.clear())

    def _mutate(self, description: str, items: Items) -> PendingWrite:
        self._replace(items)

        path = self.document_path
        if path is None:
            return self.writes.reject(
                description, SessionError("Cart unavailable: no session identity")
            )

        payload = {"items": items_to_wire(items)}
        return self.writes.submit(
            description,
            lambda: self.store.set_document(path, payload, merge=True),
            path=path,
        )

    def _replace(self, items: Items) -> None:
        self._items = items
        self._changes.publish(items)

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def items(self) -> Items:
        return self._items

    @property
    def cart(self) -> Cart | None:
        if self.identity is None:
            return None
        return Cart(owner_identity=self.identity, items=self._items)

    @property
    def item_count(self) -> int:
        return operations.item_count(self._items)

    @property
    def total(self) -> Decimal:
        return operations.cart_total(self._items)

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    def quantity_of(self, book_id: str) -> int:
        return next((item.quantity for item in self._items if item.id == book_id), 0)

    def subscribe(self, handler: Handler[Items]) -> Subscription:
        """Receive the local items after every change, optimistic or remote."""
        return self._changes.subscribe(handler)

