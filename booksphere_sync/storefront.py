"""
Storefront composition root.

Wires the document store, the auth provider and the session manager to the
catalog and cart services, and owns their lifecycle. Consumers get the
services from here instead of reaching for shared globals.

Usage:
    config = StoreConfig.from_environment()
    async with await create_storefront(config) as shop:
        await shop.catalog.wait_ready()
        shop.cart.add(shop.catalog.books[0])
"""

from __future__ import annotations

import logging

from .cart import CartService
from .catalog import CatalogService
from .config import StoreConfig
from .identity import AuthProvider, LocalAuthProvider, Session, SessionManager
from .store import DocumentStore, create_store
from .streams import Subscription
from .writes import RetryConfig, WriteQueue

logger = logging.getLogger(__name__)


class StoreFront:
    """Owns one deployment's session, catalog and cart.

    Args:
        config: Static configuration
        store: Document store to use (built from ``config`` on ``start`` if
            omitted, and then closed with the storefront)
        provider: Auth provider (a ``LocalAuthProvider`` persisting to
            ``config.identity_path`` if omitted)
    """

    def __init__(
        self,
        config: StoreConfig,
        store: DocumentStore | None = None,
        provider: AuthProvider | None = None,
    ):
        config.validate()
        self.config = config
        self._store = store
        self._owns_store = store is None
        self.provider = provider or LocalAuthProvider(state_path=config.identity_path)
        self.sessions = SessionManager(self.provider, config.initial_auth_token)
        self.writes = WriteQueue(
            RetryConfig(
                max_retries=config.write_max_retries,
                backoff_base=config.write_backoff_base,
                backoff_max=config.write_backoff_max,
            ),
            name="storefront",
        )
        self._catalog: CatalogService | None = None
        self._cart: CartService | None = None
        self._session_listener: Subscription | None = None
        self._started = False

    @property
    def store(self) -> DocumentStore:
        if self._store is None:
            raise RuntimeError("StoreFront not started")
        return self._store

    @property
    def catalog(self) -> CatalogService:
        if self._catalog is None:
            raise RuntimeError("StoreFront not started")
        return self._catalog

    @property
    def cart(self) -> CartService:
        if self._cart is None:
            raise RuntimeError("StoreFront not started")
        return self._cart

    @property
    def session(self) -> Session:
        return self.sessions.session

    async def start(self) -> StoreFront:
        """Resolve the session and start the catalog and cart services.

        Calling ``start`` again is a no-op.
        """
        if self._started:
            return self
        self._started = True

        if self._store is None:
            self._store = await create_store(self.config)

        deployment_id = self.config.deployment_id
        self._catalog = CatalogService(self._store, deployment_id, writes=self.writes)
        self._cart = CartService(self._store, deployment_id, writes=self.writes)

        session = await self.sessions.resolve()
        self._catalog.start(session)
        self._cart.start(session)
        # Replays the current session; the cart ignores a repeat of its identity
        self._session_listener = self.sessions.subscribe(self._on_session)

        logger.info(
            "Storefront started",
            extra={"deployment_id": deployment_id, "identity": session.identity},
        )
        return self

    def _on_session(self, session: Session) -> None:
        if self._cart is not None:
            self._cart.start(session)

    async def wait_ready(self) -> None:
        """Wait for the first catalog snapshot, and the first cart snapshot
        when the session has an identity."""
        await self.catalog.wait_ready()
        if self.session.has_identity:
            await self.cart.wait_ready()

    async def close(self) -> None:
        """Cancel every subscription, stop the write queue, release the store."""
        if self._session_listener is not None:
            self._session_listener.cancel()
            self._session_listener = None
        if self._catalog is not None:
            self._catalog.stop()
        if self._cart is not None:
            self._cart.close()
        self.sessions.close()
        await self.writes.close()
        if self._owns_store and self._store is not None:
            await self._store.close()
        logger.info("Storefront closed")

    async def __aenter__(self) -> StoreFront:
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def create_storefront(
    config: StoreConfig | None = None,
    store: DocumentStore | None = None,
    provider: AuthProvider | None = None,
) -> StoreFront:
    """Build and start a storefront (configuration from the environment by default)."""
    storefront = StoreFront(config or StoreConfig.from_environment(), store, provider)
    return await storefront.start()
