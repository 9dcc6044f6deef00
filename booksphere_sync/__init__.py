"""
BookSphere Sync

Catalog and cart synchronization engine for the BookSphere storefront.

Provides:
- Session resolution (existing identity, token or anonymous sign-in)
- A live, read-only book catalog seeded once when first found empty
- A per-user cart with optimistic edits and queued merge writes
- Pluggable document stores (in-process, Azure Cosmos DB)

Usage:

    >>> from booksphere_sync import StoreConfig, create_storefront
    >>> config = StoreConfig.from_environment()
    >>> async with await create_storefront(config) as shop:
    ...     await shop.wait_ready()
    ...     book = shop.catalog.get("2")
    ...     write = shop.cart.add(book)      # local cart updated immediately
    ...     await write.wait()               # remote merge write settled
    ...     print(shop.cart.total)

Store Selection:

    # In-process store for tests, demos and single-process use
    from booksphere_sync.store import MemoryDocumentStore

    # Cosmos DB for shared, multi-device state
    from booksphere_sync.store.cosmos import CosmosDocumentStore
"""

# Configuration
from .config import DEFAULT_DEPLOYMENT_ID, CosmosAuthMethod, StoreBackend, StoreConfig

# Services
from .cart import CartService, CartState, CheckoutResult
from .catalog import CatalogService, CatalogState

# Exceptions
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    DocumentExistsError,
    PersistenceError,
    SessionError,
    StorageConnectionError,
    SubscriptionError,
    SyncStoreError,
    ValidationError,
)

# Identity module
from .identity import (
    AuthProvider,
    LocalAuthProvider,
    Session,
    SessionManager,
    SignInMethod,
)
from .mirror import CollectionMirror
from .models import DEFAULT_BOOKS, Book, Cart, CartItem
from .paths import cart_document_path, catalog_collection_path

# Stores
from .store import DocumentStore, MemoryDocumentStore, create_store
from .storefront import StoreFront, create_storefront
from .streams import SnapshotStream, Subscription
from .writes import PendingWrite, RetryConfig, WriteQueue, WriteStatus

# Conditional imports for optional backends
try:
    from .store.cosmos import CosmosDocumentStore  # noqa: F401

    _has_cosmos = True
except ImportError:
    _has_cosmos = False


__all__ = [
    # Configuration
    "StoreConfig",
    "StoreBackend",
    "CosmosAuthMethod",
    "DEFAULT_DEPLOYMENT_ID",
    # Models
    "Book",
    "CartItem",
    "Cart",
    "DEFAULT_BOOKS",
    "catalog_collection_path",
    "cart_document_path",
    # Streams
    "SnapshotStream",
    "Subscription",
    # Stores
    "DocumentStore",
    "MemoryDocumentStore",
    "create_store",
    # Identity
    "AuthProvider",
    "LocalAuthProvider",
    "Session",
    "SessionManager",
    "SignInMethod",
    # Sync
    "CollectionMirror",
    "CatalogService",
    "CatalogState",
    "CartService",
    "CartState",
    "CheckoutResult",
    "PendingWrite",
    "RetryConfig",
    "WriteQueue",
    "WriteStatus",
    "StoreFront",
    "create_storefront",
    # Exceptions
    "SyncStoreError",
    "ConfigurationError",
    "ValidationError",
    "AuthenticationError",
    "SessionError",
    "SubscriptionError",
    "PersistenceError",
    "DocumentExistsError",
    "StorageConnectionError",
]

# Add optional exports
if _has_cosmos:
    __all__.extend(["CosmosDocumentStore"])

__version__ = "0.1.0"
