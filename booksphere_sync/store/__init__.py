"""
Remote document stores.

The sync engine talks to a ``DocumentStore``; ``create_store`` picks the
backend named in the configuration.
"""

from ..config import StoreBackend, StoreConfig
from .base import CollectionSnapshot, DocumentSnapshot, DocumentStore
from .memory import MemoryDocumentStore, WriteRecord


async def create_store(config: StoreConfig) -> DocumentStore:
    """Create and initialize the configured document store."""
    if config.backend == StoreBackend.COSMOS:
        try:
            from .cosmos import CosmosDocumentStore
        except ImportError as e:
            raise ImportError(
                "azure-cosmos and azure-identity are required for the cosmos backend. "
                "Install with: pip install azure-cosmos azure-identity"
            ) from e
        return await CosmosDocumentStore.create(config)
    return MemoryDocumentStore()


__all__ = [
    "CollectionSnapshot",
    "DocumentSnapshot",
    "DocumentStore",
    "MemoryDocumentStore",
    "WriteRecord",
    "create_store",
]
