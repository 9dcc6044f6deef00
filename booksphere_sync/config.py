"""
Static configuration for the storefront sync engine.

Configuration is provided once at startup, either directly, from
environment variables, or from the ``sync:`` section of a YAML file:

```yaml
sync:
  deployment_id: "bookstore-prod"
  initial_auth_token: null
  backend: cosmos
  cosmos_endpoint: "https://bookstore.documents.azure.com:443/"
  cosmos_database: "bookstore"
  cosmos_container: "documents"
  cosmos_auth_method: default_credential
  poll_interval: 2.0
  write_max_retries: 3
```
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

DEFAULT_DEPLOYMENT_ID = "default-app-id"


class StoreBackend(Enum):
    """Remote document store implementations."""

    MEMORY = "memory"  # In-process store (tests, demo, single process)
    COSMOS = "cosmos"  # Azure Cosmos DB


class CosmosAuthMethod(Enum):
    """Authentication method for Cosmos DB.

    KEY: Use account key (development/testing)
    DEFAULT_CREDENTIAL: Use Azure DefaultAzureCredential (recommended)
    """

    KEY = "key"
    DEFAULT_CREDENTIAL = "default_credential"


@dataclass
class StoreConfig:
    """Configuration for the sync engine.

    Environment Variables:
        BOOKSPHERE_DEPLOYMENT_ID: Deployment identifier scoping all paths
        BOOKSPHERE_AUTH_TOKEN: Pre-issued session token (anonymous if unset)
        BOOKSPHERE_BACKEND: memory or cosmos (default: memory)
        BOOKSPHERE_IDENTITY_PATH: File persisting the local identity
        BOOKSPHERE_COSMOS_ENDPOINT: Cosmos DB endpoint URL
        BOOKSPHERE_COSMOS_KEY: Cosmos DB key (if using key auth)
        BOOKSPHERE_COSMOS_DATABASE: Database name (default: booksphere)
        BOOKSPHERE_COSMOS_CONTAINER: Container name (default: documents)
        BOOKSPHERE_COSMOS_AUTH_METHOD: Auth method (default: default_credential)
        BOOKSPHERE_POLL_INTERVAL: Seconds between Cosmos snapshot polls

    Attributes:
        deployment_id: Identifier scoping the catalog and cart paths
        initial_auth_token: Optional pre-issued token for token sign-in
        backend: Which document store to use
        identity_path: Optional file that persists the signed-in identity
        cosmos_*: Cosmos DB connection settings
        poll_interval: Seconds between snapshot polls (Cosmos only)
        write_max_retries: Retries for a failed remote write
        write_backoff_base: First retry delay in seconds
        write_backoff_max: Cap on the retry delay in seconds
    """

    deployment_id: str = DEFAULT_DEPLOYMENT_ID
    initial_auth_token: str | None = None
    backend: StoreBackend = StoreBackend.MEMORY
    identity_path: Path | None = None

    # Cosmos DB connection settings
    cosmos_endpoint: str | None = None
    cosmos_database: str = "booksphere"
    cosmos_container: str = "documents"
    cosmos_auth_method: CosmosAuthMethod = CosmosAuthMethod.DEFAULT_CREDENTIAL
    cosmos_key: str | None = None
    poll_interval: float = 2.0

    # Write queue
    write_max_retries: int = 3
    write_backoff_base: float = 0.5
    write_backoff_max: float = 10.0

    def validate(self) -> None:
        """Check the configuration for consistency.

        Raises:
            ConfigurationError: If a setting is missing or out of range
        """
        deployment_id = self.deployment_id
        if not isinstance(deployment_id, str) or not deployment_id or "/" in deployment_id:
            raise ConfigurationError("deployment_id", "must be a non-empty path segment")
        token = self.initial_auth_token
        if token is not None and (not isinstance(token, str) or not token.strip()):
            raise ConfigurationError("initial_auth_token", "must be a non-blank string")
        if self.write_max_retries < 0:
            raise ConfigurationError("write_max_retries", "must be >= 0")
        if not self.poll_interval > 0:
            raise ConfigurationError("poll_interval", "must be positive")
        if self.backend == StoreBackend.COSMOS:
            if not self.cosmos_endpoint:
                raise ConfigurationError("cosmos_endpoint", "required for the cosmos backend")
            if self.cosmos_auth_method == CosmosAuthMethod.KEY and not self.cosmos_key:
                raise ConfigurationError("cosmos_key", "required for key authentication")

    @classmethod
    def from_environment(cls) -> StoreConfig:
        """Create configuration from ``BOOKSPHERE_*`` environment variables."""
        data: dict[str, Any] = {
            "deployment_id": os.environ.get("BOOKSPHERE_DEPLOYMENT_ID"),
            "initial_auth_token": os.environ.get("BOOKSPHERE_AUTH_TOKEN"),
            "backend": os.environ.get("BOOKSPHERE_BACKEND"),
            "identity_path": os.environ.get("BOOKSPHERE_IDENTITY_PATH"),
            "cosmos_endpoint": os.environ.get("BOOKSPHERE_COSMOS_ENDPOINT"),
            "cosmos_key": os.environ.get("BOOKSPHERE_COSMOS_KEY"),
            "cosmos_database": os.environ.get("BOOKSPHERE_COSMOS_DATABASE"),
            "cosmos_container": os.environ.get("BOOKSPHERE_COSMOS_CONTAINER"),
            "cosmos_auth_method": os.environ.get("BOOKSPHERE_COSMOS_AUTH_METHOD"),
            "poll_interval": os.environ.get("BOOKSPHERE_POLL_INTERVAL"),
        }
        return cls.from_dict({k: v for k, v in data.items() if v})

    @classmethod
    def from_yaml(cls, path: Path) -> StoreConfig:
        """Load configuration from the ``sync:`` section of a YAML file.

        A missing file yields the defaults.
        """
        if not path.exists():
            return cls()

        try:
            content = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(str(path), f"unreadable YAML: {e}") from e

        return cls.from_dict(content.get("sync", {}) or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoreConfig:
        """Build a config from plain values, coercing enums, paths and numbers."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(", ".join(sorted(unknown)), "unknown setting")

        values = dict(data)
        for name, enum_type in (
            ("backend", StoreBackend),
            ("cosmos_auth_method", CosmosAuthMethod),
        ):
            if name not in values or isinstance(values[name], enum_type):
                continue
            try:
                values[name] = enum_type(str(values[name]).lower())
            except ValueError as e:
                raise ConfigurationError(name, str(e)) from e

        if values.get("identity_path") is not None:
            values["identity_path"] = Path(values["identity_path"]).expanduser()

        for name in (
            "deployment_id",
            "initial_auth_token",
            "cosmos_endpoint",
            "cosmos_key",
            "cosmos_database",
            "cosmos_container",
        ):
            # YAML turns bare numeric tokens and ids into ints
            if values.get(name) is not None and not isinstance(values[name], str):
                values[name] = str(values[name])

        for name, number_type in (
            ("poll_interval", float),
            ("write_backoff_base", float),
            ("write_backoff_max", float),
            ("write_max_retries", int),
        ):
            if name not in values:
                continue
            try:
                values[name] = number_type(values[name])
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    name, f"expected {number_type.__name__}, got {values[name]!r}"
                ) from e

        return cls(**values)
