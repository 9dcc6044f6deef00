"""
Custom exceptions for the storefront sync engine.

Every component raises (or logs) these exceptions so callers can
tell session, subscription and persistence failures apart.
"""


class SyncStoreError(Exception):
    """Base exception for all sync engine errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(SyncStoreError):
    """Raised when the static configuration is invalid."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid configuration for {field}: {reason}", {"field": field})
        self.field = field
        self.reason = reason


class ValidationError(SyncStoreError):
    """Raised when document data cannot be turned into a model."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class AuthenticationError(SyncStoreError):
    """Raised when the auth backend rejects a sign-in."""

    def __init__(self, method: str, reason: str | None = None):
        details = {"method": method}
        if reason:
            details["reason"] = reason
        message = f"Authentication failed ({method})"
        if reason:
            message += f": {reason}"
        super().__init__(message, details)
        self.method = method
        self.reason = reason


class SessionError(SyncStoreError):
    """Raised when no session identity could be established.

    Non-fatal: the catalog keeps working, only the cart is unavailable.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        details: dict = {}
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.cause = cause


class SubscriptionError(SyncStoreError):
    """Raised when a live listener on a collection or document fails."""

    def __init__(self, path: str, cause: Exception | None = None):
        details = {"path": path}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Subscription failed for {path}", details)
        self.path = path
        self.cause = cause


class PersistenceError(SyncStoreError):
    """Raised when a remote write fails for good (after retries)."""

    def __init__(
        self,
        operation: str,
        path: str | None = None,
        cause: Exception | None = None,
        attempts: int = 1,
    ):
        details: dict = {"operation": operation, "attempts": attempts}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Persistence failed during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause
        self.attempts = attempts


class DocumentExistsError(SyncStoreError):
    """Raised when creating a document that already exists."""

    def __init__(self, path: str):
        super().__init__(f"Document already exists: {path}", {"path": path})
        self.path = path


class StorageConnectionError(SyncStoreError):
    """Raised when the remote store cannot be reached.

    Transient: the write queue retries writes that fail with this error.
    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause
