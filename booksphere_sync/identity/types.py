"""
Identity types.

Defines the session value handed to every service that needs to know
"who am I?".
"""

from dataclasses import dataclass
from enum import Enum


class SignInMethod(Enum):
    """How the current identity was obtained."""

    EXISTING = "existing"  # Identity already known to the auth backend
    TOKEN = "token"  # Pre-issued session token
    ANONYMOUS = "anonymous"  # Fresh anonymous sign-in
    CHANGED = "changed"  # Identity-change event after first resolution


@dataclass(frozen=True)
class Session:
    """Resolved session state.

    ``ready`` turns true once, after the first resolution, whether or not
    an identity was obtained. ``identity`` is None when sign-in failed:
    the cart is unavailable but the catalog still works.
    """

    identity: str | None = None
    ready: bool = False
    method: SignInMethod | None = None

    @property
    def has_identity(self) -> bool:
        return self.ready and bool(self.identity)
