"""
Identity management for the sync engine.

Provides the auth provider abstraction, a local provider, and the
session manager that resolves and tracks the current identity.
"""

from .local_provider import LocalAuthProvider, identity_for_token
from .provider import AuthProvider
from .session_manager import SessionManager
from .types import Session, SignInMethod

__all__ = [
    # Types
    "Session",
    "SignInMethod",
    # Providers
    "AuthProvider",
    "LocalAuthProvider",
    "identity_for_token",
    # Session
    "SessionManager",
]
