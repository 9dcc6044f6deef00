"""
Auth provider abstract interface.

Defines the contract that every auth backend must implement.
"""

from abc import ABC, abstractmethod

from ..streams import Handler, Subscription


class AuthProvider(ABC):
    """Abstract auth backend.

    The provider is responsible for:
    - Reporting an identity that is already signed in
    - Anonymous and token-based sign-in
    - Publishing identity changes to subscribers
    """

    @abstractmethod
    async def current_identity(self) -> str | None:
        """Return the signed-in identity, or None if nobody is signed in."""
        ...

    @abstractmethod
    async def sign_in_anonymously(self) -> str:
        """Create a fresh anonymous identity and sign it in.

        Raises:
            AuthenticationError: If the backend refuses the sign-in
        """
        ...

    @abstractmethod
    async def sign_in_with_token(self, token: str) -> str:
        """Sign in with a pre-issued session token.

        Raises:
            AuthenticationError: If the token is rejected
        """
        ...

    @abstractmethod
    async def sign_out(self) -> None:
        """Forget the current identity.

        Subscribers receive ``None``.
        """
        ...

    @abstractmethod
    def subscribe(self, handler: Handler[str | None]) -> Subscription:
        """Listen for identity changes (new identity or None on sign-out)."""
        ...
