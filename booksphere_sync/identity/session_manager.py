"""
Session manager.

Establishes and tracks the user identity against the auth provider and
publishes the resulting ``Session`` to every dependent service.
"""

import asyncio
import logging

from ..exceptions import SessionError
from ..streams import Handler, SnapshotStream, Subscription
from .provider import AuthProvider
from .types import Session, SignInMethod

logger = logging.getLogger(__name__)


class SessionManager:
    """Resolves the session once and follows identity changes afterwards.

    Resolution order:
    1. An identity the provider already knows about
    2. Token sign-in, if a token is configured
    3. Anonymous sign-in

    A failed sign-in is logged and resolves to ``Session(identity=None,
    ready=True)`` so dependents are never left waiting.

    Usage:
        manager = SessionManager(provider, initial_auth_token=None)
        session = await manager.resolve()
        token = manager.subscribe(on_session)   # current session replayed
        ...
        manager.close()
    """

    def __init__(self, provider: AuthProvider, initial_auth_token: str | None = None):
        self.provider = provider
        self.initial_auth_token = initial_auth_token
        self._session = Session()
        self._stream: SnapshotStream[Session] = SnapshotStream("session", replay_latest=True)
        self._resolving: asyncio.Task[Session] | None = None
        self._listener: Subscription | None = None

    @property
    def session(self) -> Session:
        """Current session (``ready`` is False until the first resolution)."""
        return self._session

    async def resolve(self) -> Session:
        """Resolve the session, signing in if needed.

        Concurrent callers share the same resolution; later calls return
        the current session.
        """
        if self._session.ready:
            return self._session
        if self._resolving is None:
            self._resolving = asyncio.ensure_future(self._resolve())
        return await asyncio.shield(self._resolving)

    async def _resolve(self) -> Session:
        identity: str | None = None
        method: SignInMethod | None = None

        try:
            identity = await self.provider.current_identity()
            if identity:
                method = SignInMethod.EXISTING
            elif self.initial_auth_token:
                identity = await self.provider.sign_in_with_token(self.initial_auth_token)
                method = SignInMethod.TOKEN
            else:
                identity = await self.provider.sign_in_anonymously()
                method = SignInMethod.ANONYMOUS
        except Exception as e:
            error = SessionError("Sign-in failed; cart unavailable", cause=e)
            logger.error(error.message, extra=error.details)
            identity, method = None, None

        self._session = Session(identity=identity, ready=True, method=method)
        self._listener = self.provider.subscribe(self._on_identity_changed)
        logger.info(
            "Session ready",
            extra={"identity": identity, "method": method.value if method else None},
        )
        self._stream.publish(self._session)
        return self._session

    def _on_identity_changed(self, identity: str | None) -> None:
        if identity == self._session.identity:
            return
        logger.info(f"Identity changed: {self._session.identity} -> {identity}")
        self._session = Session(identity=identity, ready=True, method=SignInMethod.CHANGED)
        self._stream.publish(self._session)

    def subscribe(self, handler: Handler[Session]) -> Subscription:
        """Receive the resolved session and every later change.

        Subscribers registered after resolution get the current session
        immediately.
        """
        return self._stream.subscribe(handler)

    async def drain(self) -> None:
        """Wait until every subscriber has handled the queued sessions."""
        await self._stream.drain()

    def close(self) -> None:
        """Stop following identity changes and release subscribers."""
        if self._listener is not None:
            self._listener.cancel()
            self._listener = None
        if self._resolving is not None and not self._resolving.done():
            self._resolving.cancel()
        self._stream.close()
