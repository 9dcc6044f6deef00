"""
Local auth provider.

Issues identities in process, optionally persisting the signed-in
identity to a YAML file so a restart finds it again:

```yaml
identity:
  user_id: "anon-2f1c0c3e8d5a4b7f9e6d1a2b3c4d5e6f"
  method: anonymous
```

Token sign-in derives a stable identity from the token itself, so the
same token always maps to the same cart.
"""

import hashlib
import logging
import uuid
from pathlib import Path
from typing import Any

import yaml

from ..exceptions import AuthenticationError
from ..streams import Handler, SnapshotStream, Subscription
from .provider import AuthProvider
from .types import SignInMethod

logger = logging.getLogger(__name__)


def identity_for_token(token: str) -> str:
    """Stable identity derived from a session token."""
    digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
    return f"token-{digest[:32]}"


class LocalAuthProvider(AuthProvider):
    """Auth provider that signs users in locally.

    Args:
        state_path: Optional YAML file persisting the identity across
            restarts. Without it the identity lives for the process only.
        accepted_tokens: If given, only these tokens are accepted.
    """

    def __init__(
        self,
        state_path: Path | None = None,
        accepted_tokens: set[str] | None = None,
    ):
        self.state_path = state_path
        self.accepted_tokens = accepted_tokens
        self._identity: str | None = None
        self._loaded = False
        self._changes: SnapshotStream[str | None] = SnapshotStream("identity")

    async def current_identity(self) -> str | None:
        if not self._loaded:
            self._identity = self._load_state().get("identity", {}).get("user_id")
            self._loaded = True
        return self._identity

    async def sign_in_anonymously(self) -> str:
        identity = f"anon-{uuid.uuid4().hex}"
        self._set_identity(identity, SignInMethod.ANONYMOUS)
        return identity

    async def sign_in_with_token(self, token: str) -> str:
        if not token or not token.strip():
            raise AuthenticationError(SignInMethod.TOKEN.value, "empty token")
        if self.accepted_tokens is not None and token not in self.accepted_tokens:
            raise AuthenticationError(SignInMethod.TOKEN.value, "token not recognized")
        identity = identity_for_token(token)
        self._set_identity(identity, SignInMethod.TOKEN)
        return identity

    async def sign_out(self) -> None:
        self._identity = None
        self._loaded = True
        if self.state_path is not None and self.state_path.exists():
            self.state_path.unlink()
        self._changes.publish(None)

    def subscribe(self, handler: Handler[str | None]) -> Subscription:
        return self._changes.subscribe(handler)

    async def drain(self) -> None:
        """Wait until subscribers have handled every identity change."""
        await self._changes.drain()

    def _set_identity(self, identity: str, method: SignInMethod) -> None:
        self._identity = identity
        self._loaded = True
        self._save_state({"identity": {"user_id": identity, "method": method.value}})
        logger.info(f"Signed in ({method.value}): {identity}")
        self._changes.publish(identity)

    def _load_state(self) -> dict[str, Any]:
        """Load persisted identity from YAML file."""
        if self.state_path is None or not self.state_path.exists():
            return {}

        try:
            content = self.state_path.read_text()
            return yaml.safe_load(content) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Ignoring unreadable identity file {self.state_path}: {e}")
            return {}

    def _save_state(self, state: dict[str, Any]) -> None:
        if self.state_path is None:
            return
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        self.state_path.write_text(yaml.safe_dump(state, default_flow_style=False))
