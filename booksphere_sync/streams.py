"""
Cancellable snapshot streams.

Every live feed in the engine (identity changes, collection snapshots,
document snapshots, local cart changes) is a ``SnapshotStream``. Consumers
call ``subscribe(handler)`` and get back a ``Subscription`` cancel token.

Each subscriber owns a channel: a FIFO queue drained by one dispatcher task.
The handler runs to completion (awaited if it is a coroutine function)
before the next event is taken, so a subscriber sees events in publish
order and never runs two handlers at once.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Handler = Callable[[T], Awaitable[None] | None]
ErrorHandler = Callable[[Exception], Awaitable[None] | None]

_VALUE = "value"
_ERROR = "error"


class Subscription:
    """Cancel token for a live subscription.

    ``cancel()`` releases the underlying listener. Calling it again, or on
    a token that never had a listener, is a no-op.
    """

    def __init__(self, on_cancel: Callable[[], None] | None = None, name: str = ""):
        self._on_cancel = on_cancel
        self._cancelled = False
        self.name = name

    @classmethod
    def inactive(cls, name: str = "") -> Subscription:
        """A token with nothing behind it (already released)."""
        token = cls(name=name)
        token._cancelled = True
        return token

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        on_cancel, self._on_cancel = self._on_cancel, None
        if on_cancel is not None:
            on_cancel()

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"Subscription({self.name!r}, {state})"


class _Channel(Generic[T]):
    """One subscriber's queue and dispatcher task."""

    def __init__(self, name: str, handler: Handler[T], on_error: ErrorHandler | None):
        self.name = name
        self.handler = handler
        self.on_error = on_error
        self.closed = False
        self.queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self.task = asyncio.get_running_loop().create_task(
            self._run(), name=f"snapshot-stream:{name}"
        )

    def put(self, kind: str, payload: Any) -> None:
        if not self.closed:
            self.queue.put_nowait((kind, payload))

    async def _run(self) -> None:
        while True:
            kind, payload = await self.queue.get()
            try:
                if kind == _VALUE:
                    await _invoke(self.handler, payload)
                elif self.on_error is not None:
                    await _invoke(self.on_error, payload)
                else:
                    logger.error(f"Unhandled stream error on {self.name}: {payload}")
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Subscriber handler failed on {self.name}")
            finally:
                self.queue.task_done()

            if kind == _ERROR:
                self.close()
                return

    def close(self) -> None:
        """Stop delivery and discard anything still queued."""
        if self.closed:
            return
        self.closed = True
        while True:
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self.queue.task_done()
        try:
            current = asyncio.current_task()
        except RuntimeError:
            # Released from synchronous code with no running loop
            current = None
        if self.task is current or self.task.done():
            return
        if not self.task.get_loop().is_closed():
            self.task.cancel()

    async def idle(self) -> None:
        await self.queue.join()


async def _invoke(fn: Callable[[Any], Any], payload: Any) -> None:
    result = fn(payload)
    if inspect.isawaitable(result):
        await result


class SnapshotStream(Generic[T]):
    """Broadcast stream of complete snapshots.

    Args:
        name: Label used in task names and log messages
        replay_latest: Deliver the most recent value to new subscribers
            immediately (used for the session stream)
    """

    def __init__(self, name: str, replay_latest: bool = False):
        self.name = name
        self.replay_latest = replay_latest
        self._channels: list[_Channel[T]] = []
        self._latest: T | None = None
        self._has_latest = False
        self._closed = False

    @property
    def latest(self) -> T | None:
        return self._latest

    @property
    def subscriber_count(self) -> int:
        return len([c for c in self._channels if not c.closed])

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_pending(self) -> bool:
        """True while any subscriber still has snapshots queued."""
        return any(not c.closed and not c.queue.empty() for c in self._channels)

    def subscribe(
        self,
        handler: Handler[T],
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        """Register ``handler`` for every future snapshot.

        Must be called from a running event loop.
        """
        if self._closed:
            return Subscription.inactive(self.name)

        channel: _Channel[T] = _Channel(self.name, handler, on_error)
        self._channels.append(channel)
        if self.replay_latest and self._has_latest:
            channel.put(_VALUE, self._latest)

        def release() -> None:
            channel.close()
            if channel in self._channels:
                self._channels.remove(channel)

        return Subscription(release, name=self.name)

    def publish(self, value: T) -> None:
        """Queue ``value`` for every subscriber."""
        if self._closed:
            return
        self._latest = value
        self._has_latest = True
        for channel in list(self._channels):
            channel.put(_VALUE, value)

    def fail(self, error: Exception) -> None:
        """Deliver ``error`` to every subscriber and end the stream."""
        if self._closed:
            return
        for channel in list(self._channels):
            channel.put(_ERROR, error)
        self._closed = True

    async def drain(self) -> None:
        """Wait until every queued snapshot has been handled."""
        channels = [c for c in self._channels if not c.closed]
        if channels:
            await asyncio.gather(*(c.idle() for c in channels))

    def close(self) -> None:
        """Cancel every subscriber."""
        self._closed = True
        for channel in self._channels:
            channel.close()
        self._channels.clear()
