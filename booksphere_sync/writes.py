"""Write queue for remote persistence.

Local state never waits on the network: services apply their change,
submit the remote write here, and hand the caller a ``PendingWrite`` whose
status can be observed or awaited. Writes run one at a time in submission
order, each retried with exponential backoff on transient errors.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .exceptions import PersistenceError, StorageConnectionError

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any]]


@dataclass
class RetryConfig:
    """Configuration for retry with exponential backoff."""

    max_retries: int = 3
    backoff_base: float = 0.5  # seconds
    backoff_max: float = 10.0  # cap
    backoff_multiplier: float = 2.0
    retryable_exceptions: tuple[type[Exception], ...] = (
        StorageConnectionError,
        ConnectionError,
        TimeoutError,
        OSError,
    )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (0-based)."""
        return min(self.backoff_base * (self.backoff_multiplier**attempt), self.backoff_max)


class WriteStatus(Enum):
    PENDING = "pending"  # Queued or in flight
    CONFIRMED = "confirmed"  # Accepted by the remote store
    FAILED = "failed"  # Gave up; local state may diverge until the next snapshot


@dataclass
class PendingWrite:
    """Observable outcome of one remote write.

    Attributes:
        write_id: Sequential id, unique per queue
        description: What the write does (e.g. "cart.add")
        path: Target document path
        status: PENDING until the write is confirmed or fails for good
        attempts: Number of attempts made so far
        error: Final error when FAILED
    """

    write_id: int
    description: str
    path: str | None = None
    status: WriteStatus = WriteStatus.PENDING
    attempts: int = 0
    error: PersistenceError | None = None
    _done: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)

    @property
    def done(self) -> bool:
        return self.status != WriteStatus.PENDING

    async def wait(self) -> WriteStatus:
        """Wait for the write to settle; never raises the write's error."""
        await self._done.wait()
        return self.status

    def _settle(self, status: WriteStatus, error: PersistenceError | None = None) -> None:
        self.status = status
        self.error = error
        self._done.set()


async def retry_with_backoff(
    operation: Operation,
    config: RetryConfig,
    context_msg: str = "",
    on_attempt: Callable[[int], None] | None = None,
) -> Any:
    """Execute an async operation with bounded retry and backoff.

    Args:
        operation: Async callable to execute
        config: Retry configuration
        context_msg: Extra context for log messages (e.g. document path)
        on_attempt: Called with the 1-based attempt number before each try

    Returns:
        Result of operation

    Raises:
        Exception: Last exception after all retries are exhausted, or the
            first non-retryable one
    """
    ctx = f" [{context_msg}]" if context_msg else ""

    for attempt in range(config.max_retries + 1):
        if on_attempt is not None:
            on_attempt(attempt + 1)
        try:
            result = await operation()
        except Exception as exc:
            is_retryable = isinstance(exc, config.retryable_exceptions)
            if not is_retryable or attempt >= config.max_retries:
                logger.error(
                    "RETRY_EXHAUSTED: attempt=%d/%d retryable=%s%s: %s",
                    attempt + 1,
                    config.max_retries + 1,
                    is_retryable,
                    ctx,
                    exc,
                )
                raise

            delay = config.delay_for(attempt)
            logger.warning(
                "RETRYING: attempt=%d/%d delay=%.2fs%s: %s",
                attempt + 1,
                config.max_retries + 1,
                delay,
                ctx,
                exc,
            )
            await asyncio.sleep(delay)
        else:
            if attempt > 0:
                logger.warning(
                    "RETRY_RECOVERED: succeeded on attempt %d/%d%s",
                    attempt + 1,
                    config.max_retries + 1,
                    ctx,
                )
            return result

    raise RuntimeError("retry_with_backoff exhausted without raising")  # pragma: no cover


class WriteQueue:
    """Ordered queue of remote writes with per-write status.

    Failures are logged as ``PersistenceError`` and recorded on the
    ``PendingWrite``; they are never raised to whoever submitted the write.

    Only unsettled writes are tracked for ``pending``; ``history`` keeps the
    most recent ``history_size`` writes of any status.

    Must be used from a running event loop.
    """

    def __init__(
        self,
        retry: RetryConfig | None = None,
        name: str = "writes",
        history_size: int = 1000,
    ):
        self.retry = retry or RetryConfig()
        self.name = name
        self._queue: asyncio.Queue[tuple[PendingWrite, Operation]] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._ids = itertools.count(1)
        self._closed = False
        self.history: deque[PendingWrite] = deque(maxlen=history_size)
        self._unsettled: dict[int, PendingWrite] = {}

    def submit(
        self, description: str, operation: Operation, path: str | None = None
    ) -> PendingWrite:
        """Queue ``operation`` and return its status handle immediately."""
        write = self._new_write(description, path)
        if self._closed:
            self._fail(write, RuntimeError("write queue closed"))
            return write

        self._queue.put_nowait((write, operation))
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._run(), name=f"write-queue:{self.name}"
            )
        return write

    def reject(self, description: str, error: Exception, path: str | None = None) -> PendingWrite:
        """Record a write that cannot even be attempted."""
        write = self._new_write(description, path)
        self._fail(write, error)
        return write

    @property
    def pending(self) -> list[PendingWrite]:
        return list(self._unsettled.values())

    async def join(self) -> None:
        """Wait until every queued write has settled."""
        await self._queue.join()

    async def close(self) -> None:
        """Stop the worker; queued writes that never ran are marked failed."""
        self._closed = True
        while True:
            try:
                write, _ = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._fail(write, RuntimeError("write queue closed"))
            self._queue.task_done()

        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    def _new_write(self, description: str, path: str | None) -> PendingWrite:
        write = PendingWrite(write_id=next(self._ids), description=description, path=path)
        self.history.append(write)
        self._unsettled[write.write_id] = write
        return write

    def _fail(self, write: PendingWrite, cause: Exception) -> None:
        error = PersistenceError(write.description, write.path, cause, max(write.attempts, 1))
        logger.error(
            error.message,
            extra={"write_id": write.write_id, **error.details},
        )
        self._settle(write, WriteStatus.FAILED, error)

    def _settle(
        self, write: PendingWrite, status: WriteStatus, error: PersistenceError | None = None
    ) -> None:
        self._unsettled.pop(write.write_id, None)
        write._settle(status, error)

    async def _run(self) -> None:
        while True:
            write, operation = await self._queue.get()
            try:
                await retry_with_backoff(
                    operation,
                    self.retry,
                    context_msg=f"{write.description} {write.path or ''}".strip(),
                    on_attempt=lambda n, w=write: setattr(w, "attempts", n),
                )
            except asyncio.CancelledError:
                self._fail(write, RuntimeError("write cancelled"))
                raise
            except Exception as e:
                self._fail(write, e)
            else:
                self._settle(write, WriteStatus.CONFIRMED)
                logger.debug(
                    f"Write confirmed: {write.description}",
                    extra={"write_id": write.write_id, "path": write.path},
                )
            finally:
                self._queue.task_done()
