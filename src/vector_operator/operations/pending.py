"""Tracking of in-flight pipeline checks.

Pipeline checks register with a ``PendingWork`` tracker while they run. Before
building an agent configuration the reconciler waits for the tracker to drain,
but only for a bounded time: a stale build is preferred over a stalled one.
"""

import asyncio
import logging
from collections.abc import Coroutine, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

T = TypeVar("T")

logger = logging.getLogger("vector_operator.operations.pending")


class PendingWork:
    """Count of outstanding units of work, awaitable until it reaches zero."""

    def __init__(self) -> None:
        """Initialize an idle tracker."""
        self._count = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def count(self) -> int:
        """Number of units still running."""
        return self._count

    def add(self, delta: int = 1) -> None:
        """Register ``delta`` new units (negative to finish units)."""
        count = self._count + delta
        if count < 0:
            msg = "PendingWork counter went negative"
            raise ValueError(msg)
        self._count = count
        if count == 0:
            self._idle.set()
        else:
            self._idle.clear()

    def done(self) -> None:
        """Mark one unit finished."""
        self.add(-1)

    @contextmanager
    def track(self) -> Iterator[None]:
        """Count the enclosed block as one unit of work."""
        self.add()
        try:
            yield
        finally:
            self.done()

    def spawn(self, coro: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
        """Run ``coro`` as a task counted as one unit until it is done, cancellation included."""
        self.add()
        task = asyncio.create_task(coro)
        task.add_done_callback(lambda _: self.done())
        return task

    async def wait(self) -> None:
        """Block until no work is outstanding."""
        await self._idle.wait()


async def wait_pending(tracker: PendingWork, timeout: float) -> bool:
    """Wait for ``tracker`` to drain, giving up after ``timeout`` seconds.

    The wait runs as its own task raced against the timer; on timeout that
    task is cancelled so nothing is left behind.

    Args:
        tracker: The work to wait for.
        timeout: Seconds to wait.

    Returns:
        True if the wait timed out, False if the work finished.

    """
    waiter = asyncio.create_task(tracker.wait())
    try:
        done, _ = await asyncio.wait({waiter}, timeout=timeout)
    finally:
        if not waiter.done():
            waiter.cancel()
    if waiter in done:
        return False

    logger.warning("Timed out after %ss waiting for %d pending pipeline checks", timeout, tracker.count)
    return True


__all__ = ["PendingWork", "wait_pending"]
