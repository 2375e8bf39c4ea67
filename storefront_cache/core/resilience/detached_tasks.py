"""
Detached Task Runner - Bounded Fire-and-Forget Work

Cache writes after a response, pattern invalidation and background refreshes
must never delay the caller. They still need an owner: an unreferenced
asyncio task can be garbage collected mid-flight, and its exception would be
reported only as "Task exception was never retrieved".

DetachedTaskRunner keeps a strong reference to each spawned task, logs every
failure with the label it was spawned under, and caps the number of pending
tasks. When the cap is reached new work is dropped (and logged) instead of
queueing without bound while the backing store is slow.

Flow:
    1. spawn(coro, label) schedules the coroutine and tracks the task
    2. Done callback discards the task and logs any exception
    3. drain() waits for everything currently pending (tests, shutdown)
    4. shutdown() drains with a timeout, then cancels the stragglers
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from storefront_cache.core.config.constants import MAX_DETACHED_TASKS
from storefront_cache.core.logging.logger import get_logger

logger = get_logger(__name__)


class DetachedTaskRunner:
    """
    Owns background tasks whose outcome the caller does not wait for.

    Attributes:
        max_pending: Upper bound on concurrently pending tasks
    """

    def __init__(self, max_pending: int = MAX_DETACHED_TASKS):
        self.max_pending = max_pending
        self._tasks: set[asyncio.Task] = set()
        self._dropped = 0
        self._failed = 0

    @property
    def pending_count(self) -> int:
        """Number of tasks that have not finished yet."""
        return len(self._tasks)

    @property
    def dropped_count(self) -> int:
        return self._dropped

    @property
    def failed_count(self) -> int:
        return self._failed

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task | None:
        """
        Schedule a coroutine without awaiting it.

        STAGE-BG.1: Detached task scheduling

        Args:
            coro: Coroutine to run
            label: Short description used in failure logs

        Returns:
            The scheduled task, or None if the runner is saturated
        """
        if len(self._tasks) >= self.max_pending:
            self._dropped += 1
            coro.close()
            logger.warning(
                "Detached task dropped, runner saturated",
                stage="BG.1",
                label=label,
                pending=len(self._tasks),
                max_pending=self.max_pending,
            )
            return None

        task = asyncio.create_task(coro, name=label)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._failed += 1
            logger.warning(
                "Detached task failed",
                stage="BG.2",
                label=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def drain(self) -> None:
        """Wait until every task pending at call time (and any they spawn) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """
        Drain pending work, cancelling whatever is left after the timeout.

        STAGE-BG.3: Detached task shutdown
        """
        if not self._tasks:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            leftover = list(self._tasks)
            logger.warning(
                "Detached tasks still pending at shutdown, cancelling",
                stage="BG.3",
                pending=len(leftover),
            )
            for task in leftover:
                task.cancel()
            await asyncio.gather(*leftover, return_exceptions=True)
