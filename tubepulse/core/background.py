"""Fire-and-forget task runner with failure recording.

Used for work whose outcome must not delay or fail the caller's response,
such as metering a quota increment after results were already returned.

Usage:
    tasks = BackgroundTasks()
    tasks.spawn(tracker.increment(identity, label=query), name="quota_increment")

    # At shutdown (or in tests) wait for everything still running
    await tasks.drain()
"""

import asyncio
from typing import Any, Coroutine, Optional

import structlog

from tubepulse.monitoring.metrics import record_background_failure

logger = structlog.get_logger(__name__)


class BackgroundTasks:
    """
    Holds strong references to spawned tasks until they finish.

    Failures are logged and counted, never re-raised to whoever spawned
    the task.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self._failures = 0

    @property
    def pending(self) -> int:
        """Number of tasks that have not finished yet."""
        return len(self._tasks)

    @property
    def failures(self) -> int:
        """Number of tasks that finished with an exception."""
        return self._failures

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        name: str = "background",
        context: Optional[dict[str, Any]] = None,
    ) -> asyncio.Task:
        """Schedule ``coro`` on the running loop and return its task."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, name, context or {}))
        return task

    def _on_done(self, task: asyncio.Task, name: str, context: dict[str, Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info("background_task_cancelled", task=name, **context)
            return
        exc = task.exception()
        if exc is not None:
            self._failures += 1
            record_background_failure(name)
            logger.error(
                "background_task_failed",
                task=name,
                error=str(exc),
                error_type=type(exc).__name__,
                **context,
            )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every pending task; cancel the rest after ``timeout``."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        done, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("background_tasks_cancelled", count=len(still_running))
            await asyncio.gather(*still_running, return_exceptions=True)
