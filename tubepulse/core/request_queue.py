"""Bounded-concurrency admission control for outbound calls.

Every call to the upstream video API goes through a RequestQueue so that no
more than ``max_concurrent`` calls are in flight from this process.

Usage:
    queue = RequestQueue(max_concurrent=20)

    data = await queue.enqueue(lambda: client.get("/search", params=params))

    # Point-in-time view for health reporting
    status = queue.status()

Ordering: tasks that find a free slot start immediately; tasks that arrive at
capacity wait in FIFO order and are admitted in arrival order. Completion
order across tasks is not guaranteed.

The queue applies no timeout and adds no error type of its own. Callers wrap
``enqueue`` in ``asyncio.timeout`` when they need a deadline.
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, TypeVar

import structlog

from tubepulse.monitoring.metrics import QUEUE_ACTIVE, QUEUE_WAITING

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class QueueStatus:
    """Snapshot of queue occupancy."""

    active: int
    queued: int
    limit: int


class RequestQueue:
    """
    FIFO admission queue with a fixed concurrency limit.

    Slot bookkeeping never awaits, so under a single event loop each
    admit/release step runs without interleaving. A released slot is handed
    directly to the oldest waiter, which keeps arrival order among waiters.

    Args:
        max_concurrent: Maximum number of tasks running at once.
        name: Label used for metrics and logs.
    """

    def __init__(self, max_concurrent: int = 10, name: str = "upstream"):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = max_concurrent
        self._name = name
        self._active = 0
        self._waiters: Deque[asyncio.Future[None]] = deque()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    async def enqueue(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``fn`` once a slot is free and return its result.

        Exceptions raised by ``fn`` propagate unchanged to this caller only.
        The slot is released on success, failure and cancellation alike.
        """
        await self._acquire()
        try:
            return await fn()
        finally:
            self._release()

    def status(self) -> QueueStatus:
        """Non-blocking read of current occupancy."""
        return QueueStatus(
            active=self._active,
            queued=len(self._waiters),
            limit=self._max_concurrent,
        )

    async def _acquire(self) -> None:
        if self._active < self._max_concurrent and not self._waiters:
            self._active += 1
            self._report()
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        self._report()
        logger.debug(
            "request_queued",
            queue=self._name,
            active=self._active,
            queued=len(self._waiters),
        )

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation; pass it on.
                self._release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
                self._report()
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Hand the slot over; the active count is unchanged.
                waiter.set_result(None)
                self._report()
                return
        self._active -= 1
        self._report()

    def _report(self) -> None:
        QUEUE_ACTIVE.labels(queue=self._name).set(self._active)
        QUEUE_WAITING.labels(queue=self._name).set(len(self._waiters))
