"""Queue health snapshot for monitoring endpoints."""

from typing import Literal

from pydantic import BaseModel, Field

from tubepulse.core.request_queue import RequestQueue


class QueueHealth(BaseModel):
    """Point-in-time health of the outbound request queue."""

    active_requests: int = Field(..., ge=0)
    queued_requests: int = Field(..., ge=0)
    max_concurrent: int = Field(..., ge=1)
    utilization_percent: int = Field(..., ge=0)
    readiness: Literal["ready", "busy"]


def queue_health(queue: RequestQueue) -> QueueHealth:
    """Derive health figures from ``queue.status()``.

    The queue is "busy" once every slot is taken; new calls will wait.
    """
    status = queue.status()
    # round-half-up to match integer percent reporting
    utilization = int(status.active * 100 / status.limit + 0.5)
    return QueueHealth(
        active_requests=status.active,
        queued_requests=status.queued,
        max_concurrent=status.limit,
        utilization_percent=utilization,
        readiness="ready" if status.active < status.limit else "busy",
    )
