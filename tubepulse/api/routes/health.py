"""Health check endpoints for the TubePulse API.

Reports the upstream request queue's load and the active request-control
configuration.
"""

import time
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException

from tubepulse import __version__
from tubepulse.api.dependencies import get_container, get_request_queue
from tubepulse.api.models import HealthCheckResponse, QueueConfig
from tubepulse.core.container import DependencyContainer
from tubepulse.core.request_queue import RequestQueue
from tubepulse.monitoring.health import queue_health

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])

# Track server start time for uptime calculation
_server_start_time: Optional[float] = None


def set_server_start_time() -> None:
    """Set the server start time. Called on application startup."""
    global _server_start_time
    _server_start_time = time.time()


def get_uptime_seconds() -> Optional[float]:
    """Get server uptime in seconds."""
    if _server_start_time is None:
        return None
    return time.time() - _server_start_time


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health Check",
    description="Queue load and request-control configuration.",
)
async def health_check(
    container: DependencyContainer = Depends(get_container),
) -> HealthCheckResponse:
    settings = container.settings
    snapshot = queue_health(container.request_queue)

    return HealthCheckResponse(
        status="ok" if snapshot.readiness == "ready" else "busy",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        queue=snapshot,
        config=QueueConfig(
            max_concurrent_requests=settings.max_concurrent_requests,
            request_timeout_seconds=settings.request_timeout_seconds,
            retry_count=settings.retry_count,
            retry_delay_seconds=settings.retry_delay_seconds,
            default_daily_limit=settings.default_daily_limit,
            quota_timezone=settings.quota_timezone,
        ),
        quota_backend="redis" if settings.redis_url else "memory",
        background_failures=container.background.failures,
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/health/live",
    summary="Liveness Check",
    description="Simple liveness check for container orchestration.",
)
async def liveness() -> dict:
    """Returns 200 if the service is alive."""
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get(
    "/health/ready",
    summary="Readiness Check",
    description="Check if the service has a free upstream request slot.",
)
async def readiness(
    queue: RequestQueue = Depends(get_request_queue),
) -> dict:
    """
    Readiness probe.

    Returns 503 while every upstream request slot is taken.
    """
    snapshot = queue_health(queue)

    if snapshot.readiness == "busy":
        logger.info(
            "readiness_busy",
            active=snapshot.active_requests,
            queued=snapshot.queued_requests,
        )
        raise HTTPException(
            status_code=503,
            detail="Service busy: upstream request queue is full",
        )

    return {
        "status": "ready",
        "utilization_percent": snapshot.utilization_percent,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
