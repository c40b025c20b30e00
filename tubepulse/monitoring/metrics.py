"""
Prometheus metrics for TubePulse observability.

Usage:
    from tubepulse.monitoring.metrics import track_upstream_request

    with track_upstream_request("search"):
        response = await client.get(url)

    # Or manually
    QUOTA_DECISIONS.labels(outcome="exhausted").inc()
"""

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.applications import Starlette
from starlette.responses import Response
from starlette.routing import Route


# =============================================================================
# Metric Definitions
# =============================================================================

# Request queue
QUEUE_ACTIVE = Gauge(
    "tubepulse_queue_active_requests",
    "Requests currently running inside a request queue",
    ["queue"],
)

QUEUE_WAITING = Gauge(
    "tubepulse_queue_waiting_requests",
    "Requests waiting for admission to a request queue",
    ["queue"],
)

# Upstream API
UPSTREAM_REQUEST_DURATION = Histogram(
    "tubepulse_upstream_request_duration_seconds",
    "Duration of upstream API requests in seconds",
    ["endpoint"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

UPSTREAM_REQUEST_TOTAL = Counter(
    "tubepulse_upstream_request_total",
    "Total upstream API requests",
    ["endpoint", "status"],
)

# Quota
QUOTA_DECISIONS = Counter(
    "tubepulse_quota_decisions_total",
    "Quota checks by outcome",
    ["outcome"],
)

QUOTA_INCREMENTS = Counter(
    "tubepulse_quota_increments_total",
    "Quota increments by result",
    ["status"],
)

# Background tasks
BACKGROUND_TASK_FAILURES = Counter(
    "tubepulse_background_task_failures_total",
    "Background tasks that finished with an exception",
    ["task"],
)


# =============================================================================
# Tracking Context Managers
# =============================================================================


@contextmanager
def track_upstream_request(endpoint: str) -> Generator[None, None, None]:
    """
    Context manager to track upstream request duration and status.

    Usage:
        with track_upstream_request("search"):
            await client.get(url)
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        UPSTREAM_REQUEST_DURATION.labels(endpoint=endpoint).observe(duration)
        UPSTREAM_REQUEST_TOTAL.labels(endpoint=endpoint, status=status).inc()


# =============================================================================
# Helper Functions
# =============================================================================


def record_quota_decision(outcome: str) -> None:
    """Count one quota check result."""
    QUOTA_DECISIONS.labels(outcome=outcome).inc()


def record_quota_increment(status: str) -> None:
    """Count one quota increment ("success" or "error")."""
    QUOTA_INCREMENTS.labels(status=status).inc()


def record_background_failure(task_name: str) -> None:
    """Count a failed background task."""
    BACKGROUND_TASK_FAILURES.labels(task=task_name).inc()


# =============================================================================
# Metrics Endpoint
# =============================================================================


async def metrics_endpoint(request) -> Response:
    """Serve Prometheus metrics in text exposition format."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def get_metrics_app() -> Starlette:
    """
    Create a Starlette app exposing /metrics.

    Mount into the FastAPI app:
        app.mount("/metrics", get_metrics_app())
    """
    return Starlette(routes=[Route("/", metrics_endpoint)])
