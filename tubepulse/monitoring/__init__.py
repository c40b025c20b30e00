"""
Monitoring and observability for TubePulse.

Provides Prometheus metrics and the queue health snapshot used by the
health endpoints.

Usage:
    from tubepulse.monitoring.health import queue_health

    health = queue_health(container.request_queue)
    if health.readiness == "busy":
        ...
"""

from tubepulse.monitoring.metrics import (
    BACKGROUND_TASK_FAILURES,
    QUEUE_ACTIVE,
    QUEUE_WAITING,
    QUOTA_DECISIONS,
    QUOTA_INCREMENTS,
    UPSTREAM_REQUEST_DURATION,
    UPSTREAM_REQUEST_TOTAL,
    get_metrics_app,
    record_background_failure,
    record_quota_decision,
    record_quota_increment,
    track_upstream_request,
)

__all__ = [
    # Prometheus metrics
    "BACKGROUND_TASK_FAILURES",
    "QUEUE_ACTIVE",
    "QUEUE_WAITING",
    "QUOTA_DECISIONS",
    "QUOTA_INCREMENTS",
    "UPSTREAM_REQUEST_DURATION",
    "UPSTREAM_REQUEST_TOTAL",
    # Helpers
    "get_metrics_app",
    "record_background_failure",
    "record_quota_decision",
    "record_quota_increment",
    "track_upstream_request",
]
