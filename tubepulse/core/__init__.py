"""
Core infrastructure modules for TubePulse.

Provides common utilities used across the application:
- exceptions: Standardized exception hierarchy
- request_queue: Bounded-concurrency admission control
- retry: Bounded retry with backoff
- background: Fire-and-forget task runner
- container: Construction and lifecycle of services
"""

from tubepulse.core.exceptions import (
    ConfigurationError,
    InitializationError,
    PermanentError,
    QuotaDenied,
    QuotaStoreError,
    RetryableError,
    TubePulseError,
    UpstreamAuthError,
    UpstreamError,
    UpstreamNotFoundError,
    UpstreamRateLimitError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from tubepulse.core.request_queue import QueueStatus, RequestQueue
from tubepulse.core.retry import RetryPolicy, retry_async
from tubepulse.core.background import BackgroundTasks
from tubepulse.core.container import DependencyContainer

__all__ = [
    # Exceptions
    "TubePulseError",
    "RetryableError",
    "PermanentError",
    "InitializationError",
    "UpstreamError",
    "UpstreamRateLimitError",
    "UpstreamTimeoutError",
    "UpstreamUnavailableError",
    "UpstreamAuthError",
    "UpstreamNotFoundError",
    "QuotaStoreError",
    "QuotaDenied",
    "ConfigurationError",
    # Request control
    "QueueStatus",
    "RequestQueue",
    "RetryPolicy",
    "retry_async",
    "BackgroundTasks",
    # Container
    "DependencyContainer",
]
