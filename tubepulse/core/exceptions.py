"""
Core exception hierarchy for TubePulse.

Provides standardized exception types with categorization for retry logic.
Normalization never raises; the types here cover upstream calls, quota
infrastructure, and configuration.
"""

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from tubepulse.quota.models import QuotaStatus


# =============================================================================
# Base Exceptions
# =============================================================================


class TubePulseError(Exception):
    """Base exception for all TubePulse errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetryableError(TubePulseError):
    """
    Transient errors that should be retried.

    Examples: Rate limits, timeouts, temporary network issues.
    """

    pass


class PermanentError(TubePulseError):
    """
    Errors that won't be fixed by retrying.

    Examples: Invalid input, missing resources, authentication failures.
    """

    pass


# =============================================================================
# Initialization Errors
# =============================================================================


class InitializationError(PermanentError):
    """Raised when a critical component fails to initialize."""

    def __init__(self, component: str, message: str, details: Optional[dict[str, Any]] = None):
        self.component = component
        super().__init__(f"[{component}] {message}", details)


# =============================================================================
# Upstream API Errors
# =============================================================================


class UpstreamError(TubePulseError):
    """Failure of a call to the upstream video API.

    ``status_code`` is the HTTP status, or 0 when no response was received.
    Callers inspect it to tell rate limiting apart from other failures.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        details: Optional[dict[str, Any]] = None,
        retry_after: Optional[float] = None,
    ):
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message, details)

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


class UpstreamRateLimitError(UpstreamError, RetryableError):
    """Raised on HTTP 429 from the upstream API."""

    retryable = True


class UpstreamTimeoutError(UpstreamError, RetryableError):
    """Raised when an upstream call times out."""

    retryable = True


class UpstreamUnavailableError(UpstreamError, RetryableError):
    """Raised on 5xx responses and network failures."""

    retryable = True


class UpstreamAuthError(UpstreamError, PermanentError):
    """Raised when the upstream rejects our credentials (401/403)."""

    pass


class UpstreamNotFoundError(UpstreamError, PermanentError):
    """Raised when the requested resource does not exist."""

    pass


# =============================================================================
# Quota Errors
# =============================================================================


class QuotaStoreError(RetryableError):
    """Raised when the quota store cannot serve a check or an increment.

    The quota guarantee cannot be trusted for the call that hit this error.
    """

    def __init__(self, operation: str, message: str, details: Optional[dict[str, Any]] = None):
        self.operation = operation
        super().__init__(f"[quota:{operation}] {message}", details)


class QuotaDenied(PermanentError):
    """Raised by callers that prefer an exception over inspecting QuotaStatus."""

    def __init__(self, status: "QuotaStatus"):
        self.status = status
        super().__init__(
            f"Quota denied: {status.outcome.value}",
            {"used": status.used, "limit": status.limit},
        )


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PermanentError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details)
