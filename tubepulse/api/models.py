"""Pydantic models for API responses."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from tubepulse.monitoring.health import QueueHealth


class QueueConfig(BaseModel):
    """Request-control tunables reported by /health."""

    max_concurrent_requests: int
    request_timeout_seconds: float
    retry_count: int
    retry_delay_seconds: float
    default_daily_limit: int
    quota_timezone: str


class HealthCheckResponse(BaseModel):
    """Response model for the /health endpoint."""

    status: Literal["ok", "busy"] = Field(..., description="Overall status")
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(..., description="Time of the check")
    queue: QueueHealth = Field(..., description="Upstream request queue snapshot")
    config: QueueConfig = Field(..., description="Active request-control tunables")
    quota_backend: Literal["redis", "memory"] = Field(..., description="Quota store in use")
    background_failures: int = Field(0, ge=0, description="Failed background tasks since start")
    uptime_seconds: Optional[float] = Field(None, description="Server uptime in seconds")


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str = Field(..., description="Error type/code")
    message: str = Field(..., description="Human-readable error message")
    path: Optional[str] = Field(None, description="Request path that caused the error")
    timestamp: datetime = Field(..., description="Error timestamp")
