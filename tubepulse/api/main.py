"""TubePulse API - FastAPI application.

Exposes the health surface of the upstream request queue and Prometheus
metrics. Quota denials raised as QuotaDenied anywhere in a request map to
401/403/429 responses.

Usage:
    # Run with uvicorn
    uvicorn tubepulse.api.main:create_app --factory --reload
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from tubepulse import __version__
from tubepulse.api.models import ErrorResponse
from tubepulse.api.routes.health import router as health_router, set_server_start_time
from tubepulse.config.settings import Settings, get_settings
from tubepulse.core.container import DependencyContainer
from tubepulse.core.exceptions import QuotaDenied, QuotaStoreError, UpstreamError
from tubepulse.monitoring.metrics import get_metrics_app
from tubepulse.services.gateway import quota_denial_response

logger = structlog.get_logger(__name__)

API_TITLE = "TubePulse API"
API_DESCRIPTION = "Video analytics backend: upstream request control and daily quotas."


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Startup opens the quota store; shutdown drains background increments
    and closes connections.
    """
    logger.info("application_starting")
    set_server_start_time()

    container: DependencyContainer = app.state.container
    if not container.is_initialized:
        await container.initialize()

    logger.info("application_started")

    yield

    logger.info("application_stopping")
    await container.shutdown()
    logger.info("application_stopped")


# =============================================================================
# Exception Handlers
# =============================================================================


async def quota_denied_handler(request: Request, exc: QuotaDenied) -> JSONResponse:
    logger.info(
        "quota_denied",
        path=request.url.path,
        outcome=exc.status.outcome.value,
    )
    return quota_denial_response(exc.status)


async def quota_store_error_handler(request: Request, exc: QuotaStoreError) -> JSONResponse:
    """The quota store is unreachable; refuse rather than serve unmetered."""
    logger.error("quota_store_unavailable", path=request.url.path, error=str(exc))
    response = ErrorResponse(
        error="quota_unavailable",
        message="Usage tracking is temporarily unavailable",
        path=request.url.path,
        timestamp=datetime.now(timezone.utc),
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(mode="json"),
    )


async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    logger.error(
        "upstream_request_failed",
        path=request.url.path,
        status_code=exc.status_code,
        error=str(exc),
    )
    code = (
        status.HTTP_429_TOO_MANY_REQUESTS
        if exc.is_rate_limited
        else status.HTTP_502_BAD_GATEWAY
    )
    response = ErrorResponse(
        error="upstream_error",
        message=exc.message,
        path=request.url.path,
        timestamp=datetime.now(timezone.utc),
    )
    return JSONResponse(status_code=code, content=response.model_dump(mode="json"))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    response = ErrorResponse(
        error="internal_server_error",
        message="An unexpected error occurred",
        path=request.url.path,
        timestamp=datetime.now(timezone.utc),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=response.model_dump(mode="json"),
    )


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[DependencyContainer] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings. Defaults to get_settings().
        container: Pre-built container (tests pass one in).
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.container = container or DependencyContainer(settings)

    app.add_exception_handler(QuotaDenied, quota_denied_handler)
    app.add_exception_handler(QuotaStoreError, quota_store_error_handler)
    app.add_exception_handler(UpstreamError, upstream_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get("/", include_in_schema=False)
    async def root() -> dict:
        """Root endpoint with API information."""
        return {
            "name": API_TITLE,
            "version": __version__,
            "health": "/health",
            "metrics": "/metrics",
        }

    app.include_router(health_router)
    app.mount("/metrics", get_metrics_app())

    return app
