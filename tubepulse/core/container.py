"""
Dependency Injection Container for TubePulse.

Owns the store handles and services and their lifecycle. Nothing below it
caches connections at module level; every component receives what it needs
from here.

Usage:
    # At application startup
    container = DependencyContainer()
    await container.initialize()

    result = await container.gateway.check_then_call(identity, op)

    # At shutdown
    await container.shutdown()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import structlog

from tubepulse.config.settings import Settings, get_settings
from tubepulse.core.background import BackgroundTasks
from tubepulse.core.exceptions import InitializationError
from tubepulse.core.request_queue import RequestQueue

if TYPE_CHECKING:
    from tubepulse.quota.stores import AccountStore, RedisConnection, UsageStore
    from tubepulse.quota.tracker import QuotaTracker
    from tubepulse.services.gateway import QuotaGateway
    from tubepulse.upstream.client import VideoApiClient

logger = structlog.get_logger(__name__)

# Seconds to wait for pending background increments at shutdown
SHUTDOWN_DRAIN_TIMEOUT = 5.0


class DependencyContainer:
    """
    Central container for all service dependencies.

    Uses the Redis quota stores when ``redis_url`` is configured and the
    in-memory stores otherwise.

    Example:
        container = DependencyContainer()
        await container.initialize()

        status = await container.tracker.check("user@example.com")

        await container.shutdown()
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the container.

        Args:
            settings: Application settings. Defaults to get_settings().
        """
        self._settings = settings or get_settings()
        self._queue = RequestQueue(self._settings.max_concurrent_requests)
        # Gated ops hold a slot here while their HTTP calls admit through _queue
        self._gate_queue = RequestQueue(
            self._settings.max_concurrent_requests, name="gateway"
        )
        self._background = BackgroundTasks()
        self._redis: Optional[RedisConnection] = None
        self._accounts: Optional[AccountStore] = None
        self._usage: Optional[UsageStore] = None
        self._tracker: Optional[QuotaTracker] = None
        self._gateway: Optional[QuotaGateway] = None
        self._client: Optional[VideoApiClient] = None
        self._initialized = False

        logger.info("dependency_container_created")

    @property
    def settings(self) -> Settings:
        """Get application settings."""
        return self._settings

    @property
    def request_queue(self) -> RequestQueue:
        """Shared admission queue for upstream calls."""
        return self._queue

    @property
    def gateway_queue(self) -> RequestQueue:
        """Admission queue for quota-gated operations."""
        return self._gate_queue

    @property
    def background(self) -> BackgroundTasks:
        return self._background

    @property
    def tracker(self) -> "QuotaTracker":
        """
        Get the quota tracker.

        Raises:
            RuntimeError: If accessed before initialization.
        """
        if self._tracker is None:
            raise RuntimeError("Container not initialized. Call initialize() first.")
        return self._tracker

    @property
    def gateway(self) -> "QuotaGateway":
        """
        Get the quota gateway.

        Raises:
            RuntimeError: If accessed before initialization.
        """
        if self._gateway is None:
            raise RuntimeError("Container not initialized. Call initialize() first.")
        return self._gateway

    @property
    def client(self) -> "VideoApiClient":
        """
        Get the upstream API client (lazy initialization).

        Raises:
            InitializationError: If the client cannot be created.
        """
        if self._client is None:
            try:
                from tubepulse.upstream.client import VideoApiClient

                self._client = VideoApiClient(self._settings, self._queue)
                logger.info("video_api_client_created")
            except Exception as e:
                logger.error("video_api_client_creation_failed", error=str(e))
                raise InitializationError(
                    "VideoApiClient",
                    f"Failed to create upstream client: {e}",
                    {"base_url": self._settings.api_base_url},
                )
        return self._client

    async def initialize(self) -> None:
        """
        Open store connections and build the quota services.

        Call this at application startup.

        Raises:
            InitializationError: If the quota store cannot be reached.
        """
        if self._initialized:
            logger.warning("container_already_initialized")
            return

        logger.info("container_initializing")

        from tubepulse.quota.stores import (
            InMemoryAccountStore,
            InMemoryUsageStore,
            RedisAccountStore,
            RedisConnection,
            RedisUsageStore,
        )
        from tubepulse.quota.tracker import QuotaTracker
        from tubepulse.services.gateway import QuotaGateway

        try:
            if self._settings.redis_url:
                self._redis = RedisConnection(self._settings.redis_url)
                await self._redis.open()
                prefix = self._settings.redis_key_prefix
                self._accounts = RedisAccountStore(self._redis, key_prefix=prefix)
                self._usage = RedisUsageStore(
                    self._redis,
                    retention_days=self._settings.usage_retention_days,
                    key_prefix=prefix,
                )
                logger.info("quota_store_selected", backend="redis")
            else:
                self._accounts = InMemoryAccountStore()
                self._usage = InMemoryUsageStore(self._settings.usage_retention_days)
                logger.warning(
                    "quota_store_selected",
                    backend="memory",
                    note="usage counters are per-process",
                )

            self._tracker = QuotaTracker.from_settings(
                self._settings, self._accounts, self._usage
            )
            self._gateway = QuotaGateway(
                self._tracker, self._gate_queue, self._background
            )

            self._initialized = True
            logger.info("container_initialized")

        except Exception as e:
            logger.error(
                "container_initialization_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise InitializationError(
                "DependencyContainer",
                f"Failed to initialize dependencies: {e}",
            ) from e

    async def shutdown(self) -> None:
        """
        Shutdown all services gracefully.

        Pending background increments get a short grace period first.
        """
        logger.info("container_shutting_down")

        await self._background.drain(timeout=SHUTDOWN_DRAIN_TIMEOUT)

        if self._client is not None:
            try:
                await self._client.aclose()
                logger.info("video_api_client_closed")
            except Exception as e:
                logger.error("video_api_client_close_error", error=str(e))
            self._client = None

        if self._redis is not None:
            try:
                await self._redis.close()
            except Exception as e:
                logger.error("redis_close_error", error=str(e))
            self._redis = None

        self._tracker = None
        self._gateway = None
        self._initialized = False
        logger.info("container_shutdown_complete")

    @property
    def is_initialized(self) -> bool:
        """Check if container has been initialized."""
        return self._initialized
