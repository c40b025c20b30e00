"""Integration test configuration.

Upstream HTTP is served by httpx.MockTransport handlers; the quota stores
are the in-memory ones, so no external service is needed.
"""

from typing import AsyncGenerator

import pytest

from tubepulse.config.settings import Settings
from tubepulse.core.container import DependencyContainer


@pytest.fixture
def settings() -> Settings:
    """Settings with a fake upstream key, tiny delays and no Redis."""
    return Settings(
        _env_file=None,
        rapidapi_key="test-key",
        redis_url=None,
        max_concurrent_requests=4,
        retry_count=2,
        retry_delay_seconds=0.001,
        rate_limit_delay_seconds=0.001,
        default_daily_limit=3,
    )


@pytest.fixture
async def container(settings) -> AsyncGenerator[DependencyContainer, None]:
    """Initialized container, shut down after the test."""
    container = DependencyContainer(settings)
    await container.initialize()
    yield container
    await container.shutdown()

