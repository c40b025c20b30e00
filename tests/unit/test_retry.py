"""Unit tests for the retry helper."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from tubepulse.core.exceptions import (
    RetryableError,
    UpstreamNotFoundError,
    UpstreamRateLimitError,
    UpstreamUnavailableError,
)
from tubepulse.core.retry import RetryPolicy, _make_wait, retry_async

NO_WAIT = RetryPolicy(attempts=3, backoff=0)


class TestRetryAsync:
    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        fn = AsyncMock(return_value="ok")

        assert await retry_async(fn, NO_WAIT) == "ok"
        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_retryable_errors(self):
        fn = AsyncMock(side_effect=[UpstreamUnavailableError("502", status_code=502), "ok"])

        assert await retry_async(fn, NO_WAIT, context={"endpoint": "search"}) == "ok"
        assert fn.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        fn = AsyncMock(side_effect=RetryableError("still down"))

        with pytest.raises(RetryableError, match="still down"):
            await retry_async(fn, NO_WAIT)

        assert fn.await_count == 3

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self):
        fn = AsyncMock(side_effect=UpstreamNotFoundError("missing", status_code=404))

        with pytest.raises(UpstreamNotFoundError):
            await retry_async(fn, NO_WAIT)

        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_custom_predicate(self):
        fn = AsyncMock(side_effect=[KeyError("flaky"), "ok"])
        policy = RetryPolicy(attempts=2, backoff=0, retry_on=lambda e: isinstance(e, KeyError))

        assert await retry_async(fn, policy) == "ok"


class TestRetryPolicy:
    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(attempts=0)

    def test_rejects_negative_backoff(self):
        with pytest.raises(ValueError):
            RetryPolicy(backoff=-1)

    def test_from_settings(self):
        settings = MagicMock(retry_count=3, retry_delay_seconds=1.0)

        policy = RetryPolicy.from_settings(settings)

        assert policy.attempts == 4
        assert policy.backoff == 1.0
        assert policy.multiplier == 2.0


def retry_state(attempt: int, exc: BaseException) -> MagicMock:
    state = MagicMock()
    state.attempt_number = attempt
    state.outcome.exception.return_value = exc
    return state


class TestWait:
    def test_exponential_backoff(self):
        wait = _make_wait(RetryPolicy(backoff=0.5, multiplier=2.0))
        exc = RetryableError("boom")

        assert [wait(retry_state(n, exc)) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]

    def test_fixed_backoff(self):
        wait = _make_wait(RetryPolicy(backoff=1.0, multiplier=1.0))
        exc = RetryableError("boom")

        assert [wait(retry_state(n, exc)) for n in (1, 2, 3)] == [1.0, 1.0, 1.0]

    def test_capped_at_max_backoff(self):
        wait = _make_wait(RetryPolicy(backoff=10.0, multiplier=2.0, max_backoff=15.0))

        assert wait(retry_state(4, RetryableError("boom"))) == 15.0

    def test_retry_after_hint_wins(self):
        wait = _make_wait(RetryPolicy(backoff=0.5, multiplier=2.0))
        exc = UpstreamRateLimitError("429", status_code=429, retry_after=7.0)

        assert wait(retry_state(1, exc)) == 7.0

    def test_retry_after_hint_capped(self):
        wait = _make_wait(RetryPolicy(backoff=0.5, max_backoff=30.0))
        exc = UpstreamRateLimitError("429", status_code=429, retry_after=3600.0)

        assert wait(retry_state(1, exc)) == 30.0
