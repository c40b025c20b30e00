"""Bounded retry with backoff for transient failures.

One helper for every call site that retries: upstream HTTP calls (exponential
backoff, Retry-After aware) and quota account recovery (fixed backoff).

Usage:
    policy = RetryPolicy(attempts=4, backoff=0.5)
    data = await retry_async(lambda: fetch(url), policy, context={"url": url})

    # Fixed backoff: multiplier=1
    await retry_async(create_account, RetryPolicy(attempts=3, backoff=1.0, multiplier=1))
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from tubepulse.core.exceptions import RetryableError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, RetryableError)


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to try and how long to wait in between.

    Args:
        attempts: Total attempts including the first one.
        backoff: Wait before the first retry, in seconds.
        multiplier: Growth factor of the wait (1 = fixed, 2 = doubling).
        max_backoff: Upper bound for a single wait.
        retry_on: Predicate deciding whether an exception is worth retrying.
    """

    attempts: int = 3
    backoff: float = 0.5
    multiplier: float = 2.0
    max_backoff: float = 30.0
    retry_on: Callable[[BaseException], bool] = field(default=_is_retryable)

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if self.backoff < 0:
            raise ValueError("backoff must not be negative")

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryPolicy":
        """Upstream-call policy from ``retry_count`` and ``retry_delay_seconds``."""
        return cls(
            attempts=settings.retry_count + 1,
            backoff=settings.retry_delay_seconds,
            multiplier=2.0,
        )


def _make_wait(policy: RetryPolicy) -> Callable[[RetryCallState], float]:
    exponential = wait_exponential(
        multiplier=policy.backoff,
        exp_base=policy.multiplier,
        max=policy.max_backoff,
    )

    def wait(retry_state: RetryCallState) -> float:
        # Honour a server-provided Retry-After hint when the error carries one
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        hint = getattr(exc, "retry_after", None)
        if hint is not None and hint >= 0:
            return min(float(hint), policy.max_backoff)
        return exponential(retry_state)

    return wait


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    context: Optional[dict[str, Any]] = None,
) -> T:
    """
    Await ``fn()`` until it succeeds, fails permanently, or attempts run out.

    The last exception is re-raised unchanged.
    """
    context = context or {}

    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        sleep = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "retry_scheduled",
            attempt=retry_state.attempt_number,
            max_attempts=policy.attempts,
            wait_seconds=round(sleep, 3),
            error=str(exc),
            error_type=type(exc).__name__,
            **context,
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.attempts),
        wait=_make_wait(policy),
        retry=retry_if_exception(policy.retry_on),
        before_sleep=before_sleep,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            return await fn()

    # AsyncRetrying either returns from inside the loop or re-raises
    raise AssertionError("unreachable")
