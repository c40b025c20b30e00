"""Quota-gated upstream calls.

Ties the pieces together for one metered operation:

    check quota -> enqueue the call -> normalize -> meter in the background

Usage:
    gateway = QuotaGateway(tracker, RequestQueue(20, name="gateway"), background)

    result = await gateway.check_then_call(
        identity,
        lambda: client.search_page(query),
        label=query,
    )
    if not result.allowed:
        return quota_denial_response(result.status)

The increment is scheduled only after the call succeeded, so failed calls are
never metered and the caller does not wait for the write.

The gateway queue bounds gated operations as a whole. It must not be the
queue the operation's own client admits its HTTP calls through: a gated op
holds its slot while those calls wait, so sharing one queue stalls once every
slot belongs to an op.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import structlog
from fastapi.responses import JSONResponse

from tubepulse.core.background import BackgroundTasks
from tubepulse.core.exceptions import QuotaDenied
from tubepulse.core.request_queue import RequestQueue
from tubepulse.quota.models import QuotaOutcome, QuotaStatus
from tubepulse.quota.tracker import QuotaTracker

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class GatedResult(Generic[R]):
    """Quota status of the call and, when it was allowed, its value."""

    status: QuotaStatus
    value: Optional[R] = None

    @property
    def allowed(self) -> bool:
        return self.status.allowed


class QuotaGateway:
    """
    Runs upstream operations on behalf of an identity under its daily quota.

    Args:
        tracker: Quota tracker.
        queue: Admission queue for gated operations, separate from the client's.
        background: Runner for the post-call increment.
    """

    def __init__(
        self,
        tracker: QuotaTracker,
        queue: RequestQueue,
        background: BackgroundTasks,
    ):
        self._tracker = tracker
        self._queue = queue
        self._background = background

    @property
    def tracker(self) -> QuotaTracker:
        return self._tracker

    async def check_then_call(
        self,
        identity: str,
        op: Callable[[], Awaitable[T]],
        *,
        label: Optional[str] = None,
        normalize: Optional[Callable[[T], R]] = None,
    ) -> GatedResult:
        """Run ``op`` if ``identity`` has quota left.

        A denied call returns the status with ``value=None`` and ``op`` is
        never started. Exceptions from ``op`` and from the quota store
        propagate to the caller; nothing is metered in that case.
        """
        status = await self._tracker.check(identity)
        if not status.allowed:
            logger.info(
                "quota_call_denied",
                identity=identity,
                outcome=status.outcome.value,
                used=status.used,
                limit=status.limit,
            )
            return GatedResult(status=status)

        raw = await self._queue.enqueue(op)
        value = normalize(raw) if normalize is not None else raw

        self._background.spawn(
            self._tracker.increment(identity, label=label),
            name="quota_increment",
            context={"identity": identity},
        )
        return GatedResult(status=status, value=value)

    async def require(self, identity: str) -> QuotaStatus:
        """Check quota and raise QuotaDenied instead of returning a denial."""
        status = await self._tracker.check(identity)
        if not status.allowed:
            raise QuotaDenied(status)
        return status


# =============================================================================
# HTTP mapping
# =============================================================================

DENIAL_STATUS_CODES = {
    QuotaOutcome.UNRESOLVABLE: 401,
    QuotaOutcome.BLOCKED: 403,
    QuotaOutcome.EXHAUSTED: 429,
}

DENIAL_MESSAGES = {
    QuotaOutcome.UNRESOLVABLE: "Account could not be found. Please sign in again.",
    QuotaOutcome.BLOCKED: "Account is disabled. Please contact an administrator.",
    QuotaOutcome.EXHAUSTED: "Daily limit reached. Please try again tomorrow.",
}


def denial_payload(status: QuotaStatus) -> dict[str, Any]:
    """JSON body describing a quota decision."""
    payload: dict[str, Any] = {
        "outcome": status.outcome.value,
        "used": status.used,
        "limit": status.limit,
        "remaining": status.remaining,
        "resetTime": status.reset_time,
    }
    message = DENIAL_MESSAGES.get(status.outcome)
    if message:
        payload["error"] = message
    return payload


def quota_denial_response(status: QuotaStatus) -> JSONResponse:
    """Map a denied QuotaStatus to an HTTP response.

    401 means re-authenticate, 403 contact an admin, 429 retry after
    ``reset_time``.
    """
    if status.allowed:
        raise ValueError("status is not a denial")

    code = DENIAL_STATUS_CODES[status.outcome]
    return JSONResponse(status_code=code, content=denial_payload(status))
