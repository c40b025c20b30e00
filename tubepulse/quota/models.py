"""Quota data models.

QuotaStatus is what callers see. Policy denials are reported through
sentinel limits rather than exceptions:

- limit == -1: the identity could not be resolved (re-authenticate)
- limit == 0: the account is inactive or banned (contact an admin)
- limit > 0 and used >= limit: daily quota exhausted (retry tomorrow)
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

UNRESOLVABLE_LIMIT = -1
BLOCKED_LIMIT = 0


class QuotaOutcome(str, Enum):
    """Caller-visible quota decision."""

    ALLOWED = "allowed"
    EXHAUSTED = "exhausted"
    BLOCKED = "blocked"
    UNRESOLVABLE = "unresolvable"


@dataclass(frozen=True)
class QuotaStatus:
    """Result of a quota check or increment."""

    allowed: bool
    used: int
    limit: int
    remaining: int
    reset_time: str
    outcome: QuotaOutcome

    @classmethod
    def unresolvable(cls, reset_time: str) -> "QuotaStatus":
        return cls(
            allowed=False,
            used=0,
            limit=UNRESOLVABLE_LIMIT,
            remaining=0,
            reset_time=reset_time,
            outcome=QuotaOutcome.UNRESOLVABLE,
        )

    @classmethod
    def blocked(cls, reset_time: str) -> "QuotaStatus":
        return cls(
            allowed=False,
            used=0,
            limit=BLOCKED_LIMIT,
            remaining=0,
            reset_time=reset_time,
            outcome=QuotaOutcome.BLOCKED,
        )

    @classmethod
    def from_usage(cls, used: int, limit: int, reset_time: str) -> "QuotaStatus":
        allowed = used < limit
        return cls(
            allowed=allowed,
            used=used,
            limit=limit,
            remaining=max(0, limit - used),
            reset_time=reset_time,
            outcome=QuotaOutcome.ALLOWED if allowed else QuotaOutcome.EXHAUSTED,
        )


@dataclass
class AccountQuotaState:
    """Quota-relevant fields of an account record.

    Owned by the account subsystem; the tracker only writes ``remaining``
    and ``last_reset_date``. A ``daily_limit`` of None means unset; the
    tracker applies its default limit.
    """

    identity: str
    daily_limit: Optional[int]
    is_active: bool = True
    is_banned: bool = False
    last_reset_date: str = ""
    remaining: Optional[int] = None

    @property
    def is_blocked(self) -> bool:
        return not self.is_active or self.is_banned


@dataclass(frozen=True)
class UsageEntry:
    """One metered call in a day's log."""

    label: str
    timestamp: datetime


@dataclass
class UsageRecord:
    """Usage of one identity on one calendar day."""

    identity: str
    day: str  # YYYY-MM-DD in the quota timezone
    count: int = 0
    log: list[UsageEntry] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class DailyUsage:
    """Usage of one identity on a given day, for reporting."""

    day: str
    used: int


@dataclass(frozen=True)
class GlobalStats:
    """Totals across identities for one day."""

    day: str
    total_calls: int
    total_identities: int
    average_per_identity: float
    default_limit: int
