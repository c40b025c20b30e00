"""Per-identity daily quota.

Usage:
    tracker = QuotaTracker(accounts, usage, default_daily_limit=20)

    status = await tracker.check("user@example.com")
    if status.allowed:
        result = await do_the_call()
        await tracker.increment("user@example.com", label="cats")

A quota day is the calendar day in the configured timezone. Policy denials
come back as QuotaStatus sentinels; store failures raise QuotaStoreError.
"""

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

import structlog

from tubepulse.core.retry import RetryPolicy, retry_async
from tubepulse.monitoring.metrics import record_quota_decision, record_quota_increment
from tubepulse.quota.models import (
    AccountQuotaState,
    DailyUsage,
    GlobalStats,
    QuotaStatus,
)
from tubepulse.quota.stores import AccountStore, UsageStore

logger = structlog.get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 30
MAX_HISTORY_LIMIT = 100

_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Account recovery: three attempts, one second apart
RECOVERY_POLICY = RetryPolicy(attempts=3, backoff=1.0, multiplier=1.0)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_utc(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class QuotaTracker:
    """
    Decides whether an identity may make another metered call today.

    Args:
        accounts: Account store (limit and status flags).
        usage: Usage store with an atomic increment.
        default_daily_limit: Limit for accounts created by recovery, and for
            increments whose account cannot be read.
        tz: Timezone whose calendar day bounds a quota period.
        clock: Returns the current time; injectable for tests.
        recovery_policy: Retry policy for creating a missing account.
    """

    def __init__(
        self,
        accounts: AccountStore,
        usage: UsageStore,
        default_daily_limit: int = 20,
        tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
        recovery_policy: RetryPolicy = RECOVERY_POLICY,
    ):
        if default_daily_limit < 1:
            raise ValueError("default_daily_limit must be at least 1")
        self._accounts = accounts
        self._usage = usage
        self._default_limit = default_daily_limit
        self._tz = tz or ZoneInfo("Asia/Seoul")
        self._clock = clock or _utc_now
        self._recovery_policy = recovery_policy

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        accounts: AccountStore,
        usage: UsageStore,
        **kwargs: Any,
    ) -> "QuotaTracker":
        return cls(
            accounts,
            usage,
            default_daily_limit=settings.default_daily_limit,
            tz=settings.tzinfo,
            **kwargs,
        )

    @property
    def default_daily_limit(self) -> int:
        return self._default_limit

    # -------------------------------------------------------------------------
    # Calendar
    # -------------------------------------------------------------------------

    def today(self) -> str:
        """Current quota day as YYYY-MM-DD."""
        return self._day_of(self._clock())

    def reset_time(self) -> str:
        """Next local midnight, as a UTC ISO-8601 instant."""
        return self._reset_time_of(self._clock())

    def _day_of(self, moment: datetime) -> str:
        return moment.astimezone(self._tz).date().isoformat()

    def _reset_time_of(self, moment: datetime) -> str:
        local_day = moment.astimezone(self._tz).date()
        midnight = datetime.combine(local_day + timedelta(days=1), time(0), tzinfo=self._tz)
        return _format_utc(midnight)

    # -------------------------------------------------------------------------
    # Check / increment
    # -------------------------------------------------------------------------

    async def check(self, identity: str) -> QuotaStatus:
        """Report whether ``identity`` may make another call today."""
        now = self._clock()
        today = self._day_of(now)
        reset_time = self._reset_time_of(now)

        if not identity:
            logger.warning("quota_check_without_identity")
            return self._decided(QuotaStatus.unresolvable(reset_time), identity)

        account = await self._accounts.get(identity)
        if account is None:
            account = await self._recover_account(identity, today)
        if account is None:
            return self._decided(QuotaStatus.unresolvable(reset_time), identity)

        if account.is_blocked:
            return self._decided(QuotaStatus.blocked(reset_time), identity)

        record = await self._usage.get(identity, today)
        used = record.count if record else 0
        status = QuotaStatus.from_usage(used, self._limit_for(account), reset_time)

        if account.last_reset_date != today:
            await self._best_effort(
                "last_reset_date",
                identity,
                lambda: self._accounts.update_fields(
                    identity, last_reset_date=today, remaining=status.remaining
                ),
            )

        return self._decided(status, identity)

    async def increment(self, identity: str, label: Optional[str] = None) -> QuotaStatus:
        """Count one call against today's quota.

        The store's increment is atomic, so K concurrent calls raise the
        count by exactly K. The denormalized ``remaining`` written back to
        the account afterwards is best effort.
        """
        if not identity:
            raise ValueError("identity is required")

        now = self._clock()
        today = self._day_of(now)
        limit = await self._daily_limit(identity)

        try:
            record = await self._usage.increment(identity, today, label, now)
        except Exception:
            record_quota_increment("error")
            raise
        record_quota_increment("success")

        status = QuotaStatus.from_usage(record.count, limit, self._reset_time_of(now))

        await self._best_effort(
            "remaining",
            identity,
            lambda: self._accounts.update_fields(
                identity, remaining=status.remaining, last_reset_date=today
            ),
        )

        logger.info(
            "quota_incremented",
            identity=identity,
            day=today,
            used=status.used,
            limit=status.limit,
            remaining=status.remaining,
            label=label,
        )
        return status

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    async def history(self, identity: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[DailyUsage]:
        """Per-day usage, newest first."""
        if not 1 <= limit <= MAX_HISTORY_LIMIT:
            limit = DEFAULT_HISTORY_LIMIT
        records = await self._usage.history(identity, limit)
        return [DailyUsage(day=r.day, used=r.count) for r in records]

    async def usage_on(self, identity: str, day: str) -> DailyUsage:
        """Usage of ``identity`` on ``day`` (YYYY-MM-DD)."""
        _validate_day(day)
        record = await self._usage.get(identity, day)
        return DailyUsage(day=day, used=record.count if record else 0)

    async def global_stats(self, day: Optional[str] = None) -> GlobalStats:
        """Totals across identities for ``day`` (today by default)."""
        if day is None:
            day = self.today()
        else:
            _validate_day(day)

        totals = await self._usage.day_totals(day)
        total_calls = sum(totals)
        total_identities = len(totals)
        average = round(total_calls / total_identities, 2) if total_identities else 0.0

        return GlobalStats(
            day=day,
            total_calls=total_calls,
            total_identities=total_identities,
            average_per_identity=average,
            default_limit=self._default_limit,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _recover_account(self, identity: str, today: str) -> Optional[AccountQuotaState]:
        """Create a minimal account for an identity that has none.

        Covers accounts whose creation failed at sign-up. Failure leaves the
        identity unresolvable for this check.
        """
        logger.warning("quota_account_missing", identity=identity)
        try:
            await retry_async(
                lambda: self._accounts.create_if_absent(identity, self._default_limit, today),
                self._recovery_policy,
                context={"identity": identity, "operation": "account_recovery"},
            )
        except Exception as e:
            logger.error("quota_account_recovery_failed", identity=identity, error=str(e))
            return None

        account = await self._accounts.get(identity)
        if account is not None:
            logger.info(
                "quota_account_recovered",
                identity=identity,
                daily_limit=account.daily_limit,
            )
        return account

    async def _daily_limit(self, identity: str) -> int:
        try:
            account = await self._accounts.get(identity)
        except Exception as e:
            logger.warning("quota_limit_lookup_failed", identity=identity, error=str(e))
            return self._default_limit
        return self._limit_for(account) if account else self._default_limit

    def _limit_for(self, account: AccountQuotaState) -> int:
        if account.daily_limit is None:
            return self._default_limit
        return account.daily_limit

    async def _best_effort(
        self,
        field_name: str,
        identity: str,
        write: Callable[[], Awaitable[Any]],
    ) -> None:
        try:
            await write()
        except Exception as e:
            logger.warning(
                "quota_account_write_failed",
                field=field_name,
                identity=identity,
                error=str(e),
            )

    def _decided(self, status: QuotaStatus, identity: str) -> QuotaStatus:
        record_quota_decision(status.outcome.value)
        logger.debug(
            "quota_checked",
            identity=identity,
            outcome=status.outcome.value,
            used=status.used,
            limit=status.limit,
        )
        return status


def _validate_day(day: str) -> None:
    if not isinstance(day, str) or not _DAY_RE.match(day):
        raise ValueError(f"day must be YYYY-MM-DD, got {day!r}")
    try:
        date.fromisoformat(day)
    except ValueError as e:
        raise ValueError(f"day is not a calendar date: {day!r}") from e
