"""Daily per-identity quota: models, stores and the tracker."""

from tubepulse.quota.models import (
    BLOCKED_LIMIT,
    UNRESOLVABLE_LIMIT,
    AccountQuotaState,
    DailyUsage,
    GlobalStats,
    QuotaOutcome,
    QuotaStatus,
    UsageEntry,
    UsageRecord,
)
from tubepulse.quota.stores import (
    AccountStore,
    InMemoryAccountStore,
    InMemoryUsageStore,
    RedisAccountStore,
    RedisConnection,
    RedisUsageStore,
    UsageStore,
)
from tubepulse.quota.tracker import QuotaTracker

__all__ = [
    "BLOCKED_LIMIT",
    "UNRESOLVABLE_LIMIT",
    "AccountQuotaState",
    "AccountStore",
    "DailyUsage",
    "GlobalStats",
    "InMemoryAccountStore",
    "InMemoryUsageStore",
    "QuotaOutcome",
    "QuotaStatus",
    "QuotaTracker",
    "RedisAccountStore",
    "RedisConnection",
    "RedisUsageStore",
    "UsageEntry",
    "UsageRecord",
    "UsageStore",
]
