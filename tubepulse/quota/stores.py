"""Persistence for quota accounts and daily usage.

Two store roles, each with an in-memory and a Redis implementation:

- AccountStore: per-identity limit and status flags (owned by the account
  subsystem; the tracker reads it and writes back convenience fields).
- UsageStore: one counter per (identity, day) with an atomic
  upsert-and-increment.

Usage:
    async with RedisConnection(settings.redis_url) as connection:
        accounts = RedisAccountStore(connection)
        usage = RedisUsageStore(connection, retention_days=90)
        record = await usage.increment("user@example.com", "2025-01-15", "cats", now)

The in-memory stores serialize with an asyncio.Lock and only protect a single
process. The Redis usage store increments with HINCRBY inside MULTI/EXEC, so
concurrent increments from any number of processes never lose updates.
"""

import asyncio
import json
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Any, Optional, Protocol

import structlog
import redis.asyncio as redis
from redis.exceptions import RedisError

from tubepulse.core.exceptions import QuotaStoreError
from tubepulse.quota.models import AccountQuotaState, UsageEntry, UsageRecord

logger = structlog.get_logger(__name__)


# =============================================================================
# Protocols
# =============================================================================


class AccountStore(Protocol):
    """Read/upsert access to account quota state."""

    async def get(self, identity: str) -> Optional[AccountQuotaState]: ...

    async def create_if_absent(
        self, identity: str, daily_limit: int, today: str
    ) -> AccountQuotaState: ...

    async def update_fields(self, identity: str, **fields: Any) -> bool: ...


class UsageStore(Protocol):
    """Daily usage counters keyed by (identity, day)."""

    async def get(self, identity: str, day: str) -> Optional[UsageRecord]: ...

    async def increment(
        self, identity: str, day: str, label: Optional[str], at: datetime
    ) -> UsageRecord: ...

    async def history(self, identity: str, limit: int) -> list[UsageRecord]: ...

    async def day_totals(self, day: str) -> list[int]: ...


ACCOUNT_WRITABLE_FIELDS = {"daily_limit", "is_active", "is_banned", "last_reset_date", "remaining"}


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - ACCOUNT_WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown account fields: {sorted(unknown)}")


# =============================================================================
# In-memory
# =============================================================================


class InMemoryAccountStore:
    """
    In-memory account store for development and tests.

    WARNING: Does not persist across restarts and does not share
    state between multiple application instances.
    """

    def __init__(self) -> None:
        self._accounts: dict[str, AccountQuotaState] = {}
        self._lock = asyncio.Lock()

    async def get(self, identity: str) -> Optional[AccountQuotaState]:
        async with self._lock:
            account = self._accounts.get(identity)
            return replace(account) if account else None

    async def create_if_absent(
        self, identity: str, daily_limit: int, today: str
    ) -> AccountQuotaState:
        async with self._lock:
            if identity not in self._accounts:
                self._accounts[identity] = AccountQuotaState(
                    identity=identity,
                    daily_limit=daily_limit,
                    last_reset_date=today,
                    remaining=daily_limit,
                )
            return replace(self._accounts[identity])

    async def update_fields(self, identity: str, **fields: Any) -> bool:
        _check_fields(fields)
        async with self._lock:
            account = self._accounts.get(identity)
            if account is None:
                return False
            self._accounts[identity] = replace(account, **fields)
            return True

    async def put(self, account: AccountQuotaState) -> None:
        """Insert or replace an account (stands in for the account subsystem)."""
        async with self._lock:
            self._accounts[account.identity] = replace(account)


class InMemoryUsageStore:
    """
    In-memory usage store for development and tests.

    WARNING: Atomic only within one event loop; use RedisUsageStore when more
    than one process serves traffic.
    """

    def __init__(self, retention_days: Optional[int] = None) -> None:
        self._records: dict[tuple[str, str], UsageRecord] = {}
        self._lock = asyncio.Lock()
        self._retention_days = retention_days

    async def get(self, identity: str, day: str) -> Optional[UsageRecord]:
        async with self._lock:
            record = self._records.get((identity, day))
            return self._copy(record) if record else None

    async def increment(
        self, identity: str, day: str, label: Optional[str], at: datetime
    ) -> UsageRecord:
        async with self._lock:
            record = self._records.get((identity, day))
            if record is None:
                record = UsageRecord(identity=identity, day=day, created_at=at)
                self._records[(identity, day)] = record
            record.count += 1
            record.updated_at = at
            if label:
                record.log.append(UsageEntry(label=label, timestamp=at))
            self._purge_expired(day)
            return self._copy(record)

    async def history(self, identity: str, limit: int) -> list[UsageRecord]:
        async with self._lock:
            records = [r for (who, _), r in self._records.items() if who == identity]
        records.sort(key=lambda r: r.day, reverse=True)
        return [self._copy(r) for r in records[:limit]]

    async def day_totals(self, day: str) -> list[int]:
        async with self._lock:
            return [r.count for (_, d), r in self._records.items() if d == day]

    def _purge_expired(self, today: str) -> None:
        if not self._retention_days:
            return
        cutoff = (date.fromisoformat(today) - timedelta(days=self._retention_days)).isoformat()
        for key in [k for k in self._records if k[1] < cutoff]:
            del self._records[key]

    @staticmethod
    def _copy(record: UsageRecord) -> UsageRecord:
        return replace(record, log=list(record.log))


# =============================================================================
# Redis
# =============================================================================


class RedisConnection:
    """
    Explicitly managed Redis connection shared by the Redis stores.

    Args:
        redis_url: Redis connection URL
    """

    def __init__(self, redis_url: str):
        self._redis_url = redis_url
        self._client: Optional[redis.Redis] = None

    async def open(self) -> None:
        """Establish the connection and verify it with PING."""
        if self._client is not None:
            return

        client = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        try:
            await client.ping()
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            await client.aclose()
            raise
        self._client = client
        logger.info("redis_connected")

    async def close(self) -> None:
        """Close the connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("redis_disconnected")

    @property
    def is_open(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Redis connection not open. Call open() first.")
        return self._client

    async def __aenter__(self) -> "RedisConnection":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value in ("1", "true", "True")


def _encode(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


class RedisAccountStore:
    """
    Account quota state stored as one Redis hash per identity.

    Key: {prefix}:account:{identity}
    """

    def __init__(self, connection: RedisConnection, key_prefix: str = "tubepulse"):
        self._connection = connection
        self._key_prefix = key_prefix

    def _make_key(self, identity: str) -> str:
        return f"{self._key_prefix}:account:{identity}"

    async def get(self, identity: str) -> Optional[AccountQuotaState]:
        try:
            data = await self._connection.client.hgetall(self._make_key(identity))
        except RedisError as e:
            raise QuotaStoreError("account_get", str(e), {"identity": identity}) from e
        return self._decode(identity, data) if data else None

    async def create_if_absent(
        self, identity: str, daily_limit: int, today: str
    ) -> AccountQuotaState:
        key = self._make_key(identity)
        defaults = {
            "daily_limit": daily_limit,
            "is_active": True,
            "is_banned": False,
            "last_reset_date": today,
            "remaining": daily_limit,
        }

        # HSETNX per field keeps values written by the account subsystem
        pipe = self._connection.client.pipeline(transaction=True)
        for name, value in defaults.items():
            pipe.hsetnx(key, name, _encode(value))
        pipe.hgetall(key)

        try:
            results = await pipe.execute()
        except RedisError as e:
            raise QuotaStoreError("account_create", str(e), {"identity": identity}) from e
        return self._decode(identity, results[-1])

    async def update_fields(self, identity: str, **fields: Any) -> bool:
        _check_fields(fields)
        if not fields:
            return True
        key = self._make_key(identity)
        client = self._connection.client
        try:
            if not await client.exists(key):
                return False
            await client.hset(key, mapping={k: _encode(v) for k, v in fields.items()})
        except RedisError as e:
            raise QuotaStoreError("account_update", str(e), {"identity": identity}) from e
        return True

    @staticmethod
    def _decode(identity: str, data: dict[str, str]) -> AccountQuotaState:
        limit = data.get("daily_limit")
        remaining = data.get("remaining")
        return AccountQuotaState(
            identity=identity,
            daily_limit=int(limit) if limit not in (None, "") else None,
            is_active=_as_bool(data.get("is_active"), True),
            is_banned=_as_bool(data.get("is_banned"), False),
            last_reset_date=data.get("last_reset_date", ""),
            remaining=int(remaining) if remaining not in (None, "") else None,
        )


class RedisUsageStore:
    """
    Daily usage counters in Redis.

    Key structure:
    - {prefix}:usage:{identity}:{day} -> hash (count, created_at, updated_at)
    - {prefix}:usage:{identity}:{day}:log -> list of JSON entries
    - {prefix}:usage_days:{identity} -> sorted set of days (score = date ordinal)
    - {prefix}:usage_identities:{day} -> set of identities active that day

    Every key expires after the retention window.
    """

    def __init__(
        self,
        connection: RedisConnection,
        retention_days: int = 90,
        key_prefix: str = "tubepulse",
    ):
        self._connection = connection
        self._ttl_seconds = retention_days * 86400
        self._key_prefix = key_prefix

    def _usage_key(self, identity: str, day: str) -> str:
        return f"{self._key_prefix}:usage:{identity}:{day}"

    def _log_key(self, identity: str, day: str) -> str:
        return f"{self._usage_key(identity, day)}:log"

    def _days_key(self, identity: str) -> str:
        return f"{self._key_prefix}:usage_days:{identity}"

    def _identities_key(self, day: str) -> str:
        return f"{self._key_prefix}:usage_identities:{day}"

    async def increment(
        self, identity: str, day: str, label: Optional[str], at: datetime
    ) -> UsageRecord:
        """Create-or-increment in one MULTI/EXEC transaction.

        HINCRBY creates the field at 0 when absent, so the first call of the
        day yields 1 and concurrent callers each observe a distinct count.
        """
        usage_key = self._usage_key(identity, day)
        log_key = self._log_key(identity, day)
        days_key = self._days_key(identity)
        identities_key = self._identities_key(day)
        stamp = at.isoformat()

        pipe = self._connection.client.pipeline(transaction=True)
        pipe.hincrby(usage_key, "count", 1)
        pipe.hsetnx(usage_key, "created_at", stamp)
        pipe.hset(usage_key, "updated_at", stamp)
        if label:
            pipe.rpush(log_key, json.dumps({"label": label, "timestamp": stamp}))
        pipe.zadd(days_key, {day: date.fromisoformat(day).toordinal()})
        pipe.sadd(identities_key, identity)
        for key in (usage_key, log_key, days_key, identities_key):
            pipe.expire(key, self._ttl_seconds)
        pipe.hgetall(usage_key)
        pipe.lrange(log_key, 0, -1)

        try:
            results = await pipe.execute()
        except RedisError as e:
            logger.error("usage_increment_failed", identity=identity, day=day, error=str(e))
            raise QuotaStoreError("increment", str(e), {"identity": identity, "day": day}) from e

        return self._decode(identity, day, results[-2], results[-1])

    async def get(self, identity: str, day: str) -> Optional[UsageRecord]:
        pipe = self._connection.client.pipeline(transaction=False)
        pipe.hgetall(self._usage_key(identity, day))
        pipe.lrange(self._log_key(identity, day), 0, -1)
        try:
            data, log = await pipe.execute()
        except RedisError as e:
            raise QuotaStoreError("get", str(e), {"identity": identity, "day": day}) from e
        if not data:
            return None
        return self._decode(identity, day, data, log)

    async def history(self, identity: str, limit: int) -> list[UsageRecord]:
        try:
            days = await self._connection.client.zrevrange(self._days_key(identity), 0, limit - 1)
        except RedisError as e:
            raise QuotaStoreError("history", str(e), {"identity": identity}) from e

        records = []
        for day in days:
            record = await self.get(identity, day)
            # Index entries may outlive an expired counter
            if record is not None:
                records.append(record)
        return records

    async def day_totals(self, day: str) -> list[int]:
        client = self._connection.client
        try:
            identities = await client.smembers(self._identities_key(day))
            if not identities:
                return []
            pipe = client.pipeline(transaction=False)
            for identity in identities:
                pipe.hget(self._usage_key(identity, day), "count")
            counts = await pipe.execute()
        except RedisError as e:
            raise QuotaStoreError("day_totals", str(e), {"day": day}) from e
        return [int(count) for count in counts if count is not None]

    @staticmethod
    def _decode(
        identity: str, day: str, data: dict[str, str], log: list[str]
    ) -> UsageRecord:
        entries = []
        for raw in log or []:
            try:
                item = json.loads(raw)
                entries.append(
                    UsageEntry(
                        label=item["label"],
                        timestamp=datetime.fromisoformat(item["timestamp"]),
                    )
                )
            except (ValueError, KeyError, TypeError):
                logger.warning("usage_log_entry_invalid", identity=identity, day=day)
        created = data.get("created_at")
        updated = data.get("updated_at")
        return UsageRecord(
            identity=identity,
            day=day,
            count=int(data.get("count") or 0),
            log=entries,
            created_at=datetime.fromisoformat(created) if created else None,
            updated_at=datetime.fromisoformat(updated) if updated else None,
        )
