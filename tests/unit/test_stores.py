"""Unit tests for quota stores."""

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tubepulse.core.exceptions import QuotaStoreError
from tubepulse.quota import (
    AccountQuotaState,
    InMemoryAccountStore,
    InMemoryUsageStore,
    RedisAccountStore,
    RedisConnection,
    RedisUsageStore,
)

AT = datetime(2025, 1, 15, 3, 0, tzinfo=timezone.utc)


class TestInMemoryAccountStore:
    @pytest.fixture
    def store(self):
        return InMemoryAccountStore()

    @pytest.mark.asyncio
    async def test_create_if_absent_keeps_existing(self, store):
        await store.put(AccountQuotaState(identity="kim@example.com", daily_limit=50))

        account = await store.create_if_absent("kim@example.com", 20, "2025-01-15")

        assert account.daily_limit == 50

    @pytest.mark.asyncio
    async def test_create_if_absent_fills_defaults(self, store):
        account = await store.create_if_absent("new@example.com", 20, "2025-01-15")

        assert account.daily_limit == 20
        assert account.remaining == 20
        assert account.last_reset_date == "2025-01-15"
        assert account.is_blocked is False

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, store):
        await store.put(AccountQuotaState(identity="kim@example.com", daily_limit=5))

        account = await store.get("kim@example.com")
        account.daily_limit = 999

        assert (await store.get("kim@example.com")).daily_limit == 5

    @pytest.mark.asyncio
    async def test_update_fields(self, store):
        await store.put(AccountQuotaState(identity="kim@example.com", daily_limit=5))

        assert await store.update_fields("kim@example.com", remaining=2) is True
        assert await store.update_fields("ghost@example.com", remaining=2) is False
        assert (await store.get("kim@example.com")).remaining == 2

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_field(self, store):
        with pytest.raises(ValueError):
            await store.update_fields("kim@example.com", email="x")


class TestInMemoryUsageStore:
    @pytest.fixture
    def store(self):
        return InMemoryUsageStore()

    @pytest.mark.asyncio
    async def test_first_increment_creates_record(self, store):
        record = await store.increment("kim@example.com", "2025-01-15", "cats", AT)

        assert record.count == 1
        assert record.created_at == AT
        assert [e.label for e in record.log] == ["cats"]

    @pytest.mark.asyncio
    async def test_concurrent_increments(self, store):
        await asyncio.gather(
            *(store.increment("kim@example.com", "2025-01-15", None, AT) for _ in range(100))
        )

        assert (await store.get("kim@example.com", "2025-01-15")).count == 100

    @pytest.mark.asyncio
    async def test_day_totals(self, store):
        await store.increment("a@x.com", "2025-01-15", None, AT)
        await store.increment("a@x.com", "2025-01-15", None, AT)
        await store.increment("b@x.com", "2025-01-15", None, AT)
        await store.increment("b@x.com", "2025-01-14", None, AT)

        assert sorted(await store.day_totals("2025-01-15")) == [1, 2]

    @pytest.mark.asyncio
    async def test_retention_purges_old_days(self):
        store = InMemoryUsageStore(retention_days=30)
        await store.increment("kim@example.com", "2024-11-01", None, AT)

        await store.increment("kim@example.com", "2025-01-15", None, AT)

        assert await store.get("kim@example.com", "2024-11-01") is None
        assert len(await store.history("kim@example.com", 10)) == 1


def make_connection(pipe_results=None):
    """Connection whose client hands out one recorded pipeline."""
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=pipe_results or [])
    client = MagicMock()
    client.pipeline = MagicMock(return_value=pipe)
    connection = MagicMock()
    connection.client = client
    return connection, client, pipe


class TestRedisUsageStore:
    @pytest.mark.asyncio
    async def test_increment_is_one_transaction(self):
        stamp = AT.isoformat()
        connection, client, pipe = make_connection(
            [1, 1, 1, 1, 1, 1, True, True, True, True,
             {"count": "1", "created_at": stamp, "updated_at": stamp},
             [json.dumps({"label": "cats", "timestamp": stamp})]]
        )
        store = RedisUsageStore(connection, retention_days=90, key_prefix="tp")

        record = await store.increment("kim@example.com", "2025-01-15", "cats", AT)

        client.pipeline.assert_called_once_with(transaction=True)
        pipe.hincrby.assert_called_once_with("tp:usage:kim@example.com:2025-01-15", "count", 1)
        pipe.rpush.assert_called_once()
        assert pipe.expire.call_count == 4
        pipe.expire.assert_any_call("tp:usage:kim@example.com:2025-01-15", 90 * 86400)
        assert record.count == 1
        assert record.log[0].label == "cats"
        assert record.created_at == AT

    @pytest.mark.asyncio
    async def test_increment_without_label_skips_log(self):
        connection, _, pipe = make_connection(
            [1, 1, 1, 1, 1, True, True, True, True, {"count": "4"}, []]
        )
        store = RedisUsageStore(connection)

        record = await store.increment("kim@example.com", "2025-01-15", None, AT)

        pipe.rpush.assert_not_called()
        assert record.count == 4
        assert record.log == []

    @pytest.mark.asyncio
    async def test_increment_failure_raises_store_error(self):
        connection, _, pipe = make_connection()
        pipe.execute = AsyncMock(side_effect=RedisConnectionError("connection reset"))
        store = RedisUsageStore(connection)

        with pytest.raises(QuotaStoreError) as exc_info:
            await store.increment("kim@example.com", "2025-01-15", None, AT)

        assert exc_info.value.operation == "increment"

    @pytest.mark.asyncio
    async def test_get_missing_is_none(self):
        connection, client, _ = make_connection([{}, []])
        store = RedisUsageStore(connection)

        assert await store.get("kim@example.com", "2025-01-15") is None
        client.pipeline.assert_called_once_with(transaction=False)

    @pytest.mark.asyncio
    async def test_invalid_log_entry_skipped(self):
        connection, _, _ = make_connection(
            [{"count": "2"}, ["not json", json.dumps({"label": "ok", "timestamp": AT.isoformat()})]]
        )
        store = RedisUsageStore(connection)

        record = await store.get("kim@example.com", "2025-01-15")

        assert [e.label for e in record.log] == ["ok"]

    @pytest.mark.asyncio
    async def test_day_totals(self):
        connection, client, _ = make_connection(["3", None, "1"])
        client.smembers = AsyncMock(return_value={"a", "b", "c"})
        store = RedisUsageStore(connection)

        assert sorted(await store.day_totals("2025-01-15")) == [1, 3]

    @pytest.mark.asyncio
    async def test_day_totals_empty(self):
        connection, client, _ = make_connection()
        client.smembers = AsyncMock(return_value=set())
        store = RedisUsageStore(connection)

        assert await store.day_totals("2025-01-15") == []
        client.pipeline.assert_not_called()


class TestRedisAccountStore:
    @pytest.mark.asyncio
    async def test_get_decodes_hash(self):
        connection, client, _ = make_connection()
        client.hgetall = AsyncMock(
            return_value={
                "daily_limit": "50",
                "is_active": "1",
                "is_banned": "0",
                "last_reset_date": "2025-01-15",
                "remaining": "",
            }
        )
        store = RedisAccountStore(connection)

        account = await store.get("kim@example.com")

        client.hgetall.assert_awaited_once_with("tubepulse:account:kim@example.com")
        assert account == AccountQuotaState(
            identity="kim@example.com",
            daily_limit=50,
            last_reset_date="2025-01-15",
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stored", [{"is_active": "1"}, {"daily_limit": "", "is_active": "1"}])
    async def test_missing_limit_decodes_as_unset(self, stored):
        connection, client, _ = make_connection()
        client.hgetall = AsyncMock(return_value=stored)

        account = await RedisAccountStore(connection).get("kim@example.com")

        assert account.daily_limit is None
        assert account.is_blocked is False

    @pytest.mark.asyncio
    async def test_get_missing_is_none(self):
        connection, client, _ = make_connection()
        client.hgetall = AsyncMock(return_value={})

        assert await RedisAccountStore(connection).get("ghost@example.com") is None

    @pytest.mark.asyncio
    async def test_create_if_absent_uses_hsetnx(self):
        connection, _, pipe = make_connection(
            [1, 1, 1, 1, 1, {"daily_limit": "20", "is_banned": "1"}]
        )
        store = RedisAccountStore(connection)

        account = await store.create_if_absent("new@example.com", 20, "2025-01-15")

        assert pipe.hsetnx.call_count == 5
        pipe.hsetnx.assert_any_call("tubepulse:account:new@example.com", "is_active", "1")
        assert account.daily_limit == 20
        assert account.is_banned is True

    @pytest.mark.asyncio
    async def test_update_fields_missing_account(self):
        connection, client, _ = make_connection()
        client.exists = AsyncMock(return_value=0)
        client.hset = AsyncMock()

        assert await RedisAccountStore(connection).update_fields("ghost@x.com", remaining=1) is False
        client.hset.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_fields_encodes_values(self):
        connection, client, _ = make_connection()
        client.exists = AsyncMock(return_value=1)
        client.hset = AsyncMock()

        await RedisAccountStore(connection).update_fields(
            "kim@example.com", remaining=3, is_active=False
        )

        client.hset.assert_awaited_once_with(
            "tubepulse:account:kim@example.com",
            mapping={"remaining": "3", "is_active": "0"},
        )

    @pytest.mark.asyncio
    async def test_redis_error_wrapped(self):
        connection, client, _ = make_connection()
        client.hgetall = AsyncMock(side_effect=RedisConnectionError("down"))

        with pytest.raises(QuotaStoreError):
            await RedisAccountStore(connection).get("kim@example.com")


class TestRedisConnection:
    def test_client_requires_open(self):
        with pytest.raises(RuntimeError):
            RedisConnection("redis://localhost:6379/0").client

    @pytest.mark.asyncio
    async def test_open_failure_closes_client(self):
        mock_client = MagicMock()
        mock_client.ping = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        mock_client.aclose = AsyncMock()

        with patch("tubepulse.quota.stores.redis.from_url", return_value=mock_client):
            connection = RedisConnection("redis://localhost:6379/0")
            with pytest.raises(RedisConnectionError):
                await connection.open()

        mock_client.aclose.assert_awaited_once()
        assert connection.is_open is False

    @pytest.mark.asyncio
    async def test_context_manager(self):
        mock_client = MagicMock()
        mock_client.ping = AsyncMock(return_value=True)
        mock_client.aclose = AsyncMock()

        with patch("tubepulse.quota.stores.redis.from_url", return_value=mock_client):
            async with RedisConnection("redis://localhost:6379/0") as connection:
                assert connection.client is mock_client

        mock_client.aclose.assert_awaited_once()
