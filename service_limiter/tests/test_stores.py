"""
Unit tests for the counter stores.
"""

import threading

import pytest
from unittest.mock import AsyncMock, MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError

from service_limiter.app.store.memory import AsyncInMemoryCounterStore, InMemoryCounterStore
from service_limiter.app.store.redis_store import AsyncRedisCounterStore, RedisCounterStore
from shared.errors import StoreConnectionError


class TestInMemoryCounterStore:
    """Test cases for InMemoryCounterStore."""

    def test_set_and_get(self, store):
        store.set("k", 5, 10)

        assert store.exists("k") is True
        assert store.get("k") == 5

    def test_missing_key(self, store):
        assert store.exists("missing") is False
        assert store.get("missing") is None
        assert store.expire("missing", 10) is False

    def test_incr_decr_on_missing_key_start_from_zero(self, store):
        assert store.decr("k") == -1
        assert store.incr("k") == 0
        assert store.ttl("k") is None

    def test_expiration(self, store, clock):
        store.set("k", 3, 5)
        clock.advance(4)
        assert store.exists("k") is True

        clock.advance(1)
        assert store.exists("k") is False
        assert store.get("k") is None

    def test_expire_keeps_value(self, store, clock):
        store.set("k", 3, 5)
        store.decr("k")
        clock.advance(3)

        assert store.expire("k", 5) is True
        clock.advance(3)

        assert store.get("k") == 2

    def test_incr_preserves_expiration(self, store, clock):
        store.set("k", 3, 5)
        clock.advance(2)

        store.incr("k")

        assert store.ttl("k") == pytest.approx(3)

    def test_concurrent_decrements_are_atomic(self):
        store = InMemoryCounterStore()
        store.set("k", 1000, 60)

        def worker():
            for _ in range(100):
                store.decr("k")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.get("k") == 200

    @pytest.mark.asyncio
    async def test_async_facade(self, store):
        async_store = AsyncInMemoryCounterStore(store)

        await async_store.set("k", 2, 10)
        assert await async_store.decr("k") == 1
        assert await async_store.incr("k") == 2
        assert await async_store.exists("k") is True
        assert await async_store.get("k") == 2
        assert await async_store.ping() is True


class TestRedisCounterStore:
    """Test cases for RedisCounterStore."""

    @pytest.fixture
    def mock_redis(self):
        return MagicMock()

    @pytest.fixture
    def redis_store(self, mock_redis):
        return RedisCounterStore(client=mock_redis)

    def test_commands(self, redis_store, mock_redis):
        mock_redis.exists.return_value = 1
        mock_redis.decr.return_value = 4
        mock_redis.incr.return_value = 5
        mock_redis.get.return_value = "5"
        mock_redis.expire.return_value = True

        assert redis_store.exists("k") is True
        redis_store.set("k", 10, 60)
        assert redis_store.expire("k", 60) is True
        assert redis_store.decr("k") == 4
        assert redis_store.incr("k") == 5
        assert redis_store.get("k") == 5

        mock_redis.set.assert_called_once_with("k", 10, ex=60)
        mock_redis.expire.assert_called_once_with("k", 60)

    def test_get_decodes_bytes_and_missing(self, redis_store, mock_redis):
        mock_redis.get.side_effect = [b"-1", None]

        assert redis_store.get("k") == -1
        assert redis_store.get("k") is None

    def test_redis_error_translated(self, redis_store, mock_redis):
        mock_redis.decr.side_effect = RedisConnectionError("Connection refused")

        with pytest.raises(StoreConnectionError) as exc_info:
            redis_store.decr("k")

        error = exc_info.value
        assert error.code == "STORE_CONNECTION_ERROR"
        assert error.details == {"operation": "decr", "key": "k"}
        assert isinstance(error.__cause__, RedisConnectionError)

    def test_connect_pings(self, redis_store, mock_redis):
        mock_redis.ping.return_value = True

        assert redis_store.connect() is redis_store
        mock_redis.ping.assert_called_once_with()

    def test_connect_failure(self, redis_store, mock_redis):
        mock_redis.ping.side_effect = RedisTimeoutError("Timeout connecting to server")

        with pytest.raises(StoreConnectionError) as exc_info:
            redis_store.connect()

        assert exc_info.value.details == {"operation": "ping"}

    def test_lazy_client_from_url(self, monkeypatch):
        created = MagicMock()
        from_url = MagicMock(return_value=created)
        monkeypatch.setattr("service_limiter.app.store.redis_store.redis.from_url", from_url)
        redis_store = RedisCounterStore("redis://cache:6379/2", socket_timeout=1.5)

        redis_store.exists("k")
        redis_store.exists("k")

        from_url.assert_called_once()
        args, kwargs = from_url.call_args
        assert args == ("redis://cache:6379/2",)
        assert kwargs["socket_timeout"] == 1.5
        assert kwargs["decode_responses"] is True

    def test_close(self, redis_store, mock_redis):
        redis_store.close()

        mock_redis.close.assert_called_once_with()


class TestAsyncRedisCounterStore:
    """Test cases for AsyncRedisCounterStore."""

    @pytest.fixture
    def mock_redis(self):
        return AsyncMock()

    @pytest.mark.asyncio
    async def test_commands(self, mock_redis):
        mock_redis.exists.return_value = 0
        mock_redis.decr.return_value = 2
        mock_redis.incr.return_value = 3
        mock_redis.get.return_value = "3"
        redis_store = AsyncRedisCounterStore(client=mock_redis)

        assert await redis_store.exists("k") is False
        await redis_store.set("k", 3, 60)
        assert await redis_store.decr("k") == 2
        assert await redis_store.incr("k") == 3
        assert await redis_store.get("k") == 3

        mock_redis.set.assert_awaited_once_with("k", 3, ex=60)

    @pytest.mark.asyncio
    async def test_redis_error_translated(self, mock_redis):
        mock_redis.incr.side_effect = RedisConnectionError("Connection reset by peer")
        redis_store = AsyncRedisCounterStore(client=mock_redis)

        with pytest.raises(StoreConnectionError) as exc_info:
            await redis_store.incr("k")

        assert exc_info.value.operation == "incr"

    @pytest.mark.asyncio
    async def test_close(self, mock_redis):
        redis_store = AsyncRedisCounterStore(client=mock_redis)

        await redis_store.close()

        mock_redis.aclose.assert_awaited_once_with()
