"""
Redis-backed counter stores.
"""

from typing import Any, Callable, Optional

import redis
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from shared.errors import StoreConnectionError
from shared.logging import get_logger
from .base import AsyncCounterStore, CounterStore


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    return int(value)


class RedisCounterStore(CounterStore):
    """Counter store on a blocking redis-py client."""

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        *,
        client: Optional[redis.Redis] = None,
        socket_timeout: Optional[float] = 5.0,
    ):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.logger = get_logger("limiter.store.redis")
        self._redis: Optional[redis.Redis] = client

    def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
            )
        return self._redis

    def _call(self, operation: str, key: Optional[str], command: Callable[[redis.Redis], Any]) -> Any:
        try:
            return command(self._get_redis())
        except RedisError as e:
            self.logger.error("Redis command failed", operation=operation, key=key, error=str(e))
            raise StoreConnectionError(str(e), operation=operation, key=key) from e

    def connect(self) -> "RedisCounterStore":
        """Open the connection and verify it with PING."""
        self.ping()
        self.logger.info("Redis counter store connected", redis_url=self.redis_url)
        return self

    def ping(self) -> bool:
        return bool(self._call("ping", None, lambda r: r.ping()))

    def exists(self, key: str) -> bool:
        return bool(self._call("exists", key, lambda r: r.exists(key)))

    def set(self, key: str, value: int, ttl_seconds: int) -> None:
        self._call("set", key, lambda r: r.set(key, value, ex=ttl_seconds))

    def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(self._call("expire", key, lambda r: r.expire(key, ttl_seconds)))

    def decr(self, key: str) -> int:
        return _to_int(self._call("decr", key, lambda r: r.decr(key)))

    def incr(self, key: str) -> int:
        return _to_int(self._call("incr", key, lambda r: r.incr(key)))

    def get(self, key: str) -> Optional[int]:
        return _to_int(self._call("get", key, lambda r: r.get(key)))

    def close(self) -> None:
        if self._redis is not None:
            self._redis.close()
            self._redis = None
            self.logger.info("Redis counter store closed")


class AsyncRedisCounterStore(AsyncCounterStore):
    """Counter store on redis.asyncio."""

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        *,
        client: Optional[aioredis.Redis] = None,
        socket_timeout: Optional[float] = 5.0,
    ):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.logger = get_logger("limiter.store.redis_async")
        self._redis: Optional[aioredis.Redis] = client

    async def _get_redis(self) -> aioredis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
            )
        return self._redis

    async def _call(self, operation: str, key: Optional[str], command: Callable[[aioredis.Redis], Any]) -> Any:
        try:
            redis_client = await self._get_redis()
            return await command(redis_client)
        except RedisError as e:
            self.logger.error("Redis command failed", operation=operation, key=key, error=str(e))
            raise StoreConnectionError(str(e), operation=operation, key=key) from e

    async def connect(self) -> "AsyncRedisCounterStore":
        """Open the connection and verify it with PING."""
        await self.ping()
        self.logger.info("Redis counter store connected", redis_url=self.redis_url)
        return self

    async def ping(self) -> bool:
        return bool(await self._call("ping", None, lambda r: r.ping()))

    async def exists(self, key: str) -> bool:
        return bool(await self._call("exists", key, lambda r: r.exists(key)))

    async def set(self, key: str, value: int, ttl_seconds: int) -> None:
        await self._call("set", key, lambda r: r.set(key, value, ex=ttl_seconds))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(await self._call("expire", key, lambda r: r.expire(key, ttl_seconds)))

    async def decr(self, key: str) -> int:
        return _to_int(await self._call("decr", key, lambda r: r.decr(key)))

    async def incr(self, key: str) -> int:
        return _to_int(await self._call("incr", key, lambda r: r.incr(key)))

    async def get(self, key: str) -> Optional[int]:
        return _to_int(await self._call("get", key, lambda r: r.get(key)))

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Redis counter store closed")
