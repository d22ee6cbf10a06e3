"""
Limiter application package.

Exposes the token bucket limiters and the counter stores they run on.
"""

from .ratelimit.token_bucket import AsyncTokenBucketLimiter, TokenBucketLimiter, compute_delay_us
from .store.base import AsyncCounterStore, CounterStore
from .store.memory import AsyncInMemoryCounterStore, InMemoryCounterStore
from .store.redis_store import AsyncRedisCounterStore, RedisCounterStore

__all__ = [
    "AsyncCounterStore",
    "AsyncInMemoryCounterStore",
    "AsyncRedisCounterStore",
    "AsyncTokenBucketLimiter",
    "CounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "TokenBucketLimiter",
    "compute_delay_us",
]
