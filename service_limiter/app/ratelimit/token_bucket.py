"""
Distributed token bucket limiter.

A bucket is a single integer counter in a shared store, initialised to
``max_tokens``. ``acquire`` atomically decrements it and undoes the
decrement when the result is negative; ``release`` increments it. Any number
of processes pointing at the same key share the same pool of tokens. When
delay is enabled, ``acquire`` also sleeps for a time proportional to how much
of the bucket is in use, which slows callers down before they start getting
rejected.
"""

import asyncio
import time
from contextlib import asynccontextmanager, contextmanager
from typing import TYPE_CHECKING, AsyncIterator, Awaitable, Callable, Iterator, Optional

from shared.errors import StoreConnectionError, ValidationError
from shared.logging import get_logger
from ..store.base import AsyncCounterStore, CounterStore
from ..store.redis_store import AsyncRedisCounterStore, RedisCounterStore
from .keys import BucketKeyStrategy, resolve_bucket_key

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import LimiterConfig
    from shared.metrics import MetricsCollector


MICROSECONDS_PER_SECOND = 1_000_000


def compute_delay_us(tokens_left: int, max_tokens: int, min_delay_us: int, max_delay_us: int) -> float:
    """Throttling delay for an acquire that left ``tokens_left`` in the bucket.

    ``tokens_left`` is the post-decrement value, so the first acquire on a
    full bucket gets ``min_delay_us`` and the acquire that takes the last
    token gets ``max_delay_us``. The proportion is capped at 1 but not
    floored: a counter pushed above ``max_tokens`` by unmatched releases
    yields a delay below the minimum.
    """
    consumed = max_tokens - tokens_left - 1
    proportion = consumed / (max_tokens - 1) if max_tokens > 1 else 1
    proportion = min(proportion, 1)
    return min_delay_us + (max_delay_us - min_delay_us) * proportion


class _TokenBucketSettings:
    """Validated, immutable bucket parameters shared by both limiters."""

    def __init__(
        self,
        bucket_key: Optional[str],
        max_tokens: int,
        ttl_seconds: int,
        use_delay: bool,
        min_delay_seconds: float,
        max_delay_seconds: float,
        key_strategy: Optional[BucketKeyStrategy],
        metrics: Optional["MetricsCollector"],
    ):
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens < 1:
            raise ValidationError("max_tokens must be a positive integer", {"max_tokens": max_tokens})
        if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int) or ttl_seconds < 1:
            raise ValidationError("ttl_seconds must be a positive integer", {"ttl_seconds": ttl_seconds})
        if min_delay_seconds < 0 or max_delay_seconds < min_delay_seconds:
            raise ValidationError(
                "delays must satisfy 0 <= min_delay_seconds <= max_delay_seconds",
                {"min_delay_seconds": min_delay_seconds, "max_delay_seconds": max_delay_seconds},
            )

        key = resolve_bucket_key(bucket_key, key_strategy)
        if not isinstance(key, str) or not key:
            raise ValidationError("bucket_key must be a non-empty string", {"bucket_key": key})

        self._bucket_key = key
        self._max_tokens = max_tokens
        self._ttl_seconds = ttl_seconds
        self._use_delay = bool(use_delay)
        self._min_delay_us = int(min_delay_seconds * MICROSECONDS_PER_SECOND)
        self._max_delay_us = int(max_delay_seconds * MICROSECONDS_PER_SECOND)
        self.metrics = metrics

    @property
    def bucket_key(self) -> str:
        return self._bucket_key

    @property
    def max_tokens(self) -> int:
        return self._max_tokens

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @property
    def use_delay(self) -> bool:
        return self._use_delay

    @property
    def min_delay_seconds(self) -> float:
        return self._min_delay_us / MICROSECONDS_PER_SECOND

    @property
    def max_delay_seconds(self) -> float:
        return self._max_delay_us / MICROSECONDS_PER_SECOND

    def _delay_seconds(self, tokens_left: int) -> float:
        delay_us = int(compute_delay_us(tokens_left, self._max_tokens, self._min_delay_us, self._max_delay_us))
        # A negative delay can only come from the unfloored proportion.
        return max(delay_us, 0) / MICROSECONDS_PER_SECOND

    def _record_delay(self, delay: float) -> None:
        if self.metrics:
            self.metrics.observe_histogram("token_bucket_delay_seconds", delay, bucket=self._bucket_key)

    def _record_acquire(self, granted: bool) -> None:
        if self.metrics:
            self.metrics.increment_counter(
                "token_bucket_acquire_total",
                bucket=self._bucket_key,
                outcome="granted" if granted else "denied",
            )

    def _record_release(self) -> None:
        if self.metrics:
            self.metrics.increment_counter("token_bucket_release_total", bucket=self._bucket_key)

    def _record_store_error(self, error: StoreConnectionError) -> None:
        if self.metrics:
            self.metrics.record_store_error(error.operation or "unknown")

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(bucket_key={self._bucket_key!r}, max_tokens={self._max_tokens}, "
            f"ttl_seconds={self._ttl_seconds}, use_delay={self._use_delay})"
        )


class TokenBucketLimiter(_TokenBucketSettings):
    """Token bucket limiter over a blocking :class:`CounterStore`.

    Construction initialises the bucket to ``max_tokens`` when the key is
    absent, or refreshes its expiration when another process already created
    it. Only construction refreshes the expiration; ``acquire`` and
    ``release`` leave it alone, so an unused bucket is forgotten by the store
    after ``ttl_seconds``.

    ``release`` is not bounded: releasing without a matching successful
    ``acquire`` grows the bucket past ``max_tokens``.
    """

    def __init__(
        self,
        store: CounterStore,
        bucket_key: Optional[str] = None,
        max_tokens: int = 10,
        ttl_seconds: int = 60,
        use_delay: bool = True,
        min_delay_seconds: float = 0,
        max_delay_seconds: float = 0.5,
        *,
        key_strategy: Optional[BucketKeyStrategy] = None,
        metrics: Optional["MetricsCollector"] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(
            bucket_key, max_tokens, ttl_seconds, use_delay,
            min_delay_seconds, max_delay_seconds, key_strategy, metrics,
        )
        self.store = store
        self._sleep = sleep
        self.logger = get_logger("limiter.token_bucket").bind(bucket=self.bucket_key)
        self._initialize_bucket()

    @classmethod
    def from_config(
        cls,
        config: "LimiterConfig",
        store: Optional[CounterStore] = None,
        **kwargs,
    ) -> "TokenBucketLimiter":
        """Build a limiter from settings, connecting to Redis unless a store is given."""
        if store is None:
            store = RedisCounterStore(config.redis_url, socket_timeout=config.socket_timeout)
        return cls(
            store,
            bucket_key=config.bucket_key,
            max_tokens=config.max_tokens,
            ttl_seconds=config.ttl_seconds,
            use_delay=config.use_delay,
            min_delay_seconds=config.min_delay_seconds,
            max_delay_seconds=config.max_delay_seconds,
            **kwargs,
        )

    def _initialize_bucket(self) -> None:
        try:
            if not self.store.exists(self.bucket_key):
                self.store.set(self.bucket_key, self.max_tokens, self.ttl_seconds)
                self.logger.info("Token bucket initialized", max_tokens=self.max_tokens, ttl=self.ttl_seconds)
            else:
                self.store.expire(self.bucket_key, self.ttl_seconds)
                self.logger.debug("Token bucket expiration refreshed", ttl=self.ttl_seconds)
        except StoreConnectionError as e:
            self._record_store_error(e)
            self.logger.error("Failed to initialize token bucket", error=str(e))
            raise

    def acquire(self) -> bool:
        """Take a token; returns False when the bucket is empty."""
        try:
            tokens = self.store.decr(self.bucket_key)

            if self.use_delay:
                delay = self._delay_seconds(tokens)
                self._record_delay(delay)
                if delay > 0:
                    self._sleep(delay)

            if tokens < 0:
                self.store.incr(self.bucket_key)
                self._record_acquire(False)
                self.logger.debug("Token bucket exhausted")
                return False
        except StoreConnectionError as e:
            self._record_store_error(e)
            raise

        self._record_acquire(True)
        return True

    def release(self) -> None:
        """Return a token to the bucket."""
        try:
            self.store.incr(self.bucket_key)
        except StoreConnectionError as e:
            self._record_store_error(e)
            raise
        self._record_release()

    def debug_free_tokens(self) -> int:
        """Raw counter value, for diagnostics only."""
        return int(self.store.get(self.bucket_key) or 0)

    @contextmanager
    def token(self) -> Iterator[bool]:
        """Acquire for the duration of a ``with`` block.

        Yields whether the token was granted; a granted token is released on
        exit, including when the block raises.
        """
        granted = self.acquire()
        try:
            yield granted
        finally:
            if granted:
                self.release()


class AsyncTokenBucketLimiter(_TokenBucketSettings):
    """Token bucket limiter for asyncio callers.

    Same protocol as :class:`TokenBucketLimiter`. The bucket is initialised
    by :meth:`start` (called lazily by the first ``acquire``/``release`` if
    not awaited explicitly), and the delay suspends the task instead of
    blocking the thread.
    """

    def __init__(
        self,
        store: AsyncCounterStore,
        bucket_key: Optional[str] = None,
        max_tokens: int = 10,
        ttl_seconds: int = 60,
        use_delay: bool = True,
        min_delay_seconds: float = 0,
        max_delay_seconds: float = 0.5,
        *,
        key_strategy: Optional[BucketKeyStrategy] = None,
        metrics: Optional["MetricsCollector"] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(
            bucket_key, max_tokens, ttl_seconds, use_delay,
            min_delay_seconds, max_delay_seconds, key_strategy, metrics,
        )
        self.store = store
        self._sleep = sleep
        self._started = False
        self.logger = get_logger("limiter.token_bucket_async").bind(bucket=self.bucket_key)

    @classmethod
    async def create(cls, store: AsyncCounterStore, **kwargs) -> "AsyncTokenBucketLimiter":
        """Construct and start a limiter."""
        limiter = cls(store, **kwargs)
        await limiter.start()
        return limiter

    @classmethod
    def from_config(
        cls,
        config: "LimiterConfig",
        store: Optional[AsyncCounterStore] = None,
        **kwargs,
    ) -> "AsyncTokenBucketLimiter":
        """Build an unstarted limiter from settings."""
        if store is None:
            store = AsyncRedisCounterStore(config.redis_url, socket_timeout=config.socket_timeout)
        return cls(
            store,
            bucket_key=config.bucket_key,
            max_tokens=config.max_tokens,
            ttl_seconds=config.ttl_seconds,
            use_delay=config.use_delay,
            min_delay_seconds=config.min_delay_seconds,
            max_delay_seconds=config.max_delay_seconds,
            **kwargs,
        )

    async def start(self) -> None:
        """Create the bucket if absent, otherwise refresh its expiration."""
        try:
            if not await self.store.exists(self.bucket_key):
                await self.store.set(self.bucket_key, self.max_tokens, self.ttl_seconds)
                self.logger.info("Token bucket initialized", max_tokens=self.max_tokens, ttl=self.ttl_seconds)
            else:
                await self.store.expire(self.bucket_key, self.ttl_seconds)
                self.logger.debug("Token bucket expiration refreshed", ttl=self.ttl_seconds)
        except StoreConnectionError as e:
            self._record_store_error(e)
            self.logger.error("Failed to initialize token bucket", error=str(e))
            raise
        self._started = True

    async def acquire(self) -> bool:
        """Take a token; returns False when the bucket is empty."""
        if not self._started:
            await self.start()

        try:
            tokens = await self.store.decr(self.bucket_key)

            if self.use_delay:
                delay = self._delay_seconds(tokens)
                self._record_delay(delay)
                if delay > 0:
                    try:
                        await self._sleep(delay)
                    except asyncio.CancelledError:
                        # The caller never sees the outcome, so undo this decrement.
                        await self.store.incr(self.bucket_key)
                        self.logger.debug("Acquire cancelled during delay")
                        raise

            if tokens < 0:
                await self.store.incr(self.bucket_key)
                self._record_acquire(False)
                self.logger.debug("Token bucket exhausted")
                return False
        except StoreConnectionError as e:
            self._record_store_error(e)
            raise

        self._record_acquire(True)
        return True

    async def release(self) -> None:
        """Return a token to the bucket."""
        if not self._started:
            await self.start()
        try:
            await self.store.incr(self.bucket_key)
        except StoreConnectionError as e:
            self._record_store_error(e)
            raise
        self._record_release()

    async def debug_free_tokens(self) -> int:
        """Raw counter value, for diagnostics only."""
        return int(await self.store.get(self.bucket_key) or 0)

    @asynccontextmanager
    async def token(self) -> AsyncIterator[bool]:
        """Async counterpart of :meth:`TokenBucketLimiter.token`."""
        granted = await self.acquire()
        try:
            yield granted
        finally:
            if granted:
                await self.release()
