"""
In-process counter stores.

These follow Redis semantics closely enough to stand in for it in tests and
in single-process deployments: missing keys count as zero for ``incr`` and
``decr`` (and are created without expiration), ``expire`` on a missing key is
a no-op that returns False, and expired keys behave exactly like absent ones.
"""

import threading
import time
from typing import Callable, Dict, Optional, Tuple

from shared.logging import get_logger
from .base import AsyncCounterStore, CounterStore


class InMemoryCounterStore(CounterStore):
    """Thread-safe dictionary of counters with per-key deadlines."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (value, deadline or None)
        self._data: Dict[str, Tuple[int, Optional[float]]] = {}
        self.logger = get_logger("limiter.store.memory")

    def _live(self, key: str) -> Optional[Tuple[int, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        deadline = entry[1]
        if deadline is not None and self._clock() >= deadline:
            del self._data[key]
            self.logger.debug("Key expired", key=key)
            return None
        return entry

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def set(self, key: str, value: int, ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (int(value), self._clock() + ttl_seconds)

    def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return False
            self._data[key] = (entry[0], self._clock() + ttl_seconds)
            return True

    def _add(self, key: str, amount: int) -> int:
        with self._lock:
            entry = self._live(key)
            value, deadline = entry if entry is not None else (0, None)
            value += amount
            self._data[key] = (value, deadline)
            return value

    def decr(self, key: str) -> int:
        return self._add(key, -1)

    def incr(self, key: str) -> int:
        return self._add(key, 1)

    def get(self, key: str) -> Optional[int]:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry is not None else None

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until the key expires; None when absent or persistent."""
        with self._lock:
            entry = self._live(key)
            if entry is None or entry[1] is None:
                return None
            return entry[1] - self._clock()

    def close(self) -> None:
        with self._lock:
            self._data.clear()


class AsyncInMemoryCounterStore(AsyncCounterStore):
    """Asyncio facade over :class:`InMemoryCounterStore`."""

    def __init__(self, store: Optional[InMemoryCounterStore] = None):
        self.store = store or InMemoryCounterStore()

    async def exists(self, key: str) -> bool:
        return self.store.exists(key)

    async def set(self, key: str, value: int, ttl_seconds: int) -> None:
        self.store.set(key, value, ttl_seconds)

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return self.store.expire(key, ttl_seconds)

    async def decr(self, key: str) -> int:
        return self.store.decr(key)

    async def incr(self, key: str) -> int:
        return self.store.incr(key)

    async def get(self, key: str) -> Optional[int]:
        return self.store.get(key)

    async def close(self) -> None:
        self.store.close()
