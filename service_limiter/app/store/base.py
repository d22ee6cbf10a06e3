"""
Counter store interfaces used by the token bucket limiters.
"""

from abc import ABC, abstractmethod
from typing import Optional


class CounterStore(ABC):
    """Key-value store holding integer counters with expiration.

    Implementations must make ``incr`` and ``decr`` atomic and linearizable
    per key; the limiter relies on nothing else for correctness across
    processes. Failures to reach the store raise
    :class:`shared.errors.StoreConnectionError`.
    """

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return True if the key currently holds an unexpired value."""

    @abstractmethod
    def set(self, key: str, value: int, ttl_seconds: int) -> None:
        """Set the value unconditionally and (re)start its expiration."""

    @abstractmethod
    def expire(self, key: str, ttl_seconds: int) -> bool:
        """Restart the expiration countdown without touching the value."""

    @abstractmethod
    def decr(self, key: str) -> int:
        """Atomically decrement by one and return the new value."""

    @abstractmethod
    def incr(self, key: str) -> int:
        """Atomically increment by one and return the new value."""

    @abstractmethod
    def get(self, key: str) -> Optional[int]:
        """Read the current value, or None if the key is absent."""

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass


class AsyncCounterStore(ABC):
    """Asyncio flavour of :class:`CounterStore`."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def set(self, key: str, value: int, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        ...

    @abstractmethod
    async def decr(self, key: str) -> int:
        ...

    @abstractmethod
    async def incr(self, key: str) -> int:
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[int]:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass
