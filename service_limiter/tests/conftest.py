"""
Shared fixtures for limiter tests.
"""

import pytest

from service_limiter.app.store.memory import InMemoryCounterStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Stand-in for time.sleep that remembers requested delays."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def sleeper():
    return RecordingSleep()
