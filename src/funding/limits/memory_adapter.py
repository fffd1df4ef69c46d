"""In-process counter store for development and testing."""

import threading
import time
from collections.abc import Callable

from funding.limits.port import CounterStore


class MemoryCounterStore(CounterStore):
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._counters: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> int:
        entry = self._counters.get(key)
        if entry is None:
            return 0
        count, expires_at = entry
        if expires_at <= self._clock():
            del self._counters[key]
            return 0
        return count

    def increment(self, key: str, ttl_seconds: int) -> int:
        with self._lock:
            count = self._live(key) + 1
            self._counters[key] = (count, self._clock() + ttl_seconds)
            return count

    def get(self, key: str) -> int:
        with self._lock:
            return self._live(key)

    def clear(self) -> None:
        with self._lock:
            self._counters.clear()
