"""Counter store port: shared, expiring counters for request rate limits."""

from abc import ABC, abstractmethod


class CounterStore(ABC):
    @abstractmethod
    def increment(self, key: str, ttl_seconds: int) -> int:
        """Atomically add one to ``key``, refresh its expiry, and return the new count."""
        ...

    @abstractmethod
    def get(self, key: str) -> int:
        """Current count for ``key`` (0 when absent or expired)."""
        ...
