"""Counter store registry for order rate limits.

Uses the in-process MemoryCounterStore by default. Deployments running more
than one API worker set COUNTER_STORE=redis (and REDIS_URL) so every worker
counts against the same keys.
"""

import os

from funding.limits.port import CounterStore

_store_instance: CounterStore | None = None


def get_counter_store() -> CounterStore:
    """Return the configured counter store (singleton)."""
    global _store_instance
    if _store_instance is None:
        adapter = os.environ.get("COUNTER_STORE", "memory")
        if adapter == "memory":
            from funding.limits.memory_adapter import MemoryCounterStore

            _store_instance = MemoryCounterStore()
        elif adapter == "redis":
            from funding.limits.redis_adapter import RedisCounterStore

            _store_instance = RedisCounterStore(os.environ.get("REDIS_URL", "redis://localhost:6379/0"))
        else:
            raise ValueError(f"Unknown counter store: {adapter}")
    return _store_instance


def set_counter_store(store: CounterStore) -> None:
    global _store_instance
    _store_instance = store


def reset_counter_store() -> None:
    """Reset the counter store singleton (useful for testing)."""
    global _store_instance
    _store_instance = None
