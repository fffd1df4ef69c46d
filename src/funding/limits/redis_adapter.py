"""Redis-backed counter store, shared by every API worker."""

import redis

from funding.limits.port import CounterStore


class RedisCounterStore(CounterStore):
    def __init__(self, url: str, prefix: str = "funding:") -> None:
        self.client = redis.Redis.from_url(url)
        self.prefix = prefix

    def increment(self, key: str, ttl_seconds: int) -> int:
        name = f"{self.prefix}{key}"
        pipeline = self.client.pipeline(transaction=True)
        pipeline.incr(name)
        pipeline.expire(name, ttl_seconds)
        count, _ = pipeline.execute()
        return int(count)

    def get(self, key: str) -> int:
        value = self.client.get(f"{self.prefix}{key}")
        return int(value) if value is not None else 0
