"""Keyed TTL cache used for token-verdict memoization and webhook de-duplication.

Callers only depend on the `Cache` protocol. `RedisCache` is the deployed
backend; `MemoryCache` keeps entries in-process for local runs and tests.
An entry that has expired always reads as a miss.
"""

import heapq
import json
import time
from collections.abc import Callable
from typing import Any, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from paylink.common.config import CommonSettings
from paylink.common.logging import logger


class Cache(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def close(self) -> None: ...


class RedisCache:
    """JSON-encoded values stored with `SET key value EX ttl`."""

    def __init__(self, client: aioredis.Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(aioredis.Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Any | None:
        raw = await self.client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self.client.set(key, json.dumps(value), ex=ttl_seconds)

    async def close(self) -> None:
        await self.client.aclose()


class MemoryCache:
    """Process-local cache with per-key expiry.

    Expiry deadlines are kept in a min-heap so every `set` can drop the
    entries whose TTL has run out, whether or not their key is read again.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._deadlines: list[tuple[float, str]] = []

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        now = self._clock()
        self._evict_expired(now)
        expires_at = now + ttl_seconds
        self._entries[key] = (expires_at, value)
        heapq.heappush(self._deadlines, (expires_at, key))

    async def close(self) -> None:
        self._entries.clear()
        self._deadlines.clear()

    def _evict_expired(self, now: float) -> None:
        while self._deadlines and self._deadlines[0][0] <= now:
            expires_at, key = heapq.heappop(self._deadlines)
            entry = self._entries.get(key)
            # An overwritten key has a later deadline of its own.
            if entry is not None and entry[0] == expires_at:
                del self._entries[key]


def build_cache(settings: CommonSettings) -> Cache:
    if settings.cache_backend == "redis":
        return RedisCache.from_url(settings.redis_url)
    return MemoryCache()


async def safe_get(cache: Cache, key: str) -> Any | None:
    """Read through `cache`, treating a backend failure as a miss."""

    try:
        return await cache.get(key)
    except RedisError as exc:
        logger.warning("cache_read_failed namespace=%s error=%s", key.split(":", 1)[0], exc)
        return None


async def safe_set(cache: Cache, key: str, value: Any, ttl_seconds: int) -> None:
    try:
        await cache.set(key, value, ttl_seconds)
    except RedisError as exc:
        logger.warning("cache_write_failed namespace=%s error=%s", key.split(":", 1)[0], exc)
