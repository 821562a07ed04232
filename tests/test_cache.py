"""Tests for the keyed TTL cache adapters."""

import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from paylink.common.cache import MemoryCache, RedisCache, build_cache, safe_get, safe_set
from paylink.common.config import CommonSettings


class StubRedis:
    """Records calls made by `RedisCache`; optionally fails every command."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.store: dict[str, str] = {}
        self.expiries: dict[str, int] = {}

    async def get(self, key):
        if self.fail:
            raise RedisConnectionError("redis down")
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self.fail:
            raise RedisConnectionError("redis down")
        self.store[key] = value
        self.expiries[key] = ex

    async def aclose(self):
        pass


@pytest.mark.asyncio
async def test_memory_cache_hit_then_expiry(cache, clock):
    await cache.set("webhook:ref:txn", True, 60)
    assert await cache.get("webhook:ref:txn") is True

    clock.advance(59)
    assert await cache.get("webhook:ref:txn") is True

    clock.advance(1)
    assert await cache.get("webhook:ref:txn") is None


@pytest.mark.asyncio
async def test_memory_cache_overwrite_resets_ttl(cache, clock):
    await cache.set("k", {"valid": False}, 10)
    clock.advance(8)
    await cache.set("k", {"valid": True}, 10)
    clock.advance(8)
    assert await cache.get("k") == {"valid": True}


@pytest.mark.asyncio
async def test_memory_cache_drops_expired_entries_on_write(cache, clock):
    """Keys that are never read again still leave the cache once expired."""

    for i in range(1000):
        await cache.set(f"token:junk-{i}", {"valid": False}, 300)
    assert len(cache) == 1000

    clock.advance(10_000)
    await cache.set("webhook:ref:txn", True, 60)

    assert len(cache) == 1
    assert await cache.get("webhook:ref:txn") is True


@pytest.mark.asyncio
async def test_memory_cache_sweep_keeps_overwritten_key(cache, clock):
    await cache.set("k", "old", 10)
    clock.advance(8)
    await cache.set("k", "new", 10)
    clock.advance(5)
    await cache.set("other", 1, 10)

    assert len(cache) == 2
    assert await cache.get("k") == "new"


@pytest.mark.asyncio
async def test_memory_cache_miss():
    assert await MemoryCache().get("missing") is None


@pytest.mark.asyncio
async def test_redis_cache_json_round_trip_with_ttl():
    client = StubRedis()
    cache = RedisCache(client)

    await cache.set("token:abc", {"valid": True, "user": None}, 300)

    assert client.expiries["token:abc"] == 300
    assert json.loads(client.store["token:abc"]) == {"valid": True, "user": None}
    assert await cache.get("token:abc") == {"valid": True, "user": None}
    assert await cache.get("token:other") is None


@pytest.mark.asyncio
async def test_backend_failure_reads_as_miss_and_write_is_dropped():
    cache = RedisCache(StubRedis(fail=True))

    assert await safe_get(cache, "webhook:ref:txn") is None
    await safe_set(cache, "webhook:ref:txn", True, 60)


def test_build_cache_selects_backend():
    assert isinstance(build_cache(CommonSettings(cache_backend="memory")), MemoryCache)
    assert isinstance(build_cache(CommonSettings(cache_backend="redis")), RedisCache)
