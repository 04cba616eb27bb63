"""
Tests for the time-bounded cache.

Covers:
    • Hit / miss / lazy expiry against an injected clock
    • Per-store default TTLs and explicit TTL overrides
    • Store isolation, deletion, store and expired-entry sweeps
    • get_or_compute, stats, key building
    • Backend failures degrading to misses
    • Construction from settings and the sweeper task lifecycle
"""

from __future__ import annotations

import asyncio
import time

from redis.exceptions import ConnectionError as RedisConnectionError

from climate_risk.app.core.cache import (
    CacheBackend,
    CacheStore,
    ClimateCache,
    MemoryCacheBackend,
    RedisCacheBackend,
    build_cache,
    make_cache_key,
)
from climate_risk.app.core.config import Settings


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingBackend(CacheBackend):
    name = "failing"

    async def get(self, store, key):
        raise RedisConnectionError("connection refused")

    async def put(self, store, entry):
        raise RedisConnectionError("connection refused")

    async def delete(self, store, key):
        raise RedisConnectionError("connection refused")

    async def entries(self, store):
        raise RedisConnectionError("connection refused")

    async def clear(self, store):
        raise RedisConnectionError("connection refused")

    async def ping(self):
        raise RedisConnectionError("connection refused")


def make_cache(clock: FakeClock) -> ClimateCache:
    return ClimateCache(MemoryCacheBackend(), clock=clock)


# ═══════════════════════════════════════════════════════════════════════════
# Entry lifecycle
# ═══════════════════════════════════════════════════════════════════════════

class TestExpiry:
    def test_hit_then_expired_miss(self):
        clock = FakeClock()
        cache = make_cache(clock)

        async def scenario():
            await cache.set(CacheStore.FORECASTS, "k", {"v": 1})
            assert await cache.get(CacheStore.FORECASTS, "k") == {"v": 1}
            clock.advance(6 * 3600 - 1)
            assert await cache.get(CacheStore.FORECASTS, "k") == {"v": 1}
            clock.advance(1)
            assert await cache.get(CacheStore.FORECASTS, "k") is None
            # Expired entries are removed on read
            assert await cache.backend.entries(CacheStore.FORECASTS.value) == []

        asyncio.run(scenario())

    def test_default_ttls_per_store(self):
        clock = FakeClock()
        cache = make_cache(clock)

        async def scenario():
            historical = await cache.set(CacheStore.HISTORICAL_WEATHER, "h", 1)
            events = await cache.set(CacheStore.EXTREME_EVENTS, "e", 1)
            aggregates = await cache.set(CacheStore.HISTORICAL_AGGREGATES, "a", 1)
            assert historical.expires_at - historical.timestamp == 30 * 24 * 3600
            assert events.expires_at - events.timestamp == 24 * 3600
            assert aggregates.expires_at - aggregates.timestamp == 3600

        asyncio.run(scenario())

    def test_explicit_ttl(self):
        clock = FakeClock()
        cache = make_cache(clock)

        async def scenario():
            await cache.set(CacheStore.LANDSLIDES, "k", "v", ttl=10)
            clock.advance(9)
            assert await cache.get(CacheStore.LANDSLIDES, "k") == "v"
            clock.advance(1)
            assert await cache.get(CacheStore.LANDSLIDES, "k") is None

        asyncio.run(scenario())

    def test_real_clock_short_ttl(self):
        cache = ClimateCache(MemoryCacheBackend())

        async def scenario():
            await cache.set(CacheStore.FLOODS, "k", "v", ttl=0.1)
            assert await cache.get(CacheStore.FLOODS, "k") == "v"
            await asyncio.sleep(0.15)
            assert await cache.get(CacheStore.FLOODS, "k") is None

        asyncio.run(scenario())

    def test_overwrite_is_last_write_wins(self):
        cache = make_cache(FakeClock())

        async def scenario():
            await cache.set(CacheStore.FLOODS, "k", "first")
            await cache.set(CacheStore.FLOODS, "k", "second")
            assert await cache.get(CacheStore.FLOODS, "k") == "second"

        asyncio.run(scenario())


class TestStores:
    def test_stores_are_isolated(self):
        cache = make_cache(FakeClock())

        async def scenario():
            await cache.set(CacheStore.FLOODS, "k", "flood")
            await cache.set(CacheStore.LANDSLIDES, "k", "landslide")
            assert await cache.get(CacheStore.FLOODS, "k") == "flood"
            assert await cache.get(CacheStore.LANDSLIDES, "k") == "landslide"
            assert await cache.get(CacheStore.CLIMATE_INDICES, "k") is None

        asyncio.run(scenario())

    def test_store_given_by_name(self):
        cache = make_cache(FakeClock())

        async def scenario():
            await cache.set("floods", "k", 1)
            assert await cache.get(CacheStore.FLOODS, "k") == 1

        asyncio.run(scenario())

    def test_delete(self):
        cache = make_cache(FakeClock())

        async def scenario():
            await cache.set(CacheStore.FLOODS, "k", 1)
            assert await cache.delete(CacheStore.FLOODS, "k") is True
            assert await cache.delete(CacheStore.FLOODS, "k") is False
            assert await cache.get(CacheStore.FLOODS, "k") is None

        asyncio.run(scenario())

    def test_clear_store(self):
        cache = make_cache(FakeClock())

        async def scenario():
            await cache.set(CacheStore.FLOODS, "a", 1)
            await cache.set(CacheStore.FLOODS, "b", 2)
            await cache.set(CacheStore.LANDSLIDES, "c", 3)
            assert await cache.clear_store(CacheStore.FLOODS) == 2
            assert await cache.get(CacheStore.LANDSLIDES, "c") == 3

        asyncio.run(scenario())

    def test_clear_expired(self):
        clock = FakeClock()
        cache = make_cache(clock)

        async def scenario():
            await cache.set(CacheStore.FLOODS, "old", 1, ttl=5)
            await cache.set(CacheStore.FORECASTS, "old", 1, ttl=5)
            await cache.set(CacheStore.FLOODS, "fresh", 2, ttl=50)
            clock.advance(10)
            assert await cache.clear_expired() == 2
            assert await cache.get(CacheStore.FLOODS, "fresh") == 2

        asyncio.run(scenario())


class TestGetOrCompute:
    def test_factory_runs_once(self):
        cache = make_cache(FakeClock())
        calls = []

        async def factory():
            calls.append(1)
            return {"computed": True}

        async def scenario():
            first = await cache.get_or_compute(CacheStore.CLIMATE_INDICES, "k", factory)
            second = await cache.get_or_compute(CacheStore.CLIMATE_INDICES, "k", factory)
            assert first == second == {"computed": True}

        asyncio.run(scenario())
        assert len(calls) == 1

    def test_none_is_not_cached(self):
        cache = make_cache(FakeClock())
        calls = []

        async def factory():
            calls.append(1)
            return None

        async def scenario():
            await cache.get_or_compute(CacheStore.CLIMATE_INDICES, "k", factory)
            await cache.get_or_compute(CacheStore.CLIMATE_INDICES, "k", factory)

        asyncio.run(scenario())
        assert len(calls) == 2


class TestStats:
    def test_counts(self):
        clock = FakeClock()
        cache = make_cache(clock)

        async def scenario():
            await cache.set(CacheStore.FLOODS, "a", 1, ttl=5)
            await cache.set(CacheStore.FLOODS, "b", 2, ttl=50)
            await cache.get(CacheStore.FLOODS, "b")
            await cache.get(CacheStore.FLOODS, "missing")
            clock.advance(10)
            return await cache.stats()

        stats = asyncio.run(scenario())
        floods = stats["stores"]["floods"]
        assert stats["backend"] == "memory"
        assert stats["open"] is False
        assert floods == {"store": "floods", "entries": 2, "expired": 1, "hits": 1, "misses": 1}
        assert stats["stores"]["landslides"]["entries"] == 0


# ═══════════════════════════════════════════════════════════════════════════
# Keys
# ═══════════════════════════════════════════════════════════════════════════

class TestCacheKey:
    def test_sorted_and_none_skipped(self):
        key = make_cache_key("bundle", {"lon": 30.06, "lat": -1.94, "end": None})
        assert key == "bundle:lat=-1.94&lon=30.06"

    def test_argument_order_does_not_matter(self):
        assert make_cache_key("x", {"a": 1, "b": 2}) == make_cache_key("x", {"b": 2, "a": 1})

    def test_distinct_params_distinct_keys(self):
        assert make_cache_key("x", {"a": 1}) != make_cache_key("x", {"a": 2})


# ═══════════════════════════════════════════════════════════════════════════
# Failure handling
# ═══════════════════════════════════════════════════════════════════════════

class TestBackendFailure:
    def test_errors_become_misses(self):
        cache = ClimateCache(FailingBackend())

        async def scenario():
            assert await cache.set(CacheStore.FLOODS, "k", 1) is None
            assert await cache.get(CacheStore.FLOODS, "k") is None
            assert await cache.delete(CacheStore.FLOODS, "k") is False
            assert await cache.clear_store(CacheStore.FLOODS) == 0
            assert await cache.clear_expired() == 0
            assert await cache.ping() is False
            return await cache.stats()

        stats = asyncio.run(scenario())
        assert stats["stores"]["floods"]["misses"] == 1

    def test_get_or_compute_still_computes(self):
        cache = ClimateCache(FailingBackend())

        async def factory():
            return "fresh"

        assert asyncio.run(cache.get_or_compute(CacheStore.FLOODS, "k", factory)) == "fresh"


# ═══════════════════════════════════════════════════════════════════════════
# Construction and lifecycle
# ═══════════════════════════════════════════════════════════════════════════

class TestBuildCache:
    def test_disabled(self):
        assert build_cache(Settings(CACHE_ENABLED=False)) is None

    def test_memory_backend(self):
        cache = build_cache(Settings(CACHE_BACKEND="memory", CACHE_TTL_FLOODS=42))
        assert isinstance(cache.backend, MemoryCacheBackend)
        assert cache.ttl_for(CacheStore.FLOODS) == 42

    def test_redis_backend(self):
        cache = build_cache(Settings(CACHE_BACKEND="redis", REDIS_URL="redis://cache:6379/1"))
        assert isinstance(cache.backend, RedisCacheBackend)
        assert cache.backend.url == "redis://cache:6379/1"


class TestLifecycle:
    def test_context_manager_opens_and_closes(self):
        cache = ClimateCache(MemoryCacheBackend())

        async def scenario():
            async with cache:
                assert cache.is_open
                assert await cache.ping() is True
            assert not cache.is_open

        asyncio.run(scenario())

    def test_sweeper_removes_expired_entries(self):
        cache = ClimateCache(MemoryCacheBackend(), cleanup_interval=0.05)

        async def scenario():
            async with cache:
                assert cache._cleanup_task is not None
                await cache.set(CacheStore.FLOODS, "k", 1, ttl=0.01)
                await asyncio.sleep(0.2)
                remaining = await cache.backend.entries(CacheStore.FLOODS.value)
            assert cache._cleanup_task is None
            return remaining

        started = time.monotonic()
        assert asyncio.run(scenario()) == []
        assert time.monotonic() - started < 5
