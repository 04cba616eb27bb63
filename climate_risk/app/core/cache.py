"""
Time-bounded cache — namespaced stores with per-store TTLs.

Provides:
    • ``ClimateCache`` — an explicitly constructed, opened and closed cache
      that services receive by injection (no module-level singleton)
    • Named stores with their own default TTL (historical weather 30 d,
      forecasts 6 h, events 24 h, ...)
    • Lazy expiry: an entry read after ``expires_at`` is deleted and
      reported as a miss
    • Optional periodic sweep of expired entries while the cache is open
    • Two backends: in-process memory (default) and Redis (``redis.asyncio``)

Usage:
    cache = ClimateCache(MemoryCacheBackend())
    async with cache:
        key = make_cache_key("weather", {"lat": -1.94, "lon": 30.06})
        await cache.set(CacheStore.HISTORICAL_WEATHER, key, payload)
        hit = await cache.get(CacheStore.HISTORICAL_WEATHER, key)

Concurrent writers to the same key are last-write-wins. Backend failures
are logged and treated as misses so a cache outage never breaks a request.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from climate_risk.app.core.config import Settings, settings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CacheStore(str, Enum):
    HISTORICAL_WEATHER = "historical_weather"
    FORECASTS = "forecasts"
    EXTREME_EVENTS = "extreme_events"
    LANDSLIDES = "landslides"
    FLOODS = "floods"
    CLIMATE_INDICES = "climate_indices"
    HISTORICAL_AGGREGATES = "historical_aggregates"


def default_ttls(cfg: Settings = settings) -> Dict[CacheStore, float]:
    """Default TTL (seconds) per store, from configuration."""
    return {
        CacheStore.HISTORICAL_WEATHER: cfg.CACHE_TTL_HISTORICAL,
        CacheStore.FORECASTS: cfg.CACHE_TTL_FORECAST,
        CacheStore.EXTREME_EVENTS: cfg.CACHE_TTL_EVENTS,
        CacheStore.LANDSLIDES: cfg.CACHE_TTL_LANDSLIDES,
        CacheStore.FLOODS: cfg.CACHE_TTL_FLOODS,
        CacheStore.CLIMATE_INDICES: cfg.CACHE_TTL_INDICES,
        CacheStore.HISTORICAL_AGGREGATES: cfg.CACHE_TTL_AGGREGATES,
    }


def make_cache_key(kind: str, params: Mapping[str, Any]) -> str:
    """
    Deterministic key from a kind and a parameter mapping.

    Parameters are sorted by name so argument order never changes the key;
    ``None`` values are skipped.

    >>> make_cache_key("weather", {"lon": 30.06, "lat": -1.94})
    'weather:lat=-1.94&lon=30.06'
    """
    parts = [f"{k}={params[k]}" for k in sorted(params) if params[k] is not None]
    return f"{kind}:{'&'.join(parts)}"


@dataclass
class CacheEntry:
    key: str
    data: Any
    timestamp: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CacheEntry":
        return cls(
            key=raw["key"],
            data=raw["data"],
            timestamp=float(raw["timestamp"]),
            expires_at=float(raw["expires_at"]),
        )


@dataclass
class StoreStats:
    store: str
    entries: int = 0
    expired: int = 0
    hits: int = 0
    misses: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ═══════════════════════════════════════════════════════════════════════════
# Backends
# ═══════════════════════════════════════════════════════════════════════════

class CacheBackend:
    """Storage interface. Backends know nothing about expiry policy."""

    name = "abstract"

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def get(self, store: str, key: str) -> Optional[CacheEntry]:
        raise NotImplementedError

    async def put(self, store: str, entry: CacheEntry) -> None:
        raise NotImplementedError

    async def delete(self, store: str, key: str) -> bool:
        raise NotImplementedError

    async def entries(self, store: str) -> List[CacheEntry]:
        raise NotImplementedError

    async def clear(self, store: str) -> int:
        raise NotImplementedError

    async def ping(self) -> bool:
        return True


class MemoryCacheBackend(CacheBackend):
    """Process-local dict of dicts. Data is stored by reference."""

    name = "memory"

    def __init__(self) -> None:
        self._stores: Dict[str, Dict[str, CacheEntry]] = {}

    async def get(self, store: str, key: str) -> Optional[CacheEntry]:
        return self._stores.get(store, {}).get(key)

    async def put(self, store: str, entry: CacheEntry) -> None:
        self._stores.setdefault(store, {})[entry.key] = entry

    async def delete(self, store: str, key: str) -> bool:
        return self._stores.get(store, {}).pop(key, None) is not None

    async def entries(self, store: str) -> List[CacheEntry]:
        return list(self._stores.get(store, {}).values())

    async def clear(self, store: str) -> int:
        return len(self._stores.pop(store, {}))


class RedisCacheBackend(CacheBackend):
    """
    Redis-backed store. Entries are JSON documents under
    ``{prefix}:{store}:{key}``, written with a matching Redis expiry so
    abandoned keys do not accumulate.
    """

    name = "redis"

    def __init__(self, url: str = settings.REDIS_URL, prefix: str = settings.CACHE_KEY_PREFIX):
        self.url = url
        self.prefix = prefix
        self._client: Optional[aioredis.Redis] = None

    def _full_key(self, store: str, key: str) -> str:
        return f"{self.prefix}:{store}:{key}"

    async def open(self) -> None:
        if self._client is None:
            self._client = aioredis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("Redis cache backend ready: %s", self.url.split("@")[-1])

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")

    @property
    def client(self) -> aioredis.Redis:
        if self._client is None:
            raise RuntimeError("RedisCacheBackend used before open()")
        return self._client

    async def get(self, store: str, key: str) -> Optional[CacheEntry]:
        raw = await self.client.get(self._full_key(store, key))
        if raw is None:
            return None
        return CacheEntry.from_dict(json.loads(raw))

    async def put(self, store: str, entry: CacheEntry) -> None:
        ttl_ms = max(1, int((entry.expires_at - entry.timestamp) * 1000))
        await self.client.set(
            self._full_key(store, entry.key),
            json.dumps(entry.to_dict(), default=str),
            px=ttl_ms,
        )

    async def delete(self, store: str, key: str) -> bool:
        return bool(await self.client.delete(self._full_key(store, key)))

    async def _keys(self, store: str) -> List[str]:
        return [k async for k in self.client.scan_iter(f"{self.prefix}:{store}:*")]

    async def entries(self, store: str) -> List[CacheEntry]:
        keys = await self._keys(store)
        if not keys:
            return []
        raws = await self.client.mget(keys)
        return [CacheEntry.from_dict(json.loads(r)) for r in raws if r is not None]

    async def clear(self, store: str) -> int:
        keys = await self._keys(store)
        if keys:
            await self.client.delete(*keys)
        return len(keys)

    async def ping(self) -> bool:
        return bool(await self.client.ping())


# ═══════════════════════════════════════════════════════════════════════════
# Cache facade
# ═══════════════════════════════════════════════════════════════════════════

_BACKEND_ERRORS = (RedisError, OSError, ValueError)


class ClimateCache:
    """
    TTL cache over a pluggable backend.

    Every read goes through the expiry check, so correctness never depends
    on the background sweeper; the sweeper only bounds memory.
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        *,
        ttls: Optional[Mapping[CacheStore, float]] = None,
        clock: Clock = time.time,
        cleanup_interval: float = 0,
    ):
        self.backend = backend or MemoryCacheBackend()
        self.ttls: Dict[CacheStore, float] = {**default_ttls(), **(ttls or {})}
        self.clock = clock
        self.cleanup_interval = cleanup_interval
        self._cleanup_task: Optional[asyncio.Task] = None
        self._stats: Dict[str, StoreStats] = {s.value: StoreStats(s.value) for s in CacheStore}
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> "ClimateCache":
        await self.backend.open()
        self._open = True
        if self.cleanup_interval > 0 and self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info("Cache opened (backend=%s)", self.backend.name)
        return self

    async def close(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        await self.backend.close()
        self._open = False
        logger.info("Cache closed")

    async def __aenter__(self) -> "ClimateCache":
        return await self.open()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            removed = await self.clear_expired()
            if removed:
                logger.debug("Cache sweep removed %d expired entries", removed)

    def ttl_for(self, store: CacheStore) -> float:
        return self.ttls[CacheStore(store)]

    # ── Entry operations ──

    async def get(self, store: CacheStore, key: str) -> Optional[Any]:
        """Return cached data, or ``None`` on miss, expiry or backend error."""
        store = CacheStore(store)
        stats = self._stats[store.value]
        try:
            entry = await self.backend.get(store.value, key)
            if entry is not None and entry.is_expired(self.clock()):
                await self.backend.delete(store.value, key)
                entry = None
        except _BACKEND_ERRORS as e:
            logger.warning("Cache GET error for %s/%s: %s", store.value, key, e,
                           extra={"store": store.value})
            entry = None

        if entry is None:
            stats.misses += 1
            return None
        stats.hits += 1
        return entry.data

    async def set(
        self,
        store: CacheStore,
        key: str,
        data: Any,
        ttl: Optional[float] = None,
    ) -> Optional[CacheEntry]:
        """Store ``data`` under ``key``; ``ttl`` defaults to the store's TTL."""
        store = CacheStore(store)
        now = self.clock()
        entry = CacheEntry(
            key=key,
            data=data,
            timestamp=now,
            expires_at=now + (self.ttl_for(store) if ttl is None else ttl),
        )
        try:
            await self.backend.put(store.value, entry)
        except _BACKEND_ERRORS as e:
            logger.warning("Cache SET error for %s/%s: %s", store.value, key, e,
                           extra={"store": store.value})
            return None
        return entry

    async def delete(self, store: CacheStore, key: str) -> bool:
        store = CacheStore(store)
        try:
            return await self.backend.delete(store.value, key)
        except _BACKEND_ERRORS as e:
            logger.warning("Cache DELETE error for %s/%s: %s", store.value, key, e)
            return False

    async def get_or_compute(
        self,
        store: CacheStore,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """Return the cached value or await ``factory()`` and cache its result."""
        cached = await self.get(store, key)
        if cached is not None:
            logger.debug("Cache HIT: %s/%s", CacheStore(store).value, key)
            return cached
        value = await factory()
        if value is not None:
            await self.set(store, key, value, ttl)
        return value

    # ── Store-wide operations ──

    async def clear_store(self, store: CacheStore) -> int:
        store = CacheStore(store)
        try:
            return await self.backend.clear(store.value)
        except _BACKEND_ERRORS as e:
            logger.warning("Cache CLEAR error for %s: %s", store.value, e)
            return 0

    async def clear_expired(self) -> int:
        """Delete every expired entry in every store."""
        now = self.clock()
        removed = 0
        for store in CacheStore:
            try:
                for entry in await self.backend.entries(store.value):
                    if entry.is_expired(now) and await self.backend.delete(store.value, entry.key):
                        removed += 1
            except _BACKEND_ERRORS as e:
                logger.warning("Cache sweep error for %s: %s", store.value, e)
        return removed

    async def stats(self) -> Dict[str, Any]:
        now = self.clock()
        stores: Dict[str, Any] = {}
        for store in CacheStore:
            s = self._stats[store.value]
            try:
                entries = await self.backend.entries(store.value)
            except _BACKEND_ERRORS as e:
                logger.warning("Cache stats error for %s: %s", store.value, e)
                entries = []
            s.entries = len(entries)
            s.expired = sum(1 for e in entries if e.is_expired(now))
            stores[store.value] = s.to_dict()
        return {"backend": self.backend.name, "open": self._open, "stores": stores}

    async def ping(self) -> bool:
        try:
            return await self.backend.ping()
        except _BACKEND_ERRORS as e:
            logger.warning("Cache ping failed: %s", e)
            return False


def build_cache(cfg: Settings = settings) -> Optional[ClimateCache]:
    """Cache configured from settings, or ``None`` when caching is disabled."""
    if not cfg.CACHE_ENABLED:
        return None
    if cfg.CACHE_BACKEND == "redis":
        backend: CacheBackend = RedisCacheBackend(cfg.REDIS_URL, cfg.CACHE_KEY_PREFIX)
    else:
        backend = MemoryCacheBackend()
    return ClimateCache(
        backend,
        ttls=default_ttls(cfg),
        cleanup_interval=cfg.CACHE_CLEANUP_INTERVAL,
    )
