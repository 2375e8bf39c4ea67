#!/usr/bin/env python3
"""
Dual-Tier Cache Service

Architecture:
    CacheService (Public API)
        ├── CacheBackend (Redis, primary tier)
        ├── MemoryStore (in-process fallback tier)
        ├── CacheObserver (hit/miss accounting and logging)
        └── DetachedTaskRunner (background refresh, post-response writes)

Degradation rules:
    - Reads consult exactly one tier. Redis is used while it is connected; a
      Redis miss is a miss. Only a Redis *failure* falls through to the
      fallback store.
    - Writes that fail against Redis land in the fallback store so the value
      is still observable. set/delete/clear always report success.
    - del_pattern and exists have no fallback equivalent.
    - Only CacheBackendError is recovered here. CacheSerializationError is a
      caller bug and propagates.

Usage:
    async with CacheService(settings) as cache:
        await cache.set(cache.generate_key("products", 42), product, ttl=600)
        product = await cache.get(cache.generate_key("products", 42))
"""

import inspect
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, NamedTuple

import orjson
from pydantic import BaseModel

from storefront_cache.core.config.constants import (
    FALLBACK_INCR_TTL,
    KEY_DELIMITER,
    REFRESH_THRESHOLD,
    CacheTier,
)
from storefront_cache.core.config.settings import Settings, get_settings
from storefront_cache.core.exceptions import (
    CacheBackendError,
    CacheConnectionError,
    CacheSerializationError,
)
from storefront_cache.core.interfaces.cache import CacheBackend
from storefront_cache.core.logging.logger import get_logger, log_stage
from storefront_cache.core.resilience.detached_tasks import DetachedTaskRunner
from storefront_cache.infrastructure.cache.memory_store import MemoryStore
from storefront_cache.infrastructure.cache.redis_client import RedisClient

logger = get_logger(__name__)


FetchFn = Callable[[], Any]


class CacheItem(NamedTuple):
    """One entry for CacheService.mset."""

    key: str
    value: Any
    ttl: int | None = None


def _json_default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


# =============================================================================
# OBSERVABILITY
# =============================================================================


class CacheObserver:
    """
    Tracks cache hits and misses per tier and logs operations.

    Logging Strategy:
    - Hit/miss: debug (STAGE-2.1 fallback, STAGE-2.2 backing store)
    - Degraded operation: warning (STAGE-2.9)
    """

    def __init__(self, logger_instance=None):
        self._logger = logger_instance or logger
        self._hits = {CacheTier.BACKING: 0, CacheTier.FALLBACK: 0}
        self._misses = {CacheTier.BACKING: 0, CacheTier.FALLBACK: 0}
        self._degraded = 0

    def record_get(self, tier: CacheTier, key: str, hit: bool) -> None:
        stage = "2.2" if tier == CacheTier.BACKING else "2.1"
        if hit:
            self._hits[tier] += 1
            log_stage(self._logger, stage, "Cache hit", level="debug", tier=tier.value, cache_key=key)
        else:
            self._misses[tier] += 1
            log_stage(self._logger, stage, "Cache miss", level="debug", tier=tier.value, cache_key=key)

    def record_degraded(self, operation: str, error: Exception, **context) -> None:
        self._degraded += 1
        log_stage(
            self._logger,
            "2.9",
            "Backing store unavailable, using fallback",
            level="warning",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
            **context,
        )

    def get_stats(self) -> dict[str, Any]:
        hits = sum(self._hits.values())
        misses = sum(self._misses.values())
        total = hits + misses
        return {
            "hits": hits,
            "misses": misses,
            "backing_hits": self._hits[CacheTier.BACKING],
            "fallback_hits": self._hits[CacheTier.FALLBACK],
            "degraded_operations": self._degraded,
            "total_requests": total,
            "hit_rate": round(hits / total, 3) if total > 0 else 0.0,
        }


# =============================================================================
# PUBLIC API
# =============================================================================


class CacheService:
    """
    Cache facade that prefers Redis and degrades to an in-process store.

    The service owns both tiers: init() connects Redis and starts the fallback
    sweeper, close() tears both down. It is built once per application and
    injected into whatever needs it (HTTP wrappers, rate limiter, services).

    Args:
        settings: Application settings (defaults to the global instance)
        backend: Backing store client (defaults to a RedisClient)
        fallback: Fallback store (defaults to a MemoryStore sized from settings)
        tasks: Runner for detached work (defaults to a new runner)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        backend: CacheBackend | None = None,
        fallback: MemoryStore | None = None,
        tasks: DetachedTaskRunner | None = None,
    ):
        self._settings = settings or get_settings()
        cache_settings = self._settings.cache

        self._enabled = cache_settings.ENABLE_CACHING
        self._default_ttl = cache_settings.CACHE_DEFAULT_TTL
        self._sweep_interval = cache_settings.CACHE_FALLBACK_SWEEP_INTERVAL
        self._key_prefix = self._settings.redis.REDIS_KEY_PREFIX

        self._backend = backend if backend is not None else RedisClient(self._settings)
        self._fallback = fallback if fallback is not None else MemoryStore(
            max_entries=cache_settings.CACHE_FALLBACK_MAX_ENTRIES
        )
        self._tasks = tasks or DetachedTaskRunner()
        self._observer = CacheObserver()
        self._refreshing: set[str] = set()

        logger.info(
            "Cache service initialized",
            stage="2.0",
            caching_enabled=self._enabled,
            default_ttl=self._default_ttl,
            fallback_max_entries=self._fallback.max_entries,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def init(self) -> None:
        """
        Start the fallback sweeper and connect the backing store.

        STAGE-2.0.1: Cache startup

        Never raises: when Redis is unreachable the service runs in
        fallback-only mode while the client reconnects in the background.
        """
        self._fallback.start_sweeper(self._sweep_interval)

        if not self._enabled:
            logger.info("Caching disabled, backing store not contacted", stage="2.0.1")
            return

        try:
            await self._backend.connect()
        except CacheConnectionError as e:
            logger.warning(
                "Backing store unreachable at startup, continuing with fallback store",
                stage="2.0.1",
                error=str(e),
            )

    async def close(self) -> None:
        """
        Stop background work, disconnect Redis and clear the fallback store.

        STAGE-2.0.2: Cache shutdown
        """
        await self._fallback.stop_sweeper()
        await self._tasks.shutdown()
        await self._backend.disconnect()
        self._fallback.clear()
        self._refreshing.clear()
        logger.info("Cache service closed", stage="2.0.2")

    async def __aenter__(self) -> "CacheService":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def connected(self) -> bool:
        """True when operations are served by the backing store."""
        return self._enabled and self._backend.connected

    @property
    def default_ttl(self) -> int:
        return self._default_ttl

    @property
    def tasks(self) -> DetachedTaskRunner:
        return self._tasks

    @property
    def fallback(self) -> MemoryStore:
        return self._fallback

    def spawn(self, coro: Awaitable[Any], label: str):
        """Run work detached from the caller on the service's task runner."""
        return self._tasks.spawn(coro, label)

    async def drain(self) -> None:
        """Wait for all detached work to finish."""
        await self._tasks.drain()

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def _serialize(self, key: str, value: Any) -> str:
        try:
            return orjson.dumps(
                value, default=_json_default, option=orjson.OPT_NON_STR_KEYS
            ).decode("utf-8")
        except TypeError as e:
            raise CacheSerializationError(
                message=f"Value for cache key is not JSON serializable: {e}",
                details={"key": key, "value_type": type(value).__name__},
            ) from e

    def _deserialize(self, key: str, raw: str | None) -> Any:
        if raw is None:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.warning(
                "Discarding unreadable cache entry", stage="2.8", cache_key=key, error=str(e)
            )
            return None

    # -------------------------------------------------------------------------
    # Core Cache Operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any:
        """
        Read a value.

        STAGE-2.1/2.2: Cache lookup

        Returns:
            The deserialized value, or None when absent, expired or unreadable
        """
        if self.connected:
            try:
                raw = await self._backend.get(key)
            except CacheBackendError as e:
                self._observer.record_degraded("get", e, cache_key=key)
            else:
                self._observer.record_get(CacheTier.BACKING, key, raw is not None)
                return self._deserialize(key, raw)

        raw = self._fallback.get(key)
        self._observer.record_get(CacheTier.FALLBACK, key, raw is not None)
        return self._deserialize(key, raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Store a value with a TTL.

        STAGE-2.3: Cache population

        Args:
            key: Cache key
            value: JSON-serializable value (pydantic models allowed)
            ttl: Time-to-live in seconds (default: CACHE_DEFAULT_TTL)

        Returns:
            Always True; the value is cached in one tier or the other

        Raises:
            CacheSerializationError: If the value cannot be encoded
        """
        ttl = self._default_ttl if ttl is None else ttl
        payload = self._serialize(key, value)

        if self.connected:
            try:
                await self._backend.setex(key, ttl, payload)
                return True
            except CacheBackendError as e:
                self._observer.record_degraded("set", e, cache_key=key)

        self._fallback.set(key, payload, ttl)
        return True

    async def delete(self, key: str) -> bool:
        """
        Remove a key from both tiers. Idempotent, always True.

        STAGE-2.4: Cache invalidation
        """
        if self.connected:
            try:
                await self._backend.delete(key)
            except CacheBackendError as e:
                self._observer.record_degraded("delete", e, cache_key=key)

        self._fallback.delete(key)
        return True

    async def del_pattern(self, pattern: str) -> bool:
        """
        Delete every backing-store key matching a glob pattern.

        STAGE-2.4.1: Pattern invalidation

        Returns:
            False if the backing store is unreachable or fails
        """
        if not self.connected:
            return False

        try:
            keys = await self._backend.keys(pattern)
            if keys:
                await self._backend.delete(*keys)
        except CacheBackendError as e:
            self._observer.record_degraded("del_pattern", e, pattern=pattern)
            return False

        log_stage(logger, "2.4.1", "Cache pattern invalidated", pattern=pattern, deleted=len(keys))
        return True

    async def exists(self, key: str) -> bool:
        """Backing store only: False while it is unreachable."""
        if not self.connected:
            return False
        try:
            return await self._backend.exists(key) == 1
        except CacheBackendError as e:
            self._observer.record_degraded("exists", e, cache_key=key)
            return False

    # -------------------------------------------------------------------------
    # Batch Operations
    # -------------------------------------------------------------------------

    async def mget(self, keys: list[str]) -> list[Any]:
        """
        Read many keys in one round-trip.

        Falls back to per-key reads of the fallback store if the batch fails.
        """
        if not keys:
            return []

        if self.connected:
            try:
                raws = await self._backend.mget(keys)
            except CacheBackendError as e:
                self._observer.record_degraded("mget", e, count=len(keys))
            else:
                for key, raw in zip(keys, raws):
                    self._observer.record_get(CacheTier.BACKING, key, raw is not None)
                return [self._deserialize(key, raw) for key, raw in zip(keys, raws)]

        results = []
        for key in keys:
            raw = self._fallback.get(key)
            self._observer.record_get(CacheTier.FALLBACK, key, raw is not None)
            results.append(self._deserialize(key, raw))
        return results

    async def mset(
        self, entries: Iterable[CacheItem | Mapping[str, Any] | tuple]
    ) -> bool:
        """
        Write many entries, pipelined against the backing store.

        Args:
            entries: CacheItem objects, (key, value[, ttl]) tuples or
                {"key", "value", "ttl"} mappings

        Raises:
            CacheSerializationError: If any value cannot be encoded
        """
        items = [self._as_item(entry) for entry in entries]
        if not items:
            return True

        payloads = [
            (item.key, self._serialize(item.key, item.value), item.ttl or self._default_ttl)
            for item in items
        ]

        if self.connected:
            try:
                await self._backend.mset_ex(payloads)
                return True
            except CacheBackendError as e:
                self._observer.record_degraded("mset", e, count=len(payloads))

        results = [await self.set(item.key, item.value, item.ttl) for item in items]
        return all(results)

    @staticmethod
    def _as_item(entry: CacheItem | Mapping[str, Any] | tuple) -> CacheItem:
        if isinstance(entry, CacheItem):
            return entry
        if isinstance(entry, Mapping):
            return CacheItem(entry["key"], entry["value"], entry.get("ttl"))
        return CacheItem(*entry)

    # -------------------------------------------------------------------------
    # Counters and Expiry
    # -------------------------------------------------------------------------

    async def incr(self, key: str, amount: int = 1) -> int:
        """
        Increment a counter.

        Atomic against Redis. In fallback mode this is a read-modify-write of
        the in-process entry, which restarts with a five minute TTL.
        """
        if self.connected:
            try:
                return await self._backend.incrby(key, amount)
            except CacheBackendError as e:
                self._observer.record_degraded("incr", e, cache_key=key)

        current = self._deserialize(key, self._fallback.get(key))
        if not isinstance(current, int) or isinstance(current, bool):
            current = 0
        new_value = current + amount
        self._fallback.set(key, str(new_value), FALLBACK_INCR_TTL)
        return new_value

    async def expire(self, key: str, ttl: int) -> bool:
        """Reset a key's TTL. False if the key does not exist."""
        if self.connected:
            try:
                return await self._backend.expire(key, ttl)
            except CacheBackendError as e:
                self._observer.record_degraded("expire", e, cache_key=key)

        return self._fallback.expire(key, ttl)

    async def ttl(self, key: str) -> int:
        """Seconds remaining for a key, -1 without expiry, -2 if absent."""
        if self.connected:
            try:
                return await self._backend.ttl(key)
            except CacheBackendError as e:
                self._observer.record_degraded("ttl", e, cache_key=key)

        return self._fallback.ttl(key)

    # -------------------------------------------------------------------------
    # Cache-Aside Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    async def _call(fetch_fn: FetchFn) -> Any:
        result = fetch_fn()
        if inspect.isawaitable(result):
            result = await result
        return result

    async def cached(self, key: str, fetch_fn: FetchFn, ttl: int | None = None) -> Any:
        """
        Return the cached value or compute, store and return it.

        STAGE-2.5: Cache-aside pattern

        Concurrent callers that miss on the same key each call fetch_fn; the
        last write wins.
        """
        value = await self.get(key)
        if value is not None:
            return value

        value = await self._call(fetch_fn)
        await self.set(key, value, ttl)
        return value

    async def cache_with_refresh(
        self,
        key: str,
        fetch_fn: FetchFn,
        ttl: int | None = None,
        refresh_threshold: float = REFRESH_THRESHOLD,
    ) -> Any:
        """
        Cache-aside with background refresh ahead of expiry.

        STAGE-2.6: Refresh-ahead

        On a hit whose remaining TTL is below ttl * refresh_threshold, the
        cached value is returned immediately and fetch_fn runs detached to
        repopulate the key. At most one refresh per key is in flight.
        """
        ttl = self._default_ttl if ttl is None else ttl

        value = await self.get(key)
        if value is None:
            value = await self._call(fetch_fn)
            await self.set(key, value, ttl)
            return value

        remaining = await self.ttl(key)
        if 0 < remaining < ttl * refresh_threshold and key not in self._refreshing:
            self._refreshing.add(key)
            task = self._tasks.spawn(self._refresh(key, fetch_fn, ttl), f"cache-refresh:{key}")
            if task is None:
                self._refreshing.discard(key)

        return value

    async def _refresh(self, key: str, fetch_fn: FetchFn, ttl: int) -> None:
        try:
            value = await self._call(fetch_fn)
            await self.set(key, value, ttl)
            log_stage(logger, "2.6", "Cache entry refreshed in background", level="debug", cache_key=key)
        finally:
            self._refreshing.discard(key)

    # -------------------------------------------------------------------------
    # Maintenance and Monitoring
    # -------------------------------------------------------------------------

    async def clear(self) -> bool:
        """Flush the backing store database and the fallback store."""
        if self.connected:
            try:
                await self._backend.flushdb()
            except CacheBackendError as e:
                self._observer.record_degraded("clear", e)

        self._fallback.clear()
        return True

    async def get_stats(self) -> dict[str, Any]:
        """
        Backing store reachability and size.

        Returns:
            {connected, key_count, memory_usage, fallback_entries}; the
            Redis-derived fields are present only while connected
        """
        stats: dict[str, Any] = {"connected": False, "fallback_entries": len(self._fallback)}
        if not self.connected:
            return stats

        try:
            info = await self._backend.info("memory")
            key_count = await self._backend.dbsize()
        except CacheBackendError as e:
            self._observer.record_degraded("stats", e)
            return stats

        stats.update(
            connected=True,
            key_count=key_count,
            memory_usage=str(info.get("used_memory_human", "Unknown")),
        )
        return stats

    def hit_stats(self) -> dict[str, Any]:
        """Hit/miss counters since startup."""
        return {
            **self._observer.get_stats(),
            "fallback_entries": len(self._fallback),
            "fallback_evictions": self._fallback.evictions,
        }

    async def health_check(self) -> dict[str, Any]:
        health = {
            "status": "healthy" if self.connected or not self._enabled else "degraded",
            "caching_enabled": self._enabled,
            "fallback": {
                "entries": len(self._fallback),
                "max_entries": self._fallback.max_entries,
            },
            "backing": await self._backend.health_check() if self._enabled else None,
        }
        return health

    # -------------------------------------------------------------------------
    # Utilities
    # -------------------------------------------------------------------------

    def generate_key(self, prefix: str, *parts: Any) -> str:
        """
        Build a namespaced cache key.

        STAGE-2.1.1: Cache key generation

        Example:
            generate_key("products", "list", 2) -> "storefront:products:list:2"
        """
        joined = KEY_DELIMITER.join(str(part) for part in parts)
        return f"{self._key_prefix}{KEY_DELIMITER}{prefix}{KEY_DELIMITER}{joined}"
