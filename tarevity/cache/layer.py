import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional
from weakref import WeakValueDictionary

from cachetools import TTLCache
from redis.asyncio import Redis, RedisError

from tarevity.core.config import get_settings

logger = logging.getLogger(__name__)


class CacheLayer:
    """
    Two-tier cache for per-user read models.

    L1: process-local TTLCache, short TTL
    L2: Redis, shared between workers

    Writers delete keys rather than update them, so a stale entry lives at
    most one TTL. When Redis cannot be reached at startup the layer keeps
    running on L1 alone.
    """

    def __init__(self):
        self._settings = None
        self._redis: Redis | None = None
        self.l1: TTLCache | None = None
        self._initialized = False

        self.stats = {"l1_hits": 0, "l2_hits": 0, "misses": 0, "errors": 0}

    async def init_cache(self):
        """Create L1 and connect to Redis; a Redis failure leaves L1 only."""
        if self._initialized:
            return

        if self._settings is None:
            self._settings = get_settings()
        settings = self._settings

        if self.l1 is None:
            self.l1 = TTLCache(maxsize=settings.l1_maxsize, ttl=settings.l1_ttl_seconds)

        if self._redis is None:
            redis = Redis.from_url(
                settings.redis_dsn,
                encoding="utf-8",
                decode_responses=True,
                max_connections=settings.redis_pool_size,
                socket_connect_timeout=5,
                health_check_interval=30,
            )
            try:
                await redis.ping()
            except RedisError as e:
                logger.error(f"Redis unavailable, caching in process only: {e}")
                await redis.aclose()
            else:
                self._redis = redis
                logger.info("Redis connection established")

        self._initialized = True

    def _key(self, tier: str, key: str) -> str:
        return f"{self._settings.cache_namespace}{tier}:{key}"

    async def _l2_get(self, key: str) -> Any:
        if not self._redis:
            return None
        try:
            raw = await self._redis.get(self._key("l2", key))
        except RedisError as e:
            logger.error(f"Redis GET error for {key}: {e}")
            self.stats["errors"] += 1
            return None
        return None if raw is None else json.loads(raw)

    async def get(
        self,
        key: str,
        loader: Optional[Callable[[], Awaitable[Any]]] = None,
        l2_ttl: Optional[int] = None,
    ):
        """
        L1, then L2, then `loader`.

        Concurrent misses on one key share a lock, so the loader runs once
        and the others read what it stored. A None result is not cached.
        """
        await self.init_cache()
        l1_key = self._key("l1", key)

        if l1_key in self.l1:
            self.stats["l1_hits"] += 1
            return self.l1[l1_key]

        value = await self._l2_get(key)
        if value is not None:
            self.stats["l2_hits"] += 1
            self.l1[l1_key] = value
            return value

        if loader is None:
            self.stats["misses"] += 1
            return None

        async with get_lock_for_key(key):
            # another caller may have filled it while we waited
            if l1_key in self.l1:
                return self.l1[l1_key]

            self.stats["misses"] += 1
            logger.debug(f"Loading from source: {key}")
            value = await loader()
            if value is not None:
                await self._store(key, value, l2_ttl)
            return value

    async def _store(self, key: str, value: Any, l2_ttl: int | None = None):
        self.l1[self._key("l1", key)] = value
        if not self._redis:
            return
        try:
            await self._redis.set(
                self._key("l2", key),
                json.dumps(value, default=str),
                ex=l2_ttl or self._settings.l2_ttl_seconds,
            )
        except RedisError as e:
            logger.error(f"Redis SET error for {key}: {e}")
            self.stats["errors"] += 1

    async def set(self, key: str, value: Any, l2_ttl: Optional[int] = None):
        await self.init_cache()
        await self._store(key, value, l2_ttl)

    async def delete(self, key: str):
        """Drop a key from both tiers. A failed Redis delete is logged."""
        await self.init_cache()
        self.l1.pop(self._key("l1", key), None)
        if self._redis:
            try:
                await self._redis.delete(self._key("l2", key))
            except RedisError as e:
                logger.error(f"Redis DELETE error for {key}: {e}")
                self.stats["errors"] += 1

    async def close(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis connection closed")

    def get_stats(self) -> dict:
        lookups = self.stats["l1_hits"] + self.stats["l2_hits"] + self.stats["misses"]
        hits = self.stats["l1_hits"] + self.stats["l2_hits"]
        return {
            **self.stats,
            "l1_size": len(self.l1) if self.l1 is not None else 0,
            "redis": self._redis is not None,
            "hit_rate": hits / lookups if lookups else 0,
        }


# Per-key asyncio locks, for loader stampedes and per-user reconcile passes.
# A lock stays registered while anyone holds or waits on it, and is dropped
# once the last reference goes away.
_locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()


def get_lock_for_key(key: str) -> asyncio.Lock:
    lock = _locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _locks[key] = lock
    return lock


# Cache layer instance (singleton per worker)
cache_layer = CacheLayer()
