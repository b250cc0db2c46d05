"""
Redis-based response cache for liquidity queries.

Results are cached for a few seconds, keyed by request parameters, with a
TTL that depends on the query type. Falls back to an in-memory store when
Redis is unreachable or disabled.
"""

import fnmatch
import hashlib
import json
import logging
from collections import Counter
from datetime import datetime, timedelta, UTC
from typing import Any, Dict, Iterable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from config import settings

logger = logging.getLogger(__name__)

KEY_NAMESPACE = "liq"


class CacheManager:
    """
    Async Redis cache manager.

    Values must be JSON serializable. Until ``connect`` succeeds every
    operation uses the in-memory store.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        default_ttl: Optional[int] = None,
        use_redis: Optional[bool] = None,
    ):
        """
        Args:
            redis_url: Redis connection URL
            default_ttl: Default TTL in seconds
            use_redis: Whether to try Redis at all (False = in-memory only)
        """
        self.redis_url = redis_url or settings.redis_url
        self.default_ttl = default_ttl or settings.cache_default_ttl
        self.use_redis = settings.cache_enabled if use_redis is None else use_redis
        self._redis: Optional[redis.Redis] = None
        self._memory_cache: Dict[str, Any] = {}
        self._memory_cache_expiry: Dict[str, datetime] = {}

    async def connect(self):
        """Connect to Redis, falling back to memory on failure."""
        if self.use_redis and not self._redis:
            try:
                self._redis = redis.from_url(self.redis_url, encoding="utf-8", decode_responses=True)
                await self._redis.ping()
                logger.info(f"Connected to Redis at {self.redis_url}")
            except (RedisError, OSError) as e:
                logger.warning(f"Redis connection failed: {e}. Using in-memory cache.")
                self._redis = None
                self.use_redis = False

    async def disconnect(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    @staticmethod
    def make_key(prefix: str, **params: Any) -> str:
        """
        Deterministic cache key from a query type and its parameters.

        Args:
            prefix: Query type (e.g., 'route', 'arbitrage')
            **params: Request parameters

        Returns:
            Key like 'liq:route:<hash>'
        """
        key_data = f"{prefix}:{sorted(params.items())}"
        key_hash = hashlib.md5(key_data.encode()).hexdigest()[:12]
        return f"{KEY_NAMESPACE}:{prefix}:{key_hash}"

    async def get(self, key: str) -> Optional[Any]:
        if self._redis:
            try:
                value = await self._redis.get(key)
                if value:
                    return json.loads(value)
                return None
            except RedisError as e:
                logger.warning(f"Redis get error: {e}")

        expiry = self._memory_cache_expiry.get(key)
        if expiry is None:
            return None
        if datetime.now(UTC) < expiry:
            return self._memory_cache[key]

        del self._memory_cache[key]
        del self._memory_cache_expiry[key]
        return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        """
        Args:
            key: Cache key
            value: JSON serializable value
            ttl: Time-to-live in seconds (None = default_ttl)
        """
        ttl = ttl or self.default_ttl

        if self._redis:
            try:
                await self._redis.setex(key, ttl, json.dumps(value, default=str))
                return
            except RedisError as e:
                logger.warning(f"Redis set error: {e}")

        now = datetime.now(UTC)
        self._purge_expired(now)
        self._memory_cache[key] = value
        self._memory_cache_expiry[key] = now + timedelta(seconds=ttl)

    def _purge_expired(self, now: datetime):
        # Expired entries are dropped here as well as on read
        for key in [k for k, expiry in self._memory_cache_expiry.items() if expiry <= now]:
            self._memory_cache.pop(key, None)
            del self._memory_cache_expiry[key]

    async def delete(self, key: str):
        if self._redis:
            try:
                await self._redis.delete(key)
            except RedisError as e:
                logger.warning(f"Redis delete error: {e}")

        self._memory_cache.pop(key, None)
        self._memory_cache_expiry.pop(key, None)

    async def clear_pattern(self, pattern: str):
        """
        Clear all keys matching a glob pattern.

        Args:
            pattern: Key pattern (e.g., 'liq:route:*')
        """
        if self._redis:
            try:
                keys = [key async for key in self._redis.scan_iter(match=pattern)]
                if keys:
                    await self._redis.delete(*keys)
            except RedisError as e:
                logger.warning(f"Redis clear_pattern error: {e}")

        for key in [k for k in self._memory_cache if fnmatch.fnmatch(k, pattern)]:
            self._memory_cache.pop(key, None)
            self._memory_cache_expiry.pop(key, None)

    async def get_stats(self) -> dict:
        """Backend in use and live key counts per query type."""
        if self._redis:
            try:
                keys = [key async for key in self._redis.scan_iter(match=f"{KEY_NAMESPACE}:*")]
                return {"backend": "redis", "keys": _count_by_query(keys)}
            except RedisError as e:
                logger.warning(f"Redis stats error: {e}")

        return {"backend": "memory", "keys": _count_by_query(self._memory_cache)}


def _count_by_query(keys: Iterable[str]) -> Dict[str, int]:
    # Keys look like liq:<query>:<hash>
    return dict(Counter(key.split(":")[1] for key in keys if key.count(":") >= 2))


cache_manager = CacheManager()
