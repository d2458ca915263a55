"""
Redis caching layer for the Listings Service.
"""

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, TYPE_CHECKING

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_TTL = 3600

TRANSPORT_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class CacheStatus(str, Enum):
    """Outcome classification for a cache operation."""
    HIT = "hit"
    MISS = "miss"
    STORED = "stored"
    DELETED = "deleted"
    TRANSPORT_ERROR = "transport_error"
    SERIALIZATION_ERROR = "serialization_error"


@dataclass(frozen=True)
class CacheResult:
    """Typed result of a cache operation.

    ``count`` is the number of keys removed by delete operations.
    """
    status: CacheStatus
    key: str
    value: Any = None
    count: int = 0
    error: Optional[str] = None

    @property
    def hit(self) -> bool:
        return self.status is CacheStatus.HIT

    @property
    def failed(self) -> bool:
        return self.status in (CacheStatus.TRANSPORT_ERROR, CacheStatus.SERIALIZATION_ERROR)


class RedisCache:
    """Redis-backed JSON cache with default expiry.

    No operation raises: transport and serialization failures are logged,
    classified in the returned ``CacheResult`` and otherwise behave like a
    miss (reads) or a no-op (writes and deletes).
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        client: Optional[redis.Redis] = None,
        default_ttl: int = DEFAULT_TTL,
        metrics: Optional["MetricsCollector"] = None,
        scan_batch_size: int = 500,
    ):
        if redis_url is None and client is None:
            raise ValueError("RedisCache requires a redis_url or a client")

        self.redis_url = redis_url
        self.default_ttl = default_ttl
        self.scan_batch_size = scan_batch_size
        self.metrics = metrics
        self.logger = get_logger("listings.cache.redis")
        self.redis: Optional[redis.Redis] = client
        self._owns_client = client is None

    async def start(self):
        """Start the Redis cache.

        An unreachable Redis is logged and tolerated; every operation then
        degrades to a miss or no-op until the server comes back.
        """
        if self.redis is None:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )

        try:
            await self.redis.ping()
            self.logger.info("Redis cache started")
        except TRANSPORT_ERRORS as e:
            self.logger.warning("Redis unreachable at startup; serving from store only", error=str(e))

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis is not None and self._owns_client:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache stopped")

    async def lookup(self, key: str) -> CacheResult:
        """Look up ``key`` and classify the outcome."""
        if self.redis is None:
            return self._record("get", CacheResult(CacheStatus.TRANSPORT_ERROR, key, error="cache not started"))

        try:
            payload = await self.redis.get(key)
        except TRANSPORT_ERRORS as e:
            self.logger.error("Cache get error", key=key, error=str(e))
            return self._record("get", CacheResult(CacheStatus.TRANSPORT_ERROR, key, error=str(e)))

        if payload is None:
            return self._record("get", CacheResult(CacheStatus.MISS, key))

        try:
            value = json.loads(payload)
        except (TypeError, ValueError) as e:
            self.logger.warning("Cache payload could not be decoded", key=key, error=str(e))
            return self._record("get", CacheResult(CacheStatus.SERIALIZATION_ERROR, key, error=str(e)))

        return self._record("get", CacheResult(CacheStatus.HIT, key, value=value))

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on miss or any failure."""
        result = await self.lookup(key)
        return result.value if result.hit else None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> CacheResult:
        """Serialize ``value`` and store it under ``key`` with an expiry."""
        ttl_seconds = ttl if ttl is not None and ttl > 0 else self.default_ttl

        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            self.logger.error("Cache value is not JSON serializable", key=key, error=str(e))
            return self._record("set", CacheResult(CacheStatus.SERIALIZATION_ERROR, key, error=str(e)))

        if self.redis is None:
            return self._record("set", CacheResult(CacheStatus.TRANSPORT_ERROR, key, error="cache not started"))

        try:
            await self.redis.set(key, payload, ex=ttl_seconds)
        except TRANSPORT_ERRORS as e:
            self.logger.error("Cache set error", key=key, error=str(e))
            return self._record("set", CacheResult(CacheStatus.TRANSPORT_ERROR, key, error=str(e)))

        self.logger.debug("Cached value", key=key, ttl=ttl_seconds)
        return self._record("set", CacheResult(CacheStatus.STORED, key))

    async def delete(self, key: str) -> CacheResult:
        """Remove a single key; absent keys are not an error."""
        if self.redis is None:
            return self._record("delete", CacheResult(CacheStatus.TRANSPORT_ERROR, key, error="cache not started"))

        try:
            removed = await self.redis.delete(key)
        except TRANSPORT_ERRORS as e:
            self.logger.error("Cache delete error", key=key, error=str(e))
            return self._record("delete", CacheResult(CacheStatus.TRANSPORT_ERROR, key, error=str(e)))

        return self._record("delete", CacheResult(CacheStatus.DELETED, key, count=int(removed or 0)))

    async def delete_pattern(self, pattern: str) -> CacheResult:
        """Delete every key matching a glob ``pattern``.

        Scan then bulk delete: keys written between the two steps, or
        concurrently by another process, may survive.
        """
        if self.redis is None:
            return self._record("delete_pattern", CacheResult(CacheStatus.TRANSPORT_ERROR, pattern, error="cache not started"))

        try:
            keys = [key async for key in self.redis.scan_iter(match=pattern, count=self.scan_batch_size)]
            removed = await self.redis.delete(*keys) if keys else 0
        except TRANSPORT_ERRORS as e:
            self.logger.error("Cache delete pattern error", pattern=pattern, error=str(e))
            return self._record("delete_pattern", CacheResult(CacheStatus.TRANSPORT_ERROR, pattern, error=str(e)))

        if removed:
            self.logger.info("Invalidated cache pattern", pattern=pattern, count=removed)
        return self._record("delete_pattern", CacheResult(CacheStatus.DELETED, pattern, count=int(removed)))

    async def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        if self.redis is None:
            return {}

        try:
            info = await self.redis.info()
            key_count = await self.redis.dbsize()
        except TRANSPORT_ERRORS as e:
            self.logger.error("Error getting cache stats", error=str(e))
            return {}

        return {
            "redis_version": info.get("redis_version"),
            "used_memory": info.get("used_memory_human"),
            "connected_clients": info.get("connected_clients"),
            "keyspace_hits": info.get("keyspace_hits"),
            "keyspace_misses": info.get("keyspace_misses"),
            "keys": key_count,
            "default_ttl": self.default_ttl,
            "hit_rate": self._calculate_hit_rate(info)
        }

    async def health_check(self) -> bool:
        """Check Redis health."""
        if self.redis is None:
            return False
        try:
            await self.redis.ping()
            return True
        except TRANSPORT_ERRORS:
            return False

    def _calculate_hit_rate(self, info: Dict[str, Any]) -> float:
        hits = info.get("keyspace_hits", 0) or 0
        misses = info.get("keyspace_misses", 0) or 0
        total = hits + misses

        if total == 0:
            return 0.0

        return hits / total

    def _record(self, operation: str, result: CacheResult) -> CacheResult:
        if self.metrics is not None:
            self.metrics.increment_counter(
                "cache_operations_total",
                operation=operation,
                result=result.status.value,
            )
        return result
