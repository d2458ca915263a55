"""
Cache-aside read path shared by the listing, favorite, recommendation and
search accessors.
"""

from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING

from shared.logging import get_logger
from .redis_cache import RedisCache

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class CacheAside:
    """Consult the cache first; on a miss load from the store and populate."""

    def __init__(self, cache: RedisCache, metrics: Optional["MetricsCollector"] = None):
        self.cache = cache
        self.metrics = metrics
        self.logger = get_logger("listings.cache.aside")

    async def read_through(
        self,
        key: str,
        loader: Callable[[], Awaitable[Optional[Any]]],
        *,
        cache_type: str,
        ttl: Optional[int] = None,
    ) -> Optional[Any]:
        """Return the cached value for ``key`` or the loader's result.

        A ``None`` result from the loader is a "not found" and is never
        cached, so an entity created later is visible on the next read.
        """
        result = await self.cache.lookup(key)
        if result.hit:
            self._count("cache_hits_total", cache_type)
            self.logger.debug("Cache hit", key=key, cache_type=cache_type)
            return result.value

        self._count("cache_misses_total", cache_type)
        value = await loader()
        if value is None:
            return None

        await self.cache.set(key, value, ttl=ttl)
        return value

    def _count(self, metric: str, cache_type: str):
        if self.metrics is not None:
            self.metrics.increment_counter(metric, cache_type=cache_type)
