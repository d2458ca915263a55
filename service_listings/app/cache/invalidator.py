"""
Mutation-triggered cache invalidation.

Callers invoke these methods only after the store mutation has been applied.
Invalidation is best-effort: failures are logged and counted, and never undo
or fail the committed mutation.
"""

from typing import Awaitable, Callable, List, Optional, TYPE_CHECKING

from shared.logging import get_logger
from . import keys
from .redis_cache import CacheResult, CacheStatus, RedisCache

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class CacheInvalidator:
    """Erase cache entries made stale by listing, favorite and recommendation writes."""

    def __init__(
        self,
        cache: RedisCache,
        *,
        invalidate_filter_options: bool = False,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache = cache
        self.invalidate_filter_options = invalidate_filter_options
        self.metrics = metrics
        self.logger = get_logger("listings.cache.invalidator")

    async def listing_created(self) -> List[CacheResult]:
        return await self._run("listing_created", self._listing_operations())

    async def listing_changed(self, listing_id: str) -> List[CacheResult]:
        """Invalidate after an update or delete of ``listing_id``."""
        operations = [lambda: self.cache.delete(keys.listing_key(listing_id))]
        operations.extend(self._listing_operations())
        return await self._run("listing_changed", operations, listing_id=listing_id)

    async def favorites_changed(self, user_id: str) -> List[CacheResult]:
        return await self._run(
            "favorites_changed",
            [lambda: self.cache.delete(keys.favorites_key(user_id))],
            user_id=user_id,
        )

    async def recommendations_changed(self, user_id: str) -> List[CacheResult]:
        return await self._run(
            "recommendations_changed",
            [lambda: self.cache.delete(keys.recommendations_key(user_id))],
            user_id=user_id,
        )

    def _listing_operations(self) -> List[Callable[[], Awaitable[CacheResult]]]:
        operations: List[Callable[[], Awaitable[CacheResult]]] = [
            (lambda pattern=pattern: self.cache.delete_pattern(pattern))
            for pattern in keys.listing_mutation_patterns()
        ]
        if self.invalidate_filter_options:
            operations.append(lambda: self.cache.delete(keys.FILTER_OPTIONS_KEY))
        return operations

    async def _run(
        self,
        trigger: str,
        operations: List[Callable[[], Awaitable[CacheResult]]],
        **context,
    ) -> List[CacheResult]:
        results: List[CacheResult] = []
        for operation in operations:
            try:
                result = await operation()
            except Exception as e:
                # Cache doubles and alternative backends may raise.
                result = CacheResult(CacheStatus.TRANSPORT_ERROR, trigger, error=str(e))
            results.append(result)

        failures = [r for r in results if r.failed]
        for failure in failures:
            self.logger.warning(
                "Cache invalidation failed; entry stays stale until TTL expiry",
                trigger=trigger,
                target=failure.key,
                status=failure.status.value,
                error=failure.error,
                **context,
            )

        if self.metrics is not None:
            self.metrics.increment_counter(
                "cache_invalidations_total",
                trigger=trigger,
                result="error" if failures else "ok",
            )
        return results
