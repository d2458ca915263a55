"""
Paginated listing search.
"""

import asyncio
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, TYPE_CHECKING

from shared.errors import ValidationError
from shared.logging import get_logger
from ..cache import keys
from ..cache.aside import CacheAside
from ..store.base import SORTABLE_FIELDS, EntityStore
from .filters import ListingFilter, build_filter, parse_int

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
DEFAULT_SORT_BY = "price"
DEFAULT_SORT_ORDER = "asc"
MAX_LIMIT = 100

SORT_ORDERS = ("asc", "desc")

# response key -> listing field
FILTER_OPTION_FIELDS: Dict[str, str] = {
    "types": "type",
    "states": "state",
    "cities": "city",
    "furnishedOptions": "furnished",
    "listedByOptions": "listed_by",
    "listingTypes": "listing_type",
    "amenities": "amenities",
    "tags": "tags",
}

# snake_case sort names are accepted as well as the camelCase API names
_SORT_ALIASES: Dict[str, str] = dict(SORTABLE_FIELDS)
_SORT_ALIASES.update({column: column for column in SORTABLE_FIELDS.values()})


def resolve_sort_field(raw: Optional[str]) -> str:
    if raw is None or not raw.strip():
        return SORTABLE_FIELDS[DEFAULT_SORT_BY]
    name = raw.strip()
    if name not in _SORT_ALIASES:
        raise ValidationError(
            f"Cannot sort by '{name}'",
            details={"parameter": "sortBy", "allowed": sorted(SORTABLE_FIELDS)},
        )
    return _SORT_ALIASES[name]


def resolve_sort_order(raw: Optional[str]) -> str:
    if raw is None or not raw.strip():
        return DEFAULT_SORT_ORDER
    order = raw.strip().lower()
    if order not in SORT_ORDERS:
        raise ValidationError(
            "Query parameter 'sortOrder' must be 'asc' or 'desc'",
            details={"parameter": "sortOrder", "value": raw},
        )
    return order


def _positive_or_default(params: Mapping[str, Optional[str]], name: str, default: int) -> int:
    raw = params.get(name)
    if raw is None or not str(raw).strip():
        return default
    value = parse_int(name, str(raw))
    return value if value > 0 else default


def build_pagination(total: int, page: int, limit: int) -> Dict[str, int]:
    pages = math.ceil(total / limit) if total else 0
    return {"total": total, "page": page, "limit": limit, "pages": pages}


@dataclass(frozen=True)
class SearchQuery:
    """Normalized search request."""
    filter: ListingFilter = field(default_factory=ListingFilter)
    sort_by: str = SORTABLE_FIELDS[DEFAULT_SORT_BY]
    sort_order: str = DEFAULT_SORT_ORDER
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @classmethod
    def from_params(cls, params: Mapping[str, Optional[str]], max_limit: int = MAX_LIMIT) -> "SearchQuery":
        """Parse raw query parameters, applying defaults and bounds."""
        page = _positive_or_default(params, "page", DEFAULT_PAGE)
        limit = min(_positive_or_default(params, "limit", DEFAULT_LIMIT), max_limit)
        return cls(
            filter=build_filter(params),
            sort_by=resolve_sort_field(params.get("sortBy")),
            sort_order=resolve_sort_order(params.get("sortOrder")),
            page=page,
            limit=limit,
        )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def canonical(self) -> Dict[str, Any]:
        """Normalized form from which the search cache key is derived."""
        return {
            "filter": self.filter.to_dict(),
            "sortBy": self.sort_by,
            "sortOrder": self.sort_order,
            "page": self.page,
            "limit": self.limit,
        }


class SearchEngine:
    """Filter, sort and paginate listings, caching whole result pages."""

    def __init__(
        self,
        store: EntityStore,
        cache_aside: CacheAside,
        *,
        max_limit: int = MAX_LIMIT,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.cache_aside = cache_aside
        self.max_limit = max_limit
        self.metrics = metrics
        self.logger = get_logger("listings.search")

    async def search(self, params: Mapping[str, Optional[str]]) -> Dict[str, Any]:
        """Run a search from raw query parameters.

        Invalid parameters raise ``ValidationError`` before the cache or the
        store is consulted.
        """
        query = SearchQuery.from_params(params, self.max_limit)
        key = keys.search_key(query.canonical())
        return await self.cache_aside.read_through(
            key,
            lambda: self.execute(query),
            cache_type="search",
        )

    async def execute(self, query: SearchQuery) -> Dict[str, Any]:
        """Run ``query`` against the store, bypassing the cache."""
        if self.metrics is not None:
            with self.metrics.time_operation("search_duration_seconds"):
                return await self._execute(query)
        return await self._execute(query)

    async def _execute(self, query: SearchQuery) -> Dict[str, Any]:
        listings, total = await asyncio.gather(
            self.store.find_listings(query.filter, query.sort_by, query.sort_order, query.skip, query.limit),
            self.store.count_listings(query.filter),
        )
        filter_options = await self.filter_options()

        self.logger.debug(
            "Search executed",
            total=total,
            page=query.page,
            limit=query.limit,
            sort_by=query.sort_by,
            sort_order=query.sort_order,
        )

        return {
            "listings": [listing.to_document() for listing in listings],
            "pagination": build_pagination(total, query.page, query.limit),
            "filterOptions": filter_options,
        }

    async def filter_options(self) -> Dict[str, List[Any]]:
        """Distinct values of every filterable field, read from the store."""
        names = list(FILTER_OPTION_FIELDS)
        values = await asyncio.gather(
            *(self.store.distinct_listing_values(FILTER_OPTION_FIELDS[name]) for name in names)
        )
        return dict(zip(names, values))

    async def cached_filter_options(self) -> Dict[str, List[Any]]:
        return await self.cache_aside.read_through(
            keys.FILTER_OPTIONS_KEY,
            self.filter_options,
            cache_type="filters",
        )
