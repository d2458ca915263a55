"""
Cache key namespace for the Listings Service.

Single-listing keys live under the collection prefix so the collection-wide
pattern sweeps them too. Key strings are internal and may change freely as
long as the prefix/pattern relationships hold.
"""

import hashlib
import json
from typing import Any, List, Mapping

LISTINGS_PREFIX = "listings"
SEARCH_PREFIX = "search"
USER_PREFIX = "user"

LISTINGS_ALL_KEY = f"{LISTINGS_PREFIX}:all"
FILTER_OPTIONS_KEY = "filters:all"

LISTINGS_PATTERN = f"{LISTINGS_PREFIX}:*"
SEARCH_PATTERN = f"{SEARCH_PREFIX}:*"


def listing_key(listing_id: str) -> str:
    return f"{LISTINGS_PREFIX}:item:{listing_id}"


def canonical_query(query: Mapping[str, Any]) -> str:
    """Order-independent serialization of a normalized query."""
    return json.dumps(query, sort_keys=True, separators=(",", ":"), default=str)


def search_key(query: Mapping[str, Any]) -> str:
    digest = hashlib.md5(canonical_query(query).encode()).hexdigest()
    return f"{SEARCH_PREFIX}:{digest}"


def favorites_key(user_id: str) -> str:
    return f"{USER_PREFIX}:{user_id}:favorites"


def recommendations_key(user_id: str) -> str:
    return f"{USER_PREFIX}:{user_id}:recommendations"


def listing_mutation_patterns() -> List[str]:
    """Patterns erased by any listing create, update or delete."""
    return [LISTINGS_PATTERN, SEARCH_PATTERN]
