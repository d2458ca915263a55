"""
Query filter builder for listing search.

Translates raw query-string constraints into a store-agnostic
``ListingFilter``. The in-memory store evaluates it with ``matches``; the
PostgreSQL store compiles it to SQL.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from shared.errors import ValidationError

_INTEGER_RE = re.compile(r"^[+-]?\d+$")

LIST_SEPARATOR = "|"


def parse_int(name: str, raw: str) -> int:
    """Parse a base-10 integer; reject anything else."""
    value = raw.strip()
    if not _INTEGER_RE.match(value):
        raise ValidationError(
            f"Query parameter '{name}' must be an integer",
            details={"parameter": name, "value": raw},
        )
    return int(value, 10)


def parse_float(name: str, raw: str) -> float:
    try:
        value = float(raw.strip())
    except ValueError:
        value = math.nan
    if not math.isfinite(value):
        raise ValidationError(
            f"Query parameter '{name}' must be a number",
            details={"parameter": name, "value": raw},
        )
    return value


def parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value not in ("true", "false"):
        raise ValidationError(
            f"Query parameter '{name}' must be 'true' or 'false'",
            details={"parameter": name, "value": raw},
        )
    return value == "true"


def parse_date(name: str, raw: str) -> date:
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        raise ValidationError(
            f"Query parameter '{name}' must be a date (YYYY-MM-DD)",
            details={"parameter": name, "value": raw},
        ) from None


def parse_str(name: str, raw: str) -> str:
    return raw.strip()


# query parameter -> (listing field, parser)
EQUALITY_PARAMS: Dict[str, Tuple[str, Callable[[str, str], Any]]] = {
    "type": ("type", parse_str),
    "state": ("state", parse_str),
    "city": ("city", parse_str),
    "bedrooms": ("bedrooms", parse_int),
    "bathrooms": ("bathrooms", parse_int),
    "furnished": ("furnished", parse_str),
    "listedBy": ("listed_by", parse_str),
    "listingType": ("listing_type", parse_str),
    "isVerified": ("is_verified", parse_bool),
}

# listing field -> (lower-bound parameter, upper-bound parameter, parser)
RANGE_PARAMS: Dict[str, Tuple[str, str, Callable[[str, str], Any]]] = {
    "price": ("minPrice", "maxPrice", parse_int),
    "area_sq_ft": ("minArea", "maxArea", parse_int),
    "rating": ("minRating", "maxRating", parse_float),
    "available_from": ("availableFrom", "availableUntil", parse_date),
}

# query parameter -> listing field
CONTAINMENT_PARAMS: Dict[str, str] = {
    "amenities": "amenities",
    "tags": "tags",
}


@dataclass(frozen=True)
class Range:
    """Inclusive range; either bound may be absent."""
    gte: Any = None
    lte: Any = None

    def contains(self, value: Any) -> bool:
        if value is None:
            return False
        if self.gte is not None and value < self.gte:
            return False
        if self.lte is not None and value > self.lte:
            return False
        return True


@dataclass(frozen=True)
class ListingFilter:
    """Structured listing filter: equality, ranges and all-of containment."""
    equals: Dict[str, Any] = field(default_factory=dict)
    ranges: Dict[str, Range] = field(default_factory=dict)
    contains_all: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.equals or self.ranges or self.contains_all)

    def matches(self, listing: Any) -> bool:
        """Evaluate the filter against an object exposing listing fields as attributes."""
        for name, expected in self.equals.items():
            if getattr(listing, name, None) != expected:
                return False
        for name, bounds in self.ranges.items():
            if not bounds.contains(getattr(listing, name, None)):
                return False
        for name, required in self.contains_all.items():
            present = set(getattr(listing, name, None) or ())
            if not present.issuperset(required):
                return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Canonical, JSON-friendly form used for cache key derivation."""
        return {
            "equals": {name: self.equals[name] for name in sorted(self.equals)},
            "ranges": {
                name: {"gte": bounds.gte, "lte": bounds.lte}
                for name, bounds in sorted(self.ranges.items())
            },
            "containsAll": {name: list(values) for name, values in sorted(self.contains_all.items())},
        }


def _present(params: Mapping[str, Optional[str]], name: str) -> Optional[str]:
    value = params.get(name)
    if value is None or not str(value).strip():
        return None
    return str(value)


def split_list(raw: str) -> Tuple[str, ...]:
    """Split a ``|``-separated list; order and duplicates are irrelevant to all-of matching."""
    return tuple(sorted({part.strip() for part in raw.split(LIST_SEPARATOR) if part.strip()}))


def build_filter(params: Mapping[str, Optional[str]]) -> ListingFilter:
    """Build a ``ListingFilter`` from raw query parameters.

    Absent or blank parameters impose no restriction and unrecognized
    parameters are ignored. A value that fails to parse raises
    ``ValidationError``.
    """
    equals: Dict[str, Any] = {}
    for param, (field_name, parser) in EQUALITY_PARAMS.items():
        raw = _present(params, param)
        if raw is not None:
            equals[field_name] = parser(param, raw)

    ranges: Dict[str, Range] = {}
    for field_name, (lower_param, upper_param, parser) in RANGE_PARAMS.items():
        lower = _present(params, lower_param)
        upper = _present(params, upper_param)
        if lower is None and upper is None:
            continue
        ranges[field_name] = Range(
            gte=parser(lower_param, lower) if lower is not None else None,
            lte=parser(upper_param, upper) if upper is not None else None,
        )

    contains_all: Dict[str, Tuple[str, ...]] = {}
    for param, field_name in CONTAINMENT_PARAMS.items():
        raw = _present(params, param)
        if raw is None:
            continue
        values = split_list(raw)
        if values:
            contains_all[field_name] = values

    return ListingFilter(equals=equals, ranges=ranges, contains_all=contains_all)
