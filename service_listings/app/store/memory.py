"""
In-process entity store.

Used for local development (``LISTINGS_ENTITY_STORE=memory``) and tests.
Returned models are copies; callers never hold references into the store.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from shared.errors import ConflictError, ValidationError
from shared.logging import get_logger
from ..search.filters import ListingFilter
from .base import ARRAY_FIELDS, DISTINCT_FIELDS, EntityStore
from .models import Listing, Recommendation, User, utcnow


class InMemoryEntityStore(EntityStore):
    """Dictionary-backed entity store."""

    def __init__(self):
        self.logger = get_logger("listings.store.memory")
        self._listings: Dict[str, Listing] = {}
        self._users: Dict[str, User] = {}
        self._lock = asyncio.Lock()

    async def find_listings(
        self,
        listing_filter: ListingFilter,
        sort_by: str,
        sort_order: str,
        skip: int,
        limit: int,
    ) -> List[Listing]:
        matched = [l for l in self._listings.values() if listing_filter.matches(l)]
        # Stable tie-break on listing_id, then the requested ordering.
        matched.sort(key=lambda l: l.listing_id)
        matched.sort(key=lambda l: getattr(l, sort_by), reverse=sort_order == "desc")
        return [l.model_copy(deep=True) for l in matched[skip:skip + limit]]

    async def count_listings(self, listing_filter: ListingFilter) -> int:
        return sum(1 for l in self._listings.values() if listing_filter.matches(l))

    async def distinct_listing_values(self, field: str) -> List[Any]:
        if field not in DISTINCT_FIELDS:
            raise ValidationError(f"Field '{field}' has no distinct-value enumeration")

        values = set()
        for listing in self._listings.values():
            value = getattr(listing, field)
            if field in ARRAY_FIELDS:
                values.update(value)
            elif value is not None:
                values.add(value)
        return sorted(values)

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        listing = self._listings.get(listing_id)
        return listing.model_copy(deep=True) if listing else None

    async def all_listings(self) -> List[Listing]:
        return [l.model_copy(deep=True) for l in self._listings.values()]

    async def get_listings_by_ids(self, listing_ids: Sequence[str]) -> List[Listing]:
        return [
            self._listings[listing_id].model_copy(deep=True)
            for listing_id in dict.fromkeys(listing_ids)
            if listing_id in self._listings
        ]

    async def insert_listing(self, listing: Listing) -> Listing:
        async with self._lock:
            if listing.listing_id in self._listings:
                raise ConflictError(
                    "Listing id already exists",
                    details={"listing_id": listing.listing_id},
                )
            self._listings[listing.listing_id] = listing.model_copy(deep=True)
        return listing.model_copy(deep=True)

    async def update_listing(self, listing_id: str, changes: Dict[str, Any]) -> Optional[Listing]:
        async with self._lock:
            current = self._listings.get(listing_id)
            if current is None:
                return None
            data = current.model_dump()
            data.update(changes)
            data["updated_at"] = utcnow()
            updated = Listing.model_validate(data)
            self._listings[listing_id] = updated
        return updated.model_copy(deep=True)

    async def delete_listing(self, listing_id: str) -> bool:
        async with self._lock:
            return self._listings.pop(listing_id, None) is not None

    async def get_user(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        for user in self._users.values():
            if user.email == email:
                return user.model_copy(deep=True)
        return None

    async def insert_user(self, user: User) -> User:
        async with self._lock:
            if any(existing.email == user.email for existing in self._users.values()):
                raise ConflictError("User already exists", details={"email": user.email})
            self._users[user.user_id] = user.model_copy(deep=True)
        return user.model_copy(deep=True)

    async def add_favorite(self, user_id: str, listing_id: str) -> bool:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None or listing_id in user.favorites:
                return False
            user.favorites.append(listing_id)
            return True

    async def remove_favorite(self, user_id: str, listing_id: str) -> bool:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None or listing_id not in user.favorites:
                return False
            user.favorites = [f for f in user.favorites if f != listing_id]
            return True

    async def add_recommendation(self, user_id: str, recommendation: Recommendation) -> bool:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            for existing in user.recommendations_received:
                if (existing.listing_id == recommendation.listing_id
                        and existing.recommended_by == recommendation.recommended_by):
                    return False
            user.recommendations_received.append(recommendation.model_copy(deep=True))
            return True
