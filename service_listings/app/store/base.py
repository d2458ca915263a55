"""
Entity store contract for the Listings Service.

All listing lookups use the public ``listing_id``, never a storage-internal
identifier.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from ..search.filters import ListingFilter
from .models import Listing, Recommendation, User

# API sort names -> listing fields
SORTABLE_FIELDS: Dict[str, str] = {
    "price": "price",
    "areaSqFt": "area_sq_ft",
    "bedrooms": "bedrooms",
    "bathrooms": "bathrooms",
    "rating": "rating",
    "availableFrom": "available_from",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "title": "title",
}

DISTINCT_FIELDS = (
    "type",
    "state",
    "city",
    "furnished",
    "listed_by",
    "listing_type",
    "amenities",
    "tags",
)

ARRAY_FIELDS = ("amenities", "tags")


class EntityStore(ABC):
    """Authoritative storage for listings and users."""

    async def start(self):
        """Open connections."""

    async def stop(self):
        """Release connections."""

    async def health_check(self) -> bool:
        return True

    # Listings

    @abstractmethod
    async def find_listings(
        self,
        listing_filter: ListingFilter,
        sort_by: str,
        sort_order: str,
        skip: int,
        limit: int,
    ) -> List[Listing]:
        """Return one page of listings matching the filter."""

    @abstractmethod
    async def count_listings(self, listing_filter: ListingFilter) -> int:
        """Count listings matching the filter."""

    @abstractmethod
    async def distinct_listing_values(self, field: str) -> List[Any]:
        """Distinct values of ``field`` across all listings; array fields are flattened."""

    @abstractmethod
    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        ...

    @abstractmethod
    async def all_listings(self) -> List[Listing]:
        ...

    @abstractmethod
    async def get_listings_by_ids(self, listing_ids: Sequence[str]) -> List[Listing]:
        ...

    @abstractmethod
    async def insert_listing(self, listing: Listing) -> Listing:
        """Insert a listing; raises ConflictError when the listing id is taken."""

    @abstractmethod
    async def update_listing(self, listing_id: str, changes: Dict[str, Any]) -> Optional[Listing]:
        """Apply ``changes`` and refresh ``updated_at``; None when the listing is gone."""

    @abstractmethod
    async def delete_listing(self, listing_id: str) -> bool:
        ...

    # Users

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    async def insert_user(self, user: User) -> User:
        """Insert a user; raises ConflictError when the email is taken."""

    @abstractmethod
    async def add_favorite(self, user_id: str, listing_id: str) -> bool:
        """Add a favorite; False if it was already present or the user is unknown."""

    @abstractmethod
    async def remove_favorite(self, user_id: str, listing_id: str) -> bool:
        ...

    @abstractmethod
    async def add_recommendation(self, user_id: str, recommendation: Recommendation) -> bool:
        """Append a recommendation; False if that recommender already sent that listing."""
