"""
Listing read and write paths.
"""

from typing import Any, Dict, List, Mapping, Optional, TYPE_CHECKING

from shared.errors import AuthorizationError, NotFoundError
from shared.logging import get_logger
from ..cache import keys
from ..cache.aside import CacheAside
from ..cache.invalidator import CacheInvalidator
from ..search.engine import SearchEngine
from ..store.base import EntityStore
from ..store.models import Listing, ListingCreateRequest, ListingUpdateRequest

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class ListingService:
    """Cached listing reads; store-first writes followed by invalidation."""

    def __init__(
        self,
        store: EntityStore,
        cache_aside: CacheAside,
        invalidator: CacheInvalidator,
        search_engine: SearchEngine,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.cache_aside = cache_aside
        self.invalidator = invalidator
        self.search_engine = search_engine
        self.metrics = metrics
        self.logger = get_logger("listings.service.listings")

    async def list_listings(self) -> List[Dict[str, Any]]:
        async def load():
            return [listing.to_document() for listing in await self.store.all_listings()]

        return await self.cache_aside.read_through(keys.LISTINGS_ALL_KEY, load, cache_type="listings")

    async def get_listing(self, listing_id: str) -> Dict[str, Any]:
        async def load():
            listing = await self.store.get_listing(listing_id)
            return listing.to_document() if listing else None

        document = await self.cache_aside.read_through(
            keys.listing_key(listing_id), load, cache_type="listing"
        )
        if document is None:
            raise NotFoundError("Listing not found", details={"listing_id": listing_id})
        return document

    async def search(self, params: Mapping[str, Optional[str]]) -> Dict[str, Any]:
        return await self.search_engine.search(params)

    async def get_filter_options(self) -> Dict[str, List[Any]]:
        return await self.search_engine.cached_filter_options()

    async def create_listing(self, user_id: str, payload: ListingCreateRequest) -> Dict[str, Any]:
        listing = await self.store.insert_listing(payload.to_listing(created_by=user_id))
        await self.invalidator.listing_created()

        self._business_event("listing_created")
        self.logger.info("Listing created", listing_id=listing.listing_id, user_id=user_id)
        return listing.to_document()

    async def update_listing(
        self, user_id: str, listing_id: str, payload: ListingUpdateRequest
    ) -> Dict[str, Any]:
        await self._owned_listing(user_id, listing_id)

        updated = await self.store.update_listing(listing_id, payload.to_changes())
        if updated is None:
            raise NotFoundError("Listing not found", details={"listing_id": listing_id})
        await self.invalidator.listing_changed(listing_id)

        self._business_event("listing_updated")
        self.logger.info("Listing updated", listing_id=listing_id, user_id=user_id)
        return updated.to_document()

    async def delete_listing(self, user_id: str, listing_id: str) -> Dict[str, Any]:
        await self._owned_listing(user_id, listing_id)

        if not await self.store.delete_listing(listing_id):
            raise NotFoundError("Listing not found", details={"listing_id": listing_id})
        await self.invalidator.listing_changed(listing_id)

        self._business_event("listing_deleted")
        self.logger.info("Listing deleted", listing_id=listing_id, user_id=user_id)
        return {"message": "Listing deleted", "listingId": listing_id}

    async def _owned_listing(self, user_id: str, listing_id: str) -> Listing:
        # Ownership is always checked against the store, never a cached copy.
        listing = await self.store.get_listing(listing_id)
        if listing is None:
            raise NotFoundError("Listing not found", details={"listing_id": listing_id})
        if listing.created_by != user_id:
            raise AuthorizationError(
                "Only the creator of a listing may modify it",
                details={"listing_id": listing_id},
            )
        return listing

    def _business_event(self, event_type: str):
        if self.metrics is not None:
            self.metrics.record_business_event(event_type)
