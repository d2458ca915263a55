"""
Per-user favorites.
"""

from typing import Any, Dict, List

from shared.errors import ConflictError, NotFoundError
from shared.logging import get_logger
from ..cache import keys
from ..cache.aside import CacheAside
from ..cache.invalidator import CacheInvalidator
from ..store.base import EntityStore
from ..store.models import User


class FavoriteService:
    """Favorites with a per-user cached listing view."""

    def __init__(self, store: EntityStore, cache_aside: CacheAside, invalidator: CacheInvalidator):
        self.store = store
        self.cache_aside = cache_aside
        self.invalidator = invalidator
        self.logger = get_logger("listings.service.favorites")

    async def get_favorites(self, user_id: str) -> List[Dict[str, Any]]:
        """Full listing documents in the order they were favorited."""
        async def load():
            user = await self.store.get_user(user_id)
            if user is None:
                return None
            listings = await self.store.get_listings_by_ids(user.favorites)
            by_id = {listing.listing_id: listing for listing in listings}
            return [by_id[lid].to_document() for lid in user.favorites if lid in by_id]

        favorites = await self.cache_aside.read_through(
            keys.favorites_key(user_id), load, cache_type="favorites"
        )
        if favorites is None:
            raise NotFoundError("User not found", details={"user_id": user_id})
        return favorites

    async def add_favorite(self, user_id: str, listing_id: str) -> Dict[str, Any]:
        await self._require_listing(listing_id)
        await self._require_user(user_id)

        if not await self.store.add_favorite(user_id, listing_id):
            raise ConflictError("Listing already in favorites", details={"listing_id": listing_id})
        await self.invalidator.favorites_changed(user_id)

        self.logger.info("Favorite added", user_id=user_id, listing_id=listing_id)
        return {"message": "Added to favorites", "listingId": listing_id}

    async def remove_favorite(self, user_id: str, listing_id: str) -> Dict[str, Any]:
        await self._require_listing(listing_id)
        await self._require_user(user_id)

        removed = await self.store.remove_favorite(user_id, listing_id)
        if removed:
            await self.invalidator.favorites_changed(user_id)

        self.logger.info("Favorite removed", user_id=user_id, listing_id=listing_id, removed=removed)
        return {"message": "Removed from favorites", "listingId": listing_id}

    async def check_favorite(self, user_id: str, listing_id: str) -> Dict[str, bool]:
        user = await self._require_user(user_id)
        return {"isFavorite": listing_id in user.favorites}

    async def _require_listing(self, listing_id: str):
        if await self.store.get_listing(listing_id) is None:
            raise NotFoundError("Listing not found", details={"listing_id": listing_id})

    async def _require_user(self, user_id: str) -> User:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found", details={"user_id": user_id})
        return user
