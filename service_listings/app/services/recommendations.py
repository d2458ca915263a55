"""
User-to-user listing recommendations.
"""

import asyncio
from typing import Any, Dict, List, Optional

from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.logging import get_logger
from ..cache import keys
from ..cache.aside import CacheAside
from ..cache.invalidator import CacheInvalidator
from ..store.base import EntityStore
from ..store.models import Recommendation, User


def _normalize_email(email: Optional[str]) -> str:
    if email is None or not email.strip():
        raise ValidationError("Email is required", details={"parameter": "email"})
    return email.strip().lower()


class RecommendationService:
    """Recommend listings to other users and read received recommendations."""

    def __init__(self, store: EntityStore, cache_aside: CacheAside, invalidator: CacheInvalidator):
        self.store = store
        self.cache_aside = cache_aside
        self.invalidator = invalidator
        self.logger = get_logger("listings.service.recommendations")

    async def find_user_by_email(self, email: Optional[str]) -> Dict[str, Any]:
        user = await self.store.get_user_by_email(_normalize_email(email))
        if user is None:
            raise NotFoundError("User not found")
        return {"user": user.public_view()}

    async def recommend_listing(
        self, user_id: str, listing_id: str, recipient_email: Optional[str]
    ) -> Dict[str, Any]:
        email = _normalize_email(recipient_email)

        if await self.store.get_listing(listing_id) is None:
            raise NotFoundError("Listing not found", details={"listing_id": listing_id})

        recipient = await self.store.get_user_by_email(email)
        if recipient is None:
            raise NotFoundError("Recipient not found")

        recommendation = Recommendation(listing_id=listing_id, recommended_by=user_id)
        if not await self.store.add_recommendation(recipient.user_id, recommendation):
            raise ConflictError(
                "Listing already recommended to this user",
                details={"listing_id": listing_id},
            )
        await self.invalidator.recommendations_changed(recipient.user_id)

        self.logger.info(
            "Listing recommended",
            listing_id=listing_id,
            recommended_by=user_id,
            recipient_id=recipient.user_id,
        )
        return {"message": "Listing recommended successfully"}

    async def get_recommendations(self, user_id: str) -> List[Dict[str, Any]]:
        """Recommendations received by ``user_id``, oldest first.

        ``listing`` is null for listings deleted since they were recommended.
        """
        async def load():
            user = await self.store.get_user(user_id)
            if user is None:
                return None
            return await self._expand(user)

        recommendations = await self.cache_aside.read_through(
            keys.recommendations_key(user_id), load, cache_type="recommendations"
        )
        if recommendations is None:
            raise NotFoundError("User not found", details={"user_id": user_id})
        return recommendations

    async def _expand(self, user: User) -> List[Dict[str, Any]]:
        received = user.recommendations_received
        listing_ids = list(dict.fromkeys(r.listing_id for r in received))
        recommender_ids = list(dict.fromkeys(r.recommended_by for r in received))

        listings, recommenders = await asyncio.gather(
            self.store.get_listings_by_ids(listing_ids),
            asyncio.gather(*(self.store.get_user(uid) for uid in recommender_ids)),
        )
        listings_by_id = {listing.listing_id: listing for listing in listings}
        emails = {
            uid: (recommender.email if recommender else None)
            for uid, recommender in zip(recommender_ids, recommenders)
        }

        expanded = []
        for recommendation in received:
            listing = listings_by_id.get(recommendation.listing_id)
            expanded.append({
                "listing": listing.to_document() if listing else None,
                "recommendedBy": {
                    "userId": recommendation.recommended_by,
                    "email": emails.get(recommendation.recommended_by),
                },
                "recommendedAt": recommendation.to_document()["recommendedAt"],
            })
        return expanded
