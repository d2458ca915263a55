"""
Request-level operations for the Listings Service.
"""

from .auth import AuthService
from .favorites import FavoriteService
from .listings import ListingService
from .recommendations import RecommendationService

__all__ = ["AuthService", "FavoriteService", "ListingService", "RecommendationService"]
