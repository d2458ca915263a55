"""
Listings service for the Listings Platform.
"""

import secrets
from typing import Any, Dict, Optional

from fastapi import Depends, Query, Request

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import ServiceError

from .auth.identity import JWTIdentityProvider
from .cache.aside import CacheAside
from .cache.invalidator import CacheInvalidator
from .cache.redis_cache import RedisCache
from .search.engine import SearchEngine
from .services import AuthService, FavoriteService, ListingService, RecommendationService
from .store import EntityStore, InMemoryEntityStore, PostgresEntityStore
from .store.models import Credentials, ListingCreateRequest, ListingUpdateRequest, RecommendRequest

SERVICE_NAME = "listings"
DEFAULT_PORT = 5000


def create_entity_store(config: ServiceConfig) -> EntityStore:
    """Build the entity store selected by configuration."""
    if config.entity_store == "memory":
        return InMemoryEntityStore()
    if config.entity_store == "postgres":
        return PostgresEntityStore(config.postgres_dsn)
    raise ServiceError(f"Unknown entity store '{config.entity_store}'")


class ListingsService(BaseService):
    """Listings service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        entity_store: Optional[EntityStore] = None,
        cache: Optional[RedisCache] = None,
    ):
        super().__init__(SERVICE_NAME, DEFAULT_PORT, config)

        # Initialize components
        self.store = entity_store or create_entity_store(self.config)
        self.cache = cache or RedisCache(
            self.config.redis_url,
            default_ttl=self.config.cache_default_ttl,
            metrics=self.metrics,
        )
        self.identity = JWTIdentityProvider(
            self._resolve_jwt_secret(),
            algorithm=self.config.jwt_algorithm,
            expiry_seconds=self.config.jwt_expiry_seconds,
        )

        cache_aside = CacheAside(self.cache, self.metrics)
        invalidator = CacheInvalidator(
            self.cache,
            invalidate_filter_options=self.config.invalidate_filter_options_on_write,
            metrics=self.metrics,
        )
        search_engine = SearchEngine(
            self.store,
            cache_aside,
            max_limit=self.config.search_max_limit,
            metrics=self.metrics,
        )

        self.listings = ListingService(self.store, cache_aside, invalidator, search_engine, self.metrics)
        self.favorites = FavoriteService(self.store, cache_aside, invalidator)
        self.recommendations = RecommendationService(self.store, cache_aside, invalidator)
        self.auth = AuthService(self.store, self.identity, self.config.password_hash_rounds)

        self._setup_listings_routes()

    def _resolve_jwt_secret(self) -> str:
        if self.config.jwt_secret:
            return self.config.jwt_secret
        if self.config.env != "local":
            raise ServiceError("LISTINGS_JWT_SECRET must be set outside the local environment")

        self.logger.warning("No JWT secret configured; using an ephemeral one, tokens will not survive a restart")
        return secrets.token_urlsafe(32)

    def _setup_listings_routes(self):
        """Set up listings-specific routes."""

        async def current_user(request: Request) -> str:
            return await self.identity.authenticate(request)

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Listings Platform - Listings Service",
                "version": "1.0.0",
                "capabilities": ["search", "caching", "favorites", "recommendations"]
            }

        # Auth

        @self.app.post("/auth/register", status_code=201)
        async def register(credentials: Credentials):
            return await self.auth.register(credentials)

        @self.app.post("/auth/login")
        async def login(credentials: Credentials):
            return await self.auth.login(credentials)

        # Listings; static paths are registered before /properties/{listing_id}

        @self.app.get("/properties/search")
        async def search_listings(request: Request):
            """Search listings with filters, sorting and pagination."""
            return await self.listings.search(dict(request.query_params))

        @self.app.get("/properties/filters")
        async def get_filter_options():
            return await self.listings.get_filter_options()

        @self.app.get("/properties")
        async def list_listings():
            return await self.listings.list_listings()

        @self.app.post("/properties", status_code=201)
        async def create_listing(payload: ListingCreateRequest, user_id: str = Depends(current_user)):
            return await self.listings.create_listing(user_id, payload)

        @self.app.get("/properties/{listing_id}")
        async def get_listing(listing_id: str):
            return await self.listings.get_listing(listing_id)

        @self.app.put("/properties/{listing_id}")
        async def update_listing(
            listing_id: str,
            payload: ListingUpdateRequest,
            user_id: str = Depends(current_user),
        ):
            return await self.listings.update_listing(user_id, listing_id, payload)

        @self.app.delete("/properties/{listing_id}")
        async def delete_listing(listing_id: str, user_id: str = Depends(current_user)):
            return await self.listings.delete_listing(user_id, listing_id)

        # Favorites

        @self.app.get("/favorites")
        async def get_favorites(user_id: str = Depends(current_user)):
            return await self.favorites.get_favorites(user_id)

        @self.app.get("/favorites/check/{listing_id}")
        async def check_favorite(listing_id: str, user_id: str = Depends(current_user)):
            return await self.favorites.check_favorite(user_id, listing_id)

        @self.app.post("/favorites/{listing_id}")
        async def add_favorite(listing_id: str, user_id: str = Depends(current_user)):
            return await self.favorites.add_favorite(user_id, listing_id)

        @self.app.delete("/favorites/{listing_id}")
        async def remove_favorite(listing_id: str, user_id: str = Depends(current_user)):
            return await self.favorites.remove_favorite(user_id, listing_id)

        # Recommendations

        @self.app.get("/recommendations")
        async def get_recommendations(user_id: str = Depends(current_user)):
            return await self.recommendations.get_recommendations(user_id)

        @self.app.get("/recommendations/search")
        async def find_user(
            email: Optional[str] = Query(None, description="Email address to look up"),
            user_id: str = Depends(current_user),
        ):
            return await self.recommendations.find_user_by_email(email)

        @self.app.post("/recommendations/{listing_id}")
        async def recommend_listing(
            listing_id: str,
            payload: Optional[RecommendRequest] = None,
            user_id: str = Depends(current_user),
        ):
            recipient_email = payload.recipient_email if payload else None
            return await self.recommendations.recommend_listing(user_id, listing_id, recipient_email)

        # Operations

        @self.app.get("/cache/stats")
        async def cache_stats():
            """Redis statistics; empty when the cache is unreachable."""
            return await self.cache.get_cache_stats()

    async def _check_dependencies(self) -> Dict[str, Any]:
        """Check listings service dependencies."""
        dependencies = {}

        dependencies["redis"] = "ok" if await self.cache.health_check() else "error"
        dependencies["store"] = "ok" if await self.store.health_check() else "error"

        return dependencies

    async def start(self):
        """Start listings service components."""
        await self.store.start()
        await self.cache.start()
        self.logger.info("Listings service started", entity_store=type(self.store).__name__)

    async def stop(self):
        """Stop listings service components."""
        await self.cache.stop()
        await self.store.stop()
        self.logger.info("Listings service stopped")


def create_app(config: Optional[ServiceConfig] = None):
    """Create listings service application."""
    service = ListingsService(config or get_config(SERVICE_NAME, DEFAULT_PORT))
    return service.app


if __name__ == "__main__":
    service = ListingsService()
    service.run()
