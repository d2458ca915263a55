"""
Shared fixtures for Listings service tests.
"""

from datetime import date

import fakeredis
import fakeredis.aioredis
import pytest

from shared.metrics import MetricsCollector
from service_listings.app.cache.aside import CacheAside
from service_listings.app.cache.invalidator import CacheInvalidator
from service_listings.app.cache.redis_cache import RedisCache
from service_listings.app.search.engine import SearchEngine
from service_listings.app.services import FavoriteService, ListingService, RecommendationService
from service_listings.app.store.memory import InMemoryEntityStore
from service_listings.app.store.models import Listing, User


@pytest.fixture
def redis_server():
    """Backing server shared by the async client under test and a sync inspector."""
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(redis_server):
    return fakeredis.aioredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def redis_view(redis_server):
    """Synchronous view of the same data for assertions."""
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def metrics():
    return MetricsCollector("listings")


@pytest.fixture
def cache(fake_redis, metrics):
    return RedisCache(client=fake_redis, metrics=metrics)


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def cache_aside(cache, metrics):
    return CacheAside(cache, metrics)


@pytest.fixture
def invalidator(cache, metrics):
    return CacheInvalidator(cache, metrics=metrics)


@pytest.fixture
def search_engine(store, cache_aside, metrics):
    return SearchEngine(store, cache_aside, metrics=metrics)


@pytest.fixture
def listing_service(store, cache_aside, invalidator, search_engine, metrics):
    return ListingService(store, cache_aside, invalidator, search_engine, metrics)


@pytest.fixture
def favorite_service(store, cache_aside, invalidator):
    return FavoriteService(store, cache_aside, invalidator)


@pytest.fixture
def recommendation_service(store, cache_aside, invalidator):
    return RecommendationService(store, cache_aside, invalidator)


@pytest.fixture
def make_listing():
    """Factory for listings with sensible defaults."""
    def factory(listing_id: str, **overrides) -> Listing:
        data = {
            "listing_id": listing_id,
            "title": f"Listing {listing_id}",
            "type": "Apartment",
            "price": 100000,
            "state": "Karnataka",
            "city": "Bengaluru",
            "area_sq_ft": 1200,
            "bedrooms": 2,
            "bathrooms": 2,
            "amenities": ["gym"],
            "furnished": "Furnished",
            "available_from": date(2025, 1, 1),
            "listed_by": "Owner",
            "tags": ["new"],
            "rating": 4.0,
            "is_verified": True,
            "listing_type": "sale",
            "created_by": "owner-1",
        }
        data.update(overrides)
        return Listing(**data)

    return factory


@pytest.fixture
def make_user():
    def factory(user_id: str, email: str = None, **overrides) -> User:
        data = {
            "user_id": user_id,
            "email": email or f"{user_id}@example.com",
            "password_hash": "not-a-real-hash",
        }
        data.update(overrides)
        return User(**data)

    return factory
