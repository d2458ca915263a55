"""
Cache-aside reads and mutation-triggered invalidation for listings.
"""

import json
from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, patch
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.errors import AuthorizationError, NotFoundError
from service_listings.app.cache import keys
from service_listings.app.cache.aside import CacheAside
from service_listings.app.cache.invalidator import CacheInvalidator
from service_listings.app.cache.redis_cache import CacheStatus, RedisCache
from service_listings.app.search.engine import SearchEngine
from service_listings.app.services import ListingService
from service_listings.app.store.models import ListingCreateRequest, ListingUpdateRequest


def _ids(result):
    return [doc["listingId"] for doc in result["listings"]]


class TestListingReads:
    """Test cases for cache-aside listing reads."""

    @pytest.mark.asyncio
    async def test_get_listing_populates_cache(self, listing_service, store, make_listing, redis_view):
        """Test a miss loads from the store and caches the document."""
        await store.insert_listing(make_listing("P1"))

        document = await listing_service.get_listing("P1")

        assert document["listingId"] == "P1"
        assert json.loads(redis_view.get(keys.listing_key("P1"))) == document

    @pytest.mark.asyncio
    async def test_cache_hit_skips_store(self, listing_service, store, make_listing):
        """Test a hit is returned without consulting the store."""
        await store.insert_listing(make_listing("P1"))
        await listing_service.get_listing("P1")

        with patch.object(store, "get_listing", wraps=store.get_listing) as get_listing:
            await listing_service.get_listing("P1")

        assert get_listing.await_count == 0

    @pytest.mark.asyncio
    async def test_not_found_is_never_cached(self, listing_service, store, make_listing, redis_view):
        """Test a listing created after a failed lookup is visible immediately."""
        with pytest.raises(NotFoundError):
            await listing_service.get_listing("P9")
        assert redis_view.exists(keys.listing_key("P9")) == 0

        await store.insert_listing(make_listing("P9"))

        assert (await listing_service.get_listing("P9"))["listingId"] == "P9"

    @pytest.mark.asyncio
    async def test_empty_collection_is_cached(self, listing_service, redis_view):
        """Test an empty listing collection is a cacheable value."""
        assert await listing_service.list_listings() == []

        assert json.loads(redis_view.get(keys.LISTINGS_ALL_KEY)) == []

    @pytest.mark.asyncio
    async def test_hit_and_miss_counters(self, listing_service, store, make_listing, metrics):
        """Test cache hits and misses are counted per resource."""
        await store.insert_listing(make_listing("P1"))

        await listing_service.get_listing("P1")
        await listing_service.get_listing("P1")

        registry = metrics.registry
        assert registry.get_sample_value("cache_misses_total", {"cache_type": "listing"}) == 1.0
        assert registry.get_sample_value("cache_hits_total", {"cache_type": "listing"}) == 1.0

    @pytest.mark.asyncio
    async def test_cache_outage_falls_back_to_store(self, store, make_listing):
        """Test reads succeed from the store when Redis is unreachable."""
        client = AsyncMock()
        client.get.side_effect = RedisConnectionError("down")
        client.set.side_effect = RedisConnectionError("down")
        cache = RedisCache(client=client)
        aside = CacheAside(cache)
        service = ListingService(store, aside, CacheInvalidator(cache), SearchEngine(store, aside))
        await store.insert_listing(make_listing("P1"))

        assert (await service.get_listing("P1"))["listingId"] == "P1"
        assert (await service.search({}))["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_filter_options_cached(self, listing_service, store, make_listing, redis_view):
        """Test filter options are read through their own key."""
        await store.insert_listing(make_listing("P1", city="Pune"))

        options = await listing_service.get_filter_options()

        assert options["cities"] == ["Pune"]
        assert json.loads(redis_view.get(keys.FILTER_OPTIONS_KEY)) == options


class TestListingWrites:
    """Test cases for listing mutations and their invalidation."""

    @pytest.fixture
    def create_request(self):
        return ListingCreateRequest(
            title="Sea view flat",
            type="Apartment",
            price=250000,
            state="Goa",
            city="Panaji",
            areaSqFt=900,
            bedrooms=2,
            bathrooms=1,
            amenities=["pool"],
            furnished="Semi",
            availableFrom="15/03/25",
            listedBy="Agent",
            listingType="sale",
        )

    @pytest.mark.asyncio
    async def test_create_sets_owner_and_invalidates(
        self, listing_service, store, create_request, redis_view
    ):
        """Test creation records the creator and clears collection and search keys."""
        redis_view.set(keys.LISTINGS_ALL_KEY, "[]")
        redis_view.set("search:abc", "{}")
        redis_view.set(keys.FILTER_OPTIONS_KEY, "{}")

        document = await listing_service.create_listing("user-1", create_request)

        assert document["createdBy"] == "user-1"
        assert document["availableFrom"] == "2025-03-15"
        assert (await store.get_listing(document["listingId"])) is not None
        assert redis_view.exists(keys.LISTINGS_ALL_KEY) == 0
        assert redis_view.keys("search:*") == []
        assert redis_view.exists(keys.FILTER_OPTIONS_KEY) == 1

    @pytest.mark.asyncio
    async def test_update_invalidates_everything_derived(
        self, listing_service, store, make_listing, redis_view
    ):
        """Test an update clears the item, collection and every search key."""
        await store.insert_listing(make_listing("P1", created_by="owner-1"))
        await listing_service.get_listing("P1")
        await listing_service.list_listings()
        await listing_service.search({"city": "Bengaluru"})
        await listing_service.search({"minPrice": "1"})

        await listing_service.update_listing("owner-1", "P1", ListingUpdateRequest(title="Renamed"))

        assert redis_view.exists(keys.listing_key("P1")) == 0
        assert redis_view.exists(keys.LISTINGS_ALL_KEY) == 0
        assert redis_view.keys("search:*") == []
        assert (await listing_service.get_listing("P1"))["title"] == "Renamed"

    @pytest.mark.asyncio
    async def test_update_refreshes_updated_at(self, listing_service, store, make_listing):
        """Test partial updates keep other fields and bump updated_at."""
        stale = datetime(2020, 1, 1, tzinfo=timezone.utc)
        original = await store.insert_listing(make_listing("P1", updated_at=stale))

        document = await listing_service.update_listing("owner-1", "P1", ListingUpdateRequest(price=5))

        assert document["price"] == 5
        assert document["title"] == original.title
        assert (await store.get_listing("P1")).updated_at > stale

    @pytest.mark.asyncio
    async def test_resort_after_price_change(self, listing_service, store, make_listing):
        """Test a search reflects a price change that reorders results."""
        await store.insert_listing(make_listing("P1", price=100))
        await store.insert_listing(make_listing("P2", price=200))
        params = {"sortBy": "price", "sortOrder": "asc"}
        assert _ids(await listing_service.search(params)) == ["P1", "P2"]

        await listing_service.update_listing("owner-1", "P1", ListingUpdateRequest(price=300))

        assert _ids(await listing_service.search(params)) == ["P2", "P1"]

    @pytest.mark.asyncio
    async def test_delete_invalidates(self, listing_service, store, make_listing, redis_view):
        """Test deleting a listing makes it unreachable through the cache."""
        await store.insert_listing(make_listing("P1"))
        await listing_service.get_listing("P1")

        result = await listing_service.delete_listing("owner-1", "P1")

        assert result["listingId"] == "P1"
        assert redis_view.exists(keys.listing_key("P1")) == 0
        with pytest.raises(NotFoundError):
            await listing_service.get_listing("P1")

    @pytest.mark.asyncio
    async def test_missing_listing(self, listing_service):
        """Test updates and deletes of unknown listings are not found."""
        with pytest.raises(NotFoundError):
            await listing_service.update_listing("owner-1", "nope", ListingUpdateRequest(price=1))
        with pytest.raises(NotFoundError):
            await listing_service.delete_listing("owner-1", "nope")

    @pytest.mark.asyncio
    async def test_non_owner_rejected_despite_stale_cache(
        self, listing_service, store, make_listing, redis_view
    ):
        """Test ownership is checked against the store, not a cached copy."""
        await store.insert_listing(make_listing("P1", created_by="owner-1"))
        forged = (await store.get_listing("P1")).to_document()
        forged["createdBy"] = "intruder"
        redis_view.set(keys.listing_key("P1"), json.dumps(forged))

        with pytest.raises(AuthorizationError):
            await listing_service.update_listing("intruder", "P1", ListingUpdateRequest(price=1))
        with pytest.raises(AuthorizationError):
            await listing_service.delete_listing("intruder", "P1")

        assert (await store.get_listing("P1")).price == 100000

    @pytest.mark.asyncio
    async def test_invalidation_failure_does_not_fail_mutation(
        self, listing_service, cache, store, make_listing, metrics
    ):
        """Test the committed update stands when the cache is unreachable."""
        await store.insert_listing(make_listing("P1"))

        with patch.object(cache, "delete_pattern", AsyncMock(side_effect=RuntimeError("boom"))):
            document = await listing_service.update_listing("owner-1", "P1", ListingUpdateRequest(price=7))

        assert document["price"] == 7
        assert (await store.get_listing("P1")).price == 7
        assert metrics.registry.get_sample_value(
            "cache_invalidations_total", {"trigger": "listing_changed", "result": "error"}
        ) == 1.0


class TestCacheInvalidator:
    """Test cases for CacheInvalidator."""

    @pytest.mark.asyncio
    async def test_listing_changed_targets(self, invalidator, redis_view):
        """Test the exact key and both patterns are erased."""
        redis_view.set(keys.listing_key("P1"), "{}")
        redis_view.set(keys.listing_key("P2"), "{}")
        redis_view.set(keys.LISTINGS_ALL_KEY, "[]")
        redis_view.set("search:x", "{}")
        redis_view.set(keys.favorites_key("u1"), "[]")

        results = await invalidator.listing_changed("P1")

        assert all(r.status is CacheStatus.DELETED for r in results)
        assert redis_view.keys("listings:*") == []
        assert redis_view.keys("search:*") == []
        assert redis_view.exists(keys.favorites_key("u1")) == 1

    @pytest.mark.asyncio
    async def test_filter_options_opt_in(self, cache, redis_view):
        """Test filter options are cleared only when configured."""
        redis_view.set(keys.FILTER_OPTIONS_KEY, "{}")

        await CacheInvalidator(cache).listing_created()
        assert redis_view.exists(keys.FILTER_OPTIONS_KEY) == 1

        await CacheInvalidator(cache, invalidate_filter_options=True).listing_created()
        assert redis_view.exists(keys.FILTER_OPTIONS_KEY) == 0

    @pytest.mark.asyncio
    async def test_failures_are_reported(self):
        """Test transport failures are returned rather than raised."""
        client = AsyncMock()
        client.delete.side_effect = RedisConnectionError("down")
        invalidator = CacheInvalidator(RedisCache(client=client))

        results = await invalidator.favorites_changed("u1")

        assert [r.status for r in results] == [CacheStatus.TRANSPORT_ERROR]
