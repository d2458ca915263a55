"""
Unit tests for RedisCache.
"""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError

from service_listings.app.cache.redis_cache import CacheStatus, RedisCache


class TestRedisCache:
    """Test cases for RedisCache."""

    @pytest.fixture
    def broken_client(self):
        """Client whose every call fails at the transport layer."""
        client = AsyncMock()
        error = RedisConnectionError("connection refused")
        client.get.side_effect = error
        client.set.side_effect = error
        client.delete.side_effect = error
        client.ping.side_effect = error
        client.scan_iter = MagicMock(side_effect=error)
        return client

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache, redis_view):
        """Test values round-trip as JSON with the default expiry."""
        result = await cache.set("listings:all", [{"listingId": "P1"}])

        assert result.status is CacheStatus.STORED
        assert await cache.get("listings:all") == [{"listingId": "P1"}]
        assert 0 < redis_view.ttl("listings:all") <= 3600

    @pytest.mark.asyncio
    async def test_set_with_custom_ttl(self, cache, redis_view):
        """Test explicit TTL overrides the default."""
        await cache.set("filters:all", {"types": []}, ttl=60)

        assert 0 < redis_view.ttl("filters:all") <= 60

    @pytest.mark.asyncio
    async def test_lookup_miss(self, cache):
        """Test absent key is classified as a miss."""
        result = await cache.lookup("listings:item:missing")

        assert result.status is CacheStatus.MISS
        assert result.hit is False
        assert result.failed is False

    @pytest.mark.asyncio
    async def test_empty_collections_are_hits(self, cache):
        """Test cached empty values are distinguishable from a miss."""
        await cache.set("user:u1:favorites", [])

        result = await cache.lookup("user:u1:favorites")

        assert result.hit is True
        assert result.value == []

    @pytest.mark.asyncio
    async def test_set_unserializable_value(self, cache, redis_view):
        """Test non-JSON values are rejected without touching Redis."""
        result = await cache.set("listings:all", {"bad": object()})

        assert result.status is CacheStatus.SERIALIZATION_ERROR
        assert redis_view.exists("listings:all") == 0

    @pytest.mark.asyncio
    async def test_corrupt_payload(self, cache, redis_view):
        """Test undecodable payloads degrade to a miss."""
        redis_view.set("listings:all", "{not json")

        result = await cache.lookup("listings:all")

        assert result.status is CacheStatus.SERIALIZATION_ERROR
        assert await cache.get("listings:all") is None

    @pytest.mark.asyncio
    async def test_delete(self, cache, redis_view):
        """Test single key deletion reports removed count."""
        redis_view.set("listings:item:P1", json.dumps({"listingId": "P1"}))

        result = await cache.delete("listings:item:P1")
        again = await cache.delete("listings:item:P1")

        assert result.status is CacheStatus.DELETED
        assert result.count == 1
        assert again.status is CacheStatus.DELETED
        assert again.count == 0

    @pytest.mark.asyncio
    async def test_delete_pattern(self, cache, redis_view):
        """Test pattern deletion removes only matching keys."""
        redis_view.set("search:aaa", "{}")
        redis_view.set("search:bbb", "{}")
        redis_view.set("filters:all", "{}")

        result = await cache.delete_pattern("search:*")

        assert result.status is CacheStatus.DELETED
        assert result.count == 2
        assert redis_view.keys("search:*") == []
        assert redis_view.exists("filters:all") == 1

    @pytest.mark.asyncio
    async def test_delete_pattern_no_matches(self, cache):
        """Test pattern deletion with nothing to delete."""
        result = await cache.delete_pattern("search:*")

        assert result.status is CacheStatus.DELETED
        assert result.count == 0

    @pytest.mark.asyncio
    async def test_transport_errors_never_raise(self, broken_client):
        """Test every operation degrades when Redis is unreachable."""
        cache = RedisCache(client=broken_client)

        assert (await cache.lookup("k")).status is CacheStatus.TRANSPORT_ERROR
        assert await cache.get("k") is None
        assert (await cache.set("k", {"a": 1})).status is CacheStatus.TRANSPORT_ERROR
        assert (await cache.delete("k")).status is CacheStatus.TRANSPORT_ERROR
        assert (await cache.delete_pattern("k*")).status is CacheStatus.TRANSPORT_ERROR
        assert await cache.health_check() is False

    @pytest.mark.asyncio
    async def test_start_tolerates_unreachable_redis(self, broken_client):
        """Test startup does not fail when Redis is down."""
        cache = RedisCache(client=broken_client)

        await cache.start()

        broken_client.ping.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_not_started(self):
        """Test operations before start report a transport error."""
        cache = RedisCache("redis://localhost:6379/0")

        result = await cache.lookup("k")

        assert result.status is CacheStatus.TRANSPORT_ERROR
        assert result.error == "cache not started"

    @pytest.mark.asyncio
    async def test_stop_leaves_injected_client_open(self, cache, fake_redis):
        """Test stop only closes clients the cache created itself."""
        await cache.stop()

        assert cache.redis is fake_redis

    @pytest.mark.asyncio
    async def test_operation_metrics(self, cache, metrics):
        """Test outcomes are counted per operation."""
        await cache.lookup("missing")
        await cache.set("present", 1)
        await cache.lookup("present")

        registry = metrics.registry
        assert registry.get_sample_value(
            "cache_operations_total", {"operation": "get", "result": "miss"}
        ) == 1.0
        assert registry.get_sample_value(
            "cache_operations_total", {"operation": "get", "result": "hit"}
        ) == 1.0
        assert registry.get_sample_value(
            "cache_operations_total", {"operation": "set", "result": "stored"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_health_check(self, cache):
        """Test health check against a live client."""
        assert await cache.health_check() is True

    @pytest.mark.asyncio
    async def test_get_cache_stats(self):
        """Test statistics include key count, default TTL and hit rate."""
        client = AsyncMock()
        client.info.return_value = {"redis_version": "7.2.0", "keyspace_hits": 3, "keyspace_misses": 1}
        client.dbsize.return_value = 5
        cache = RedisCache(client=client)

        stats = await cache.get_cache_stats()

        assert stats["keys"] == 5
        assert stats["default_ttl"] == 3600
        assert stats["hit_rate"] == 0.75

    @pytest.mark.asyncio
    async def test_get_cache_stats_unreachable(self, broken_client):
        """Test statistics are empty when Redis is down."""
        broken_client.info.side_effect = RedisConnectionError("down")
        cache = RedisCache(client=broken_client)

        assert await cache.get_cache_stats() == {}

    def test_requires_url_or_client(self):
        """Test construction without a connection source fails."""
        with pytest.raises(ValueError):
            RedisCache()
