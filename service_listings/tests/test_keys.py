"""
Unit tests for the cache key namespace.
"""

from fnmatch import fnmatch

from service_listings.app.cache import keys
from service_listings.app.search.engine import SearchQuery


class TestKeys:
    """Test cases for cache key derivation."""

    def test_listing_keys_are_swept_by_collection_pattern(self):
        """Test single-listing and collection keys share the listings pattern."""
        assert fnmatch(keys.listing_key("PROP1234"), keys.LISTINGS_PATTERN)
        assert fnmatch(keys.LISTINGS_ALL_KEY, keys.LISTINGS_PATTERN)

    def test_search_and_filter_keys_are_separate(self):
        """Test filter options are not swept by listing mutation patterns."""
        for pattern in keys.listing_mutation_patterns():
            assert not fnmatch(keys.FILTER_OPTIONS_KEY, pattern)
        assert fnmatch(keys.search_key({"a": 1}), keys.SEARCH_PATTERN)

    def test_user_keys(self):
        """Test per-user keys embed the user id."""
        assert keys.favorites_key("u1") == "user:u1:favorites"
        assert keys.recommendations_key("u1") == "user:u1:recommendations"

    def test_search_key_ignores_mapping_order(self):
        """Test canonicalization sorts keys."""
        assert keys.search_key({"a": 1, "b": [1, 2]}) == keys.search_key({"b": [1, 2], "a": 1})

    def test_search_key_distinguishes_values(self):
        """Test different queries produce different keys."""
        assert keys.search_key({"page": 1}) != keys.search_key({"page": 2})

    def test_equivalent_queries_share_a_key(self):
        """Test defaults, parameter order and unknown params do not change the key."""
        variants = [
            {"city": "Pune", "amenities": "gym|pool"},
            {"amenities": "pool|gym", "city": "Pune", "page": "1", "limit": "10"},
            {"city": "Pune", "amenities": "gym|pool", "sortBy": "price", "sortOrder": "asc"},
            {"city": "Pune", "amenities": "gym|pool", "utm_source": "mail"},
        ]

        derived = {keys.search_key(SearchQuery.from_params(v).canonical()) for v in variants}

        assert len(derived) == 1

    def test_date_values_serialize(self):
        """Test non-JSON-native values still produce a stable key."""
        query = SearchQuery.from_params({"availableFrom": "2025-01-01"}).canonical()

        assert keys.search_key(query) == keys.search_key(query)
        assert "2025-01-01" in keys.canonical_query(query)
