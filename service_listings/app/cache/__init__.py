"""
Cache package for the Listings Service.

Provides the Redis-backed JSON cache store, the key namespace, the
cache-aside read helper and the mutation-triggered invalidator. Entries
are never authoritative; loss or staleness is bounded by TTL and explicit
invalidation.
"""
