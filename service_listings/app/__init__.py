"""
Listings Service package for the Listings Platform.

This package serves property listings, favorites and recommendations
behind a Redis cache. It provides:

- app.main: API surface for listings, search, favorites, recommendations and auth.
- app.cache: Redis cache store, key namespace, cache-aside reads and invalidation.
- app.search: Query filter builder and paginated search engine.
- app.store: Entity store interface with PostgreSQL and in-memory implementations.
- app.services: Read and write paths per resource.
- app.auth: JWT identity provider and password hashing.

Guidelines:
- The service is stateless; rely on external cache/DB.
- The store is authoritative; the cache is best-effort and TTL-bounded.
- Invalidate only after the store mutation has been applied.
"""
