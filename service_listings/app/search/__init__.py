"""
Search package for the Listings Service.

Builds structured filters from query strings and runs paginated,
sorted searches whose composite results are cached.
"""
