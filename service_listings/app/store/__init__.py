"""
Entity store package for the Listings Service.

Defines the storage contract used by the service plus PostgreSQL and
in-memory implementations.
"""

from .base import EntityStore
from .memory import InMemoryEntityStore
from .postgres import PostgresEntityStore

__all__ = ["EntityStore", "InMemoryEntityStore", "PostgresEntityStore"]
