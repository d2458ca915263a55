"""
PostgreSQL entity store for the Listings Service.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import asyncpg

from shared.errors import ConflictError, ExternalServiceError, ServiceError, ValidationError
from shared.logging import get_logger
from ..search.filters import ListingFilter
from .base import ARRAY_FIELDS, DISTINCT_FIELDS, SORTABLE_FIELDS, EntityStore
from .models import Listing, Recommendation, User, utcnow

LISTING_COLUMNS = (
    "listing_id", "title", "type", "price", "state", "city", "area_sq_ft",
    "bedrooms", "bathrooms", "amenities", "furnished", "available_from",
    "listed_by", "tags", "color_theme", "rating", "is_verified",
    "listing_type", "created_by", "created_at", "updated_at",
)

UPDATABLE_COLUMNS = frozenset(LISTING_COLUMNS) - {"listing_id", "created_by", "created_at", "updated_at"}

SORTABLE_COLUMNS = frozenset(SORTABLE_FIELDS.values())


def compile_filter(listing_filter: ListingFilter, start: int = 1) -> Tuple[str, List[Any]]:
    """Compile a filter into a WHERE clause and its positional arguments.

    Column names come only from ``LISTING_COLUMNS``; values are always bound
    as parameters.
    """
    clauses: List[str] = []
    args: List[Any] = []

    def bind(value: Any) -> str:
        args.append(value)
        return f"${start + len(args) - 1}"

    for column, value in sorted(listing_filter.equals.items()):
        _check_column(column)
        clauses.append(f"{column} = {bind(value)}")

    for column, bounds in sorted(listing_filter.ranges.items()):
        _check_column(column)
        if bounds.gte is not None:
            clauses.append(f"{column} >= {bind(bounds.gte)}")
        if bounds.lte is not None:
            clauses.append(f"{column} <= {bind(bounds.lte)}")

    for column, values in sorted(listing_filter.contains_all.items()):
        _check_column(column)
        clauses.append(f"{column} @> {bind(list(values))}::text[]")

    where = " AND ".join(clauses) if clauses else "TRUE"
    return where, args


def _check_column(column: str):
    if column not in LISTING_COLUMNS:
        raise ValidationError(f"Unknown listing field '{column}'")


class PostgresEntityStore(EntityStore):
    """asyncpg-backed entity store."""

    def __init__(self, dsn: str, *, min_size: int = 2, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.logger = get_logger("listings.store.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=30
            )
            await self._create_tables()
            self.logger.info("PostgreSQL entity store started")
        except (asyncpg.PostgresError, OSError) as e:
            self.logger.error("Failed to start PostgreSQL entity store", error=str(e))
            raise ExternalServiceError("postgres", str(e))

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL entity store stopped")

    async def health_check(self) -> bool:
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except (asyncpg.PostgresError, OSError):
            return False

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        if self.pool is None:
            raise ServiceError("PostgreSQL entity store is not started")
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except (asyncpg.PostgresError, OSError) as e:
            self.logger.error("PostgreSQL operation failed", error=str(e))
            raise ExternalServiceError("postgres", str(e)) from e

    async def _create_tables(self):
        async with self._connection() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS listings (
                    listing_id VARCHAR(64) PRIMARY KEY,
                    title TEXT NOT NULL,
                    type VARCHAR(100) NOT NULL,
                    price DOUBLE PRECISION NOT NULL,
                    state VARCHAR(100) NOT NULL,
                    city VARCHAR(100) NOT NULL,
                    area_sq_ft INTEGER NOT NULL,
                    bedrooms INTEGER NOT NULL,
                    bathrooms INTEGER NOT NULL,
                    amenities TEXT[] NOT NULL DEFAULT '{}',
                    furnished VARCHAR(20) NOT NULL,
                    available_from DATE NOT NULL,
                    listed_by VARCHAR(20) NOT NULL,
                    tags TEXT[] NOT NULL DEFAULT '{}',
                    color_theme VARCHAR(50) NOT NULL,
                    rating DOUBLE PRECISION NOT NULL DEFAULT 0,
                    is_verified BOOLEAN NOT NULL DEFAULT FALSE,
                    listing_type VARCHAR(10) NOT NULL,
                    created_by VARCHAR(64),
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)

            for column in ("type", "state", "city", "price", "area_sq_ft", "bedrooms",
                           "bathrooms", "furnished", "listed_by", "listing_type",
                           "rating", "is_verified", "created_by"):
                await conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_listings_{column} ON listings({column});"
                )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_listings_amenities ON listings USING GIN (amenities);"
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_listings_tags ON listings USING GIN (tags);"
            )

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id VARCHAR(64) PRIMARY KEY,
                    email VARCHAR(320) NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    favorites TEXT[] NOT NULL DEFAULT '{}',
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS recommendations (
                    user_id VARCHAR(64) NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
                    listing_id VARCHAR(64) NOT NULL,
                    recommended_by VARCHAR(64) NOT NULL,
                    recommended_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    PRIMARY KEY (user_id, listing_id, recommended_by)
                );
            """)

    # Listings

    async def find_listings(
        self,
        listing_filter: ListingFilter,
        sort_by: str,
        sort_order: str,
        skip: int,
        limit: int,
    ) -> List[Listing]:
        if sort_by not in SORTABLE_COLUMNS:
            raise ValidationError(f"Cannot sort by '{sort_by}'")
        direction = "DESC" if sort_order == "desc" else "ASC"

        where, args = compile_filter(listing_filter)
        limit_ref = f"${len(args) + 1}"
        offset_ref = f"${len(args) + 2}"
        query = (
            f"SELECT * FROM listings WHERE {where} "
            f"ORDER BY {sort_by} {direction}, listing_id ASC "
            f"LIMIT {limit_ref} OFFSET {offset_ref}"
        )

        async with self._connection() as conn:
            rows = await conn.fetch(query, *args, limit, skip)
        return [self._row_to_listing(row) for row in rows]

    async def count_listings(self, listing_filter: ListingFilter) -> int:
        where, args = compile_filter(listing_filter)
        async with self._connection() as conn:
            count = await conn.fetchval(f"SELECT COUNT(*) FROM listings WHERE {where}", *args)
        return count or 0

    async def distinct_listing_values(self, field: str) -> List[Any]:
        if field not in DISTINCT_FIELDS:
            raise ValidationError(f"Field '{field}' has no distinct-value enumeration")

        if field in ARRAY_FIELDS:
            query = f"SELECT DISTINCT unnest({field}) AS value FROM listings ORDER BY value"
        else:
            query = f"SELECT DISTINCT {field} AS value FROM listings WHERE {field} IS NOT NULL ORDER BY value"

        async with self._connection() as conn:
            rows = await conn.fetch(query)
        return [row["value"] for row in rows]

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT * FROM listings WHERE listing_id = $1", listing_id)
        return self._row_to_listing(row) if row else None

    async def all_listings(self) -> List[Listing]:
        async with self._connection() as conn:
            rows = await conn.fetch("SELECT * FROM listings ORDER BY created_at ASC, listing_id ASC")
        return [self._row_to_listing(row) for row in rows]

    async def get_listings_by_ids(self, listing_ids: Sequence[str]) -> List[Listing]:
        if not listing_ids:
            return []
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT * FROM listings WHERE listing_id = ANY($1::text[])",
                list(listing_ids),
            )
        return [self._row_to_listing(row) for row in rows]

    async def insert_listing(self, listing: Listing) -> Listing:
        columns = ", ".join(LISTING_COLUMNS)
        placeholders = ", ".join(f"${i}" for i in range(1, len(LISTING_COLUMNS) + 1))
        values = [getattr(listing, column) for column in LISTING_COLUMNS]

        async with self._connection() as conn:
            try:
                row = await conn.fetchrow(
                    f"INSERT INTO listings ({columns}) VALUES ({placeholders}) RETURNING *",
                    *values,
                )
            except asyncpg.UniqueViolationError:
                raise ConflictError(
                    "Listing id already exists",
                    details={"listing_id": listing.listing_id},
                ) from None

        self.logger.info("Listing inserted", listing_id=listing.listing_id)
        return self._row_to_listing(row)

    async def update_listing(self, listing_id: str, changes: Dict[str, Any]) -> Optional[Listing]:
        assignments: List[str] = []
        args: List[Any] = [listing_id]
        for column, value in sorted(changes.items()):
            if column not in UPDATABLE_COLUMNS:
                raise ValidationError(f"Field '{column}' cannot be updated")
            args.append(value)
            assignments.append(f"{column} = ${len(args)}")

        args.append(utcnow())
        assignments.append(f"updated_at = ${len(args)}")

        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"UPDATE listings SET {', '.join(assignments)} WHERE listing_id = $1 RETURNING *",
                *args,
            )
        return self._row_to_listing(row) if row else None

    async def delete_listing(self, listing_id: str) -> bool:
        async with self._connection() as conn:
            result = await conn.execute("DELETE FROM listings WHERE listing_id = $1", listing_id)
        return result == "DELETE 1"

    # Users

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE user_id = $1", user_id)
            if not row:
                return None
            recommendations = await self._fetch_recommendations(conn, user_id)
        return self._row_to_user(row, recommendations)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE email = $1", email)
            if not row:
                return None
            recommendations = await self._fetch_recommendations(conn, row["user_id"])
        return self._row_to_user(row, recommendations)

    async def insert_user(self, user: User) -> User:
        async with self._connection() as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO users (user_id, email, password_hash, favorites, created_at)
                    VALUES ($1, $2, $3, $4, $5)
                    """,
                    user.user_id, user.email, user.password_hash, list(user.favorites), user.created_at,
                )
            except asyncpg.UniqueViolationError:
                raise ConflictError("User already exists", details={"email": user.email}) from None
        return user

    async def add_favorite(self, user_id: str, listing_id: str) -> bool:
        async with self._connection() as conn:
            result = await conn.execute(
                """
                UPDATE users SET favorites = array_append(favorites, $2)
                WHERE user_id = $1 AND NOT ($2 = ANY(favorites))
                """,
                user_id, listing_id,
            )
        return result == "UPDATE 1"

    async def remove_favorite(self, user_id: str, listing_id: str) -> bool:
        async with self._connection() as conn:
            result = await conn.execute(
                """
                UPDATE users SET favorites = array_remove(favorites, $2)
                WHERE user_id = $1 AND $2 = ANY(favorites)
                """,
                user_id, listing_id,
            )
        return result == "UPDATE 1"

    async def add_recommendation(self, user_id: str, recommendation: Recommendation) -> bool:
        async with self._connection() as conn:
            result = await conn.execute(
                """
                INSERT INTO recommendations (user_id, listing_id, recommended_by, recommended_at)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (user_id, listing_id, recommended_by) DO NOTHING
                """,
                user_id, recommendation.listing_id, recommendation.recommended_by,
                recommendation.recommended_at,
            )
        return result == "INSERT 0 1"

    async def _fetch_recommendations(self, conn: asyncpg.Connection, user_id: str) -> List[Recommendation]:
        rows = await conn.fetch(
            """
            SELECT listing_id, recommended_by, recommended_at FROM recommendations
            WHERE user_id = $1 ORDER BY recommended_at ASC
            """,
            user_id,
        )
        return [Recommendation(**dict(row)) for row in rows]

    def _row_to_listing(self, row) -> Listing:
        return Listing.model_validate(dict(row))

    def _row_to_user(self, row, recommendations: List[Recommendation]) -> User:
        return User(
            user_id=row["user_id"],
            email=row["email"],
            password_hash=row["password_hash"],
            favorites=list(row["favorites"] or []),
            recommendations_received=recommendations,
            created_at=row["created_at"],
        )
