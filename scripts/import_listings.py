#!/usr/bin/env python3
"""
Import property listings from a CSV export into the configured entity store.

Columns follow the public listing fields (id, title, type, price, state, city,
areaSqFt, bedrooms, bathrooms, amenities, furnished, availableFrom, listedBy,
tags, colorTheme, rating, isVerified, listingType). ``amenities`` and ``tags``
are ``|``-separated. Listing and search caches are cleared once the import
finishes so readers see the new rows immediately.
"""

import argparse
import asyncio
import csv
import json
from pathlib import Path
from typing import Any, Dict, Mapping
import sys
import os

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from pydantic import ValidationError as ModelValidationError  # noqa: E402

from shared.config import get_config  # noqa: E402
from shared.errors import ConflictError  # noqa: E402
from shared.logging import configure_logging, get_logger  # noqa: E402
from service_listings.app.cache.invalidator import CacheInvalidator  # noqa: E402
from service_listings.app.cache.redis_cache import RedisCache  # noqa: E402
from service_listings.app.main import create_entity_store  # noqa: E402
from service_listings.app.search.filters import LIST_SEPARATOR  # noqa: E402
from service_listings.app.store.models import Listing  # noqa: E402

logger = get_logger("listings.import")


def _split(raw: str) -> list:
    return [part.strip() for part in (raw or "").split(LIST_SEPARATOR) if part.strip()]


def row_to_listing(row: Mapping[str, str]) -> Listing:
    """Convert one CSV row into a listing; raises pydantic's ValidationError on bad data."""
    data: Dict[str, Any] = {
        "title": row.get("title"),
        "type": row.get("type"),
        "price": row.get("price"),
        "state": row.get("state"),
        "city": row.get("city"),
        "areaSqFt": row.get("areaSqFt"),
        "bedrooms": row.get("bedrooms"),
        "bathrooms": row.get("bathrooms"),
        "amenities": _split(row.get("amenities", "")),
        "furnished": row.get("furnished"),
        "availableFrom": row.get("availableFrom"),
        "listedBy": row.get("listedBy"),
        "tags": _split(row.get("tags", "")),
        "rating": row.get("rating") or 0,
        "isVerified": (row.get("isVerified") or "").strip().lower() == "true",
        "listingType": row.get("listingType"),
        "createdBy": None,
    }
    if row.get("id"):
        data["listingId"] = row["id"].strip()
    if row.get("colorTheme"):
        data["colorTheme"] = row["colorTheme"]
    return Listing.model_validate(data)


async def import_listings(csv_path: Path, *, dry_run: bool = False) -> dict:
    """Load ``csv_path`` into the store and return a summary."""
    config = get_config("listings", 5000)
    store = create_entity_store(config)
    cache = RedisCache(config.redis_url, default_ttl=config.cache_default_ttl)
    invalidator = CacheInvalidator(
        cache, invalidate_filter_options=config.invalidate_filter_options_on_write
    )

    summary = {"imported": 0, "duplicates": 0, "invalid": 0, "dry_run": dry_run}

    await store.start()
    await cache.start()
    try:
        with csv_path.open(newline="", encoding="utf-8") as handle:
            for line_number, row in enumerate(csv.DictReader(handle), start=2):
                try:
                    listing = row_to_listing(row)
                except ModelValidationError as exc:
                    summary["invalid"] += 1
                    logger.warning("Skipping invalid row", line=line_number, errors=exc.error_count())
                    continue

                if dry_run:
                    summary["imported"] += 1
                    continue

                try:
                    await store.insert_listing(listing)
                    summary["imported"] += 1
                except ConflictError:
                    summary["duplicates"] += 1
                    logger.info("Skipping existing listing", listing_id=listing.listing_id)

        if summary["imported"] and not dry_run:
            await invalidator.listing_created()
    finally:
        await cache.stop()
        await store.stop()

    return summary


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import property listings from a CSV file.")
    parser.add_argument("csv_path", type=Path, help="Path to the listings CSV")
    parser.add_argument("--dry-run", action="store_true", help="Validate rows without writing to the store")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    configure_logging("listings-import", os.getenv("LISTINGS_LOG_LEVEL", "info"))
    try:
        summary = asyncio.run(import_listings(args.csv_path, dry_run=args.dry_run))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[import-listings] failed: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        print("[import-listings] DRY RUN - no rows written")

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
