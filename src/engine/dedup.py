"""
Card Comps - Deduplicator

Collapses repeated scrapes of the same sale before aggregation.

Keys, most specific first:
1. item id
2. normalized source URL (scheme/host lower-cased, query, fragment and
   trailing slash dropped)
3. normalized title + price

Each listing is compared on its most specific available key: a listing with
an item id is only a duplicate of another listing with the same item id (two
sales at the same price are still two sales). A listing without an item id
falls through to its URL, and one with neither to title + price. The
earliest listing of a duplicate set is kept; order is the scrape order.
"""

from __future__ import annotations

from decimal import Decimal
from typing import NamedTuple, Sequence, TypeVar
from urllib.parse import urlsplit, urlunsplit

import structlog

from src.config import ReasonCode
from src.models.listing import CorrelatedListing, SkippedListing

logger = structlog.get_logger(__name__)

_L = TypeVar("_L", bound=CorrelatedListing)


class DedupResult(NamedTuple):
    kept: list
    duplicates: list[SkippedListing]


def normalize_url(url: str | None) -> str | None:
    """Canonical form of a listing URL, or None for blank input."""
    if not url or not url.strip():
        return None
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


def title_price_key(title: str, price: Decimal) -> str:
    """Case- and whitespace-insensitive title joined with the price at 2dp."""
    return f"{' '.join(title.lower().split())}|{price.quantize(Decimal('0.01'))}"


def dedupe(listings: Sequence[_L]) -> DedupResult:
    """
    Drop duplicate listings, keeping the earliest of each set.

    Args:
        listings: Correlated (or classified) listings in scrape order.

    Returns:
        DedupResult(kept in input order, duplicates with reason codes).
    """
    seen_item_ids: set[str] = set()
    seen_urls: set[str] = set()
    seen_title_prices: set[str] = set()

    kept: list[_L] = []
    duplicates: list[SkippedListing] = []

    for listing in listings:
        item_id = listing.item_id or listing.source.item_id
        url = normalize_url(listing.source.source_url)
        title_price = title_price_key(listing.normalized_title, listing.price)

        if item_id:
            code = ReasonCode.DUPLICATE_ITEM_ID if item_id in seen_item_ids else None
            detail = f"item id {item_id}"
        elif url:
            code = ReasonCode.DUPLICATE_URL if url in seen_urls else None
            detail = f"url {url}"
        else:
            code = ReasonCode.DUPLICATE_TITLE_PRICE if title_price in seen_title_prices else None
            detail = f"title and price {title_price}"

        if code is not None:
            logger.debug(
                "duplicate_listing",
                title=listing.normalized_title,
                reason=code.value,
                source="dedup",
            )
            duplicates.append(
                SkippedListing(title=listing.source.title, reason=code, detail=detail)
            )
            continue

        if item_id:
            seen_item_ids.add(item_id)
        if url:
            seen_urls.add(url)
        seen_title_prices.add(title_price)
        kept.append(listing)

    if duplicates:
        logger.info(
            "duplicates_removed",
            listings_in=len(listings),
            kept=len(kept),
            duplicates=len(duplicates),
            source="dedup",
        )
    return DedupResult(kept=kept, duplicates=duplicates)
