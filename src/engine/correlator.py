"""
Card Comps - Positional Correlator

Pairs titles with prices and item ids when a scraped page yields three
independent, offset-tagged candidate lists and the markup cannot be trusted
to group them.

For each title, in source order, the nearest price by absolute character
offset is attached if it lies within the correlation window; item ids are
matched the same way, independently. Greedy per title, not globally optimal:
a price stays available to every other title.

Fail-closed: a title with no price inside the window is dropped with a
reason. It is never given a more distant price, even when it is the only
title left, because a wrong price silently corrupts the averages.
"""

from __future__ import annotations

from typing import NamedTuple, Sequence, TypeVar

import structlog

from src.config import ReasonCode, settings
from src.models.listing import (
    ItemIdCandidate,
    PageCandidates,
    PriceCandidate,
    RawListing,
    SkippedListing,
    TitleCandidate,
)

logger = structlog.get_logger(__name__)

_C = TypeVar("_C", PriceCandidate, ItemIdCandidate)


class CorrelationResult(NamedTuple):
    """Listings with an attached price, plus titles dropped for lack of one."""
    listings: list[RawListing]
    skipped: list[SkippedListing]


def nearest_within(offset: int, candidates: Sequence[_C], window: int) -> tuple[_C, int] | None:
    """
    Candidate with minimum |offset distance|, if that distance is <= window.

    Distance ties go to the candidate seen first in source order.
    """
    best: tuple[_C, int] | None = None
    for candidate in sorted(candidates, key=lambda c: c.offset):
        distance = abs(candidate.offset - offset)
        if distance > window:
            continue
        if best is None or distance < best[1]:
            best = (candidate, distance)
    return best


def correlate(
    titles: Sequence[TitleCandidate],
    prices: Sequence[PriceCandidate],
    item_ids: Sequence[ItemIdCandidate] = (),
    window: int | None = None,
) -> CorrelationResult:
    """
    Attach the nearest in-window price and item id to every title.

    Args:
        titles: Title candidates with source offsets.
        prices: Price candidates with source offsets.
        item_ids: Item id candidates with source offsets.
        window: Max offset distance (default: settings.CORRELATION_WINDOW_CHARS).

    Returns:
        CorrelationResult with RawListings in title source order.

    Raises:
        ValueError: If window is negative.
    """
    max_distance = window if window is not None else settings.CORRELATION_WINDOW_CHARS
    if max_distance < 0:
        raise ValueError("window must be non-negative")

    listings: list[RawListing] = []
    skipped: list[SkippedListing] = []

    for title in sorted(titles, key=lambda t: t.offset):
        price_hit = nearest_within(title.offset, prices, max_distance)
        if price_hit is None:
            logger.warning(
                "correlation_no_price_in_window",
                title=title.text,
                offset=title.offset,
                window=max_distance,
                source="correlator",
            )
            skipped.append(
                SkippedListing(
                    title=title.text,
                    reason=ReasonCode.CORRELATION_FAILED,
                    detail=f"no price within {max_distance} chars of offset {title.offset}",
                )
            )
            continue

        price, price_distance = price_hit
        item_hit = nearest_within(title.offset, item_ids, max_distance)
        item_id = item_hit[0].item_id if item_hit else None

        logger.debug(
            "correlation_matched",
            title=title.text,
            price=price.text,
            price_distance=price_distance,
            item_id=item_id,
            source="correlator",
        )
        listings.append(
            RawListing(
                title=title.text,
                price_text=price.text,
                item_id=item_id,
                source_url=settings.ITEM_URL_TEMPLATE.format(item_id=item_id) if item_id else None,
            )
        )

    logger.info(
        "correlation_complete",
        titles=len(titles),
        prices=len(prices),
        item_ids=len(item_ids),
        matched=len(listings),
        dropped=len(skipped),
        source="correlator",
    )
    return CorrelationResult(listings=listings, skipped=skipped)


def correlate_page(page: PageCandidates, window: int | None = None) -> CorrelationResult:
    """Correlate one page's candidate lists. No state is shared across pages."""
    logger.debug("correlating_page", url=page.source_url, source="correlator")
    return correlate(page.titles, page.prices, page.item_ids, window)
