"""
Card Comps - Offset-Tagged Candidate Extraction

Pulls three independent candidate lists out of a scraped results page:
titles, dollar prices, and item ids, each tagged with its character offset
in the page source. The lists are not paired here; the positional
correlator does that.

Fetching the page is the caller's job. This module only reads text.
"""

from __future__ import annotations

import html
import re
from decimal import Decimal
from typing import Sequence

import structlog

from src.config import settings
from src.models.listing import ItemIdCandidate, PageCandidates, PriceCandidate, TitleCandidate
from src.utils.text import parse_price

logger = structlog.get_logger(__name__)

# Generic result-title anchors. Group 1 is the title text.
DEFAULT_TITLE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"<h3[^>]*>([^<]+)</h3>", re.IGNORECASE),
    re.compile(r"<span[^>]*class=\"[^\"]*s-item__title[^\"]*\"[^>]*>([^<]+)</span>", re.IGNORECASE),
    re.compile(r"<a[^>]*class=\"[^\"]*title[^\"]*\"[^>]*>([^<]+)</a>", re.IGNORECASE),
)

_PRICE = re.compile(r"\$[\d,]+\.?\d*")
_ITEM_ID = re.compile(r"(?:itm/|item/)(\d{10,})")


def extract_titles(
    source_text: str,
    title_patterns: Sequence[re.Pattern[str]] | None = None,
    min_length: int | None = None,
) -> list[TitleCandidate]:
    """
    Title candidates in source order, one per offset.

    Text is HTML-unescaped and whitespace-collapsed; titles shorter than
    ``min_length`` (default: settings.MIN_TITLE_LENGTH) are skipped.
    """
    patterns = title_patterns if title_patterns is not None else DEFAULT_TITLE_PATTERNS
    shortest = min_length if min_length is not None else settings.MIN_TITLE_LENGTH

    by_offset: dict[int, TitleCandidate] = {}
    for pattern in patterns:
        for m in pattern.finditer(source_text):
            text = " ".join(html.unescape(m.group(1)).split())
            if len(text) < shortest:
                continue
            offset = m.start(1)
            # The first pattern to claim an offset keeps it
            by_offset.setdefault(offset, TitleCandidate(text=text, offset=offset))
    return [by_offset[k] for k in sorted(by_offset)]


def extract_prices(
    source_text: str,
    price_min: Decimal | None = None,
    price_max: Decimal | None = None,
) -> list[PriceCandidate]:
    """Dollar amounts within [price_min, price_max], in source order."""
    lo = price_min if price_min is not None else settings.PRICE_MIN
    hi = price_max if price_max is not None else settings.PRICE_MAX
    if lo > hi:
        raise ValueError("price_min must not exceed price_max")

    prices: list[PriceCandidate] = []
    for m in _PRICE.finditer(source_text):
        value = parse_price(m.group(0))
        if value is None or not lo <= value <= hi:
            continue
        prices.append(PriceCandidate(text=m.group(0), price=value, offset=m.start()))
    return prices


def extract_item_ids(source_text: str) -> list[ItemIdCandidate]:
    """Marketplace item ids from 'itm/<digits>' or 'item/<digits>' links."""
    return [
        ItemIdCandidate(item_id=m.group(1), offset=m.start())
        for m in _ITEM_ID.finditer(source_text)
    ]


def extract_candidates(
    source_text: str,
    title_patterns: Sequence[re.Pattern[str]] | None = None,
    source_url: str | None = None,
) -> PageCandidates:
    """
    Extract all three offset-tagged candidate lists from one page.

    Args:
        source_text: Raw page source.
        title_patterns: Regexes whose group 1 is a title (default: DEFAULT_TITLE_PATTERNS).
        source_url: URL the page was fetched from, kept for logging.

    Returns:
        PageCandidates ready for correlate_page().
    """
    candidates = PageCandidates(
        titles=extract_titles(source_text, title_patterns),
        prices=extract_prices(source_text),
        item_ids=extract_item_ids(source_text),
        source_url=source_url,
    )
    logger.info(
        "page_candidates_extracted",
        url=source_url,
        titles=len(candidates.titles),
        prices=len(candidates.prices),
        item_ids=len(candidates.item_ids),
        source="candidates",
    )
    return candidates
