"""
Card Comps - Price Aggregator

Per-card price statistics built from classified listings.

- RAW and GRADE9: running sample count and total; the mean is derived, so no
  individual samples are kept.
- GRADE10: a single representative observation, the most recent by sold date.
  A sample replaces the stored one unless it is strictly older; equal
  timestamps go to the later listing in batch order.
- Multiplier = grade10_price / raw_average_price, only when both exist and
  the raw average is positive.
- Anomalies (raw or grade-9 average above the grade-10 price) are logged and
  flagged, never corrected.

Each apply() builds a new immutable CardPriceStats and swaps it in, so a
listing either fully updates its card or not at all.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, NamedTuple

import structlog
from dateutil import parser as date_parser

from src.config import UNRESOLVED_SUBJECT, GradeBucket
from src.engine.summary import identity_summary_title
from src.models.listing import CardIdentity, ClassifiedListing, PriceUpsert

logger = structlog.get_logger(__name__)

_TWO_DP = Decimal("0.01")
_ZERO = Decimal("0")

RAW_ABOVE_GRADE10 = "raw_above_grade10"
GRADE9_ABOVE_GRADE10 = "grade9_above_grade10"


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(_TWO_DP, rounding=ROUND_HALF_UP)


class RunningMean(NamedTuple):
    count: int = 0
    total: Decimal = _ZERO

    @property
    def mean(self) -> Decimal | None:
        if self.count == 0:
            return None
        return self.total / self.count

    def add(self, price: Decimal) -> RunningMean:
        return RunningMean(self.count + 1, self.total + price)

    @classmethod
    def from_average(cls, average: Decimal | None, count: int) -> RunningMean:
        """Rebuild from a persisted (average, count) pair."""
        if average is None or count <= 0:
            return cls()
        return cls(count, average * count)


class CardPriceStats(NamedTuple):
    """Immutable statistics for one card identity."""
    identity: CardIdentity
    raw: RunningMean = RunningMean()
    grade9: RunningMean = RunningMean()
    grade10_price: Decimal | None = None
    grade10_sold_at: datetime | None = None
    last_updated: datetime | None = None
    sport: str | None = None

    @property
    def summary_title(self) -> str:
        return identity_summary_title(self.identity)

    @property
    def raw_average_price(self) -> Decimal | None:
        mean = self.raw.mean
        return _quantize(mean) if mean is not None else None

    @property
    def grade9_average_price(self) -> Decimal | None:
        mean = self.grade9.mean
        return _quantize(mean) if mean is not None else None

    @property
    def multiplier(self) -> Decimal | None:
        raw_mean = self.raw.mean
        if self.grade10_price is None or raw_mean is None or raw_mean <= _ZERO:
            return None
        return _quantize(self.grade10_price / raw_mean)

    @property
    def anomaly_reasons(self) -> tuple[str, ...]:
        if self.grade10_price is None:
            return ()
        reasons = []
        raw_mean = self.raw.mean
        if raw_mean is not None and raw_mean > self.grade10_price:
            reasons.append(RAW_ABOVE_GRADE10)
        grade9_mean = self.grade9.mean
        if grade9_mean is not None and grade9_mean > self.grade10_price:
            reasons.append(GRADE9_ABOVE_GRADE10)
        return tuple(reasons)

    @property
    def anomaly_flag(self) -> bool:
        """A raw card should never average above its perfect-grade counterpart."""
        return RAW_ABOVE_GRADE10 in self.anomaly_reasons

    def with_sample(self, bucket: GradeBucket, price: Decimal, sample_timestamp: datetime) -> CardPriceStats:
        """New stats with one sample applied. Never mutates self."""
        latest = sample_timestamp
        if self.last_updated is not None and self.last_updated > latest:
            latest = self.last_updated

        if bucket == GradeBucket.RAW:
            return self._replace(raw=self.raw.add(price), last_updated=latest)
        if bucket == GradeBucket.GRADE9:
            return self._replace(grade9=self.grade9.add(price), last_updated=latest)
        if bucket == GradeBucket.GRADE10:
            if self.grade10_sold_at is not None and sample_timestamp < self.grade10_sold_at:
                return self._replace(last_updated=latest)
            return self._replace(
                grade10_price=price,
                grade10_sold_at=sample_timestamp,
                last_updated=latest,
            )
        raise ValueError(f"bucket {bucket.value} is not aggregated")


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def sample_timestamp(listing: ClassifiedListing, fallback: datetime) -> datetime:
    """
    Timestamp of a listing's sale: its parsed sold date, else ``fallback``.

    Scraped dates carry surrounding text ("Sold  Sep 20, 2025"), so they
    are parsed fuzzily. Naive datetimes are taken as UTC.
    """
    sold_date = listing.source.sold_date
    if sold_date and sold_date.strip():
        try:
            return _utc(date_parser.parse(sold_date.strip(), fuzzy=True))
        except (ValueError, OverflowError):
            logger.debug(
                "sold_date_unparseable",
                sold_date=sold_date,
                title=listing.normalized_title,
                source="aggregator",
            )
    return _utc(fallback)


def partition_index(identity: CardIdentity, partitions: int) -> int:
    """Stable partition for an identity: SHA-1 of its key modulo ``partitions``."""
    if partitions < 1:
        raise ValueError("partitions must be at least 1")
    digest = hashlib.sha1(identity.key.encode("utf-8")).hexdigest()
    return int(digest, 16) % partitions


class Aggregator:
    """
    Owns the CardPriceStats of a set of card identities.

    Not shared between threads: the batch processor gives each partition its
    own Aggregator.
    """

    def __init__(self, records: Iterable[CardPriceStats] = ()) -> None:
        self._stats: dict[str, CardPriceStats] = {r.identity.key: r for r in records}

    def get(self, identity: CardIdentity) -> CardPriceStats | None:
        return self._stats.get(identity.key)

    def records(self) -> dict[str, CardPriceStats]:
        return dict(self._stats)

    def apply(self, listing: ClassifiedListing, sample_timestamp: datetime) -> PriceUpsert:
        """
        Apply one classified listing to its card's statistics.

        Raises:
            ValueError: If the listing is excluded or has no resolved subject.
        """
        if listing.grade_bucket == GradeBucket.EXCLUDED:
            raise ValueError("excluded listings are not aggregated")
        if listing.canonical_subject_name == UNRESOLVED_SUBJECT:
            raise ValueError("listings without a resolved subject are not aggregated")

        identity = listing.identity
        timestamp = _utc(sample_timestamp)
        current = self._stats.get(identity.key) or CardPriceStats(identity=identity)
        updated = current.with_sample(listing.grade_bucket, listing.price, timestamp)
        # First listing to name a sport sets it for the card
        if updated.sport is None and listing.sport is not None:
            updated = updated._replace(sport=listing.sport)
        self._stats[identity.key] = updated

        if updated.anomaly_reasons and updated.anomaly_reasons != current.anomaly_reasons:
            logger.warning(
                "price_anomaly_detected",
                card_key=identity.key,
                reasons=list(updated.anomaly_reasons),
                raw_average=str(updated.raw_average_price),
                grade9_average=str(updated.grade9_average_price),
                grade10_price=str(updated.grade10_price),
                multiplier=str(updated.multiplier),
                source="aggregator",
            )

        logger.debug(
            "price_sample_applied",
            card_key=identity.key,
            bucket=listing.grade_bucket.value,
            price=str(listing.price),
            source="aggregator",
        )
        return PriceUpsert(
            identity=identity,
            bucket=listing.grade_bucket,
            price=listing.price,
            sample_timestamp=timestamp,
        )


def recompute(samples: Iterable[tuple[ClassifiedListing, datetime]]) -> dict[str, CardPriceStats]:
    """
    Exact statistics rebuilt from a full (listing, timestamp) source list.

    Skips listings that apply() would reject. Used for audits and to check
    incremental results.
    """
    aggregator = Aggregator()
    for listing, timestamp in samples:
        if listing.grade_bucket == GradeBucket.EXCLUDED:
            continue
        if listing.canonical_subject_name == UNRESOLVED_SUBJECT:
            continue
        aggregator.apply(listing, timestamp)
    return aggregator.records()
