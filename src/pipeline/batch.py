"""
Card Comps - Batch Processor

Runs one bounded batch of listings through the whole pipeline:

    RawListing / PageCandidates
      -> correlate (pages only)
      -> normalize -> extract -> resolve -> parse price -> classify
      -> dedupe
      -> aggregate (partitioned by card identity)
      -> BatchResult(classified, upserts, records, skipped, summary)

Per-listing stages are pure and run on a thread pool with input order kept.
Aggregation is split into partitions by identity hash; each partition has its
own Aggregator and is owned by one worker, so no statistics are shared
between threads. Upserts are returned in input order.

A batch can be cancelled between listings with ``should_stop``. Listings
already applied stay applied; the summary reports the cancellation.
"""

from __future__ import annotations

from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Iterable, NamedTuple, Sequence

import structlog
from pydantic import BaseModel, Field

from src.config import UNRESOLVED_SUBJECT, GradeBucket, ReasonCode, settings
from src.engine.aggregator import Aggregator, CardPriceStats, partition_index, sample_timestamp
from src.engine.correlator import correlate_page
from src.engine.dedup import dedupe
from src.engine.extractor import extract_fields
from src.engine.grade_classifier import classify_listing
from src.engine.name_resolver import resolve_name
from src.engine.normalizer import normalize_title
from src.engine.summary import listing_summary_title
from src.models.listing import (
    ClassifiedListing,
    CorrelatedListing,
    PageCandidates,
    PriceUpsert,
    RawListing,
    SkippedListing,
)
from src.utils.text import parse_price
from src.utils.vocabulary import ConfigurationError, Vocabulary

logger = structlog.get_logger(__name__)

_DUPLICATE_REASONS = frozenset(
    {ReasonCode.DUPLICATE_ITEM_ID, ReasonCode.DUPLICATE_URL, ReasonCode.DUPLICATE_TITLE_PRICE}
)


class BatchSummary(BaseModel):
    listings_in: int = 0
    listings_excluded: int = 0
    exclusion_reasons: dict[str, int] = Field(default_factory=dict)
    duplicates_removed: int = 0
    listings_aggregated: int = 0
    anomalies_detected: int = 0
    cancelled: bool = False


class BatchResult(NamedTuple):
    classified: list[ClassifiedListing]
    upserts: list[PriceUpsert]
    records: dict[str, CardPriceStats]
    skipped: list[SkippedListing]
    summary: BatchSummary


def process_listing(
    raw: RawListing,
    vocabulary: Vocabulary,
    proximity: int | None = None,
) -> ClassifiedListing | SkippedListing:
    """
    Normalize, extract, resolve, price and classify one listing.

    Pure: the same listing and vocabulary always give the same result.
    """
    price = parse_price(raw.price_text)
    if price is None:
        logger.warning(
            "listing_price_unparseable",
            title=raw.title,
            price_text=raw.price_text,
            source="batch",
        )
        return SkippedListing(
            title=raw.title,
            reason=ReasonCode.UNPARSEABLE_PRICE,
            detail=f"price text {raw.price_text!r}",
        )

    normalized = normalize_title(raw.title)
    fields = extract_fields(normalized, vocabulary)
    subject = resolve_name(fields.subject_name_candidate, normalized, vocabulary)

    correlated = CorrelatedListing(
        source=raw,
        normalized_title=normalized,
        canonical_subject_name=subject,
        **fields.model_dump(exclude={"subject_name_candidate"}),
        price=price,
        item_id=raw.item_id,
    )
    classified = classify_listing(correlated, vocabulary, proximity)
    logger.debug(
        "listing_processed",
        summary_title=listing_summary_title(classified),
        sport=classified.sport,
        bucket=classified.grade_bucket.value,
        source="batch",
    )
    return classified


class BatchProcessor:
    """
    Pipeline runner for one batch.

    Args:
        vocabulary: Loaded vocabulary tables, shared read-only by all workers.
        records: Existing card statistics to seed the aggregation with.
        window: Correlation window (default: settings.CORRELATION_WINDOW_CHARS).
        proximity: Grade proximity gate (default: settings.GRADE_PROXIMITY_CHARS).
    """

    def __init__(
        self,
        vocabulary: Vocabulary,
        records: Iterable[CardPriceStats] = (),
        window: int | None = None,
        proximity: int | None = None,
    ) -> None:
        self.vocabulary = vocabulary
        self.records = {r.identity.key: r for r in records}
        self.window = window if window is not None else settings.CORRELATION_WINDOW_CHARS
        self.proximity = proximity if proximity is not None else settings.GRADE_PROXIMITY_CHARS

    def _validate(self, workers: int) -> None:
        if self.window < 0:
            raise ConfigurationError(f"correlation window must be non-negative, got {self.window}")
        if self.proximity < 0:
            raise ConfigurationError(f"grade proximity must be non-negative, got {self.proximity}")
        if workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {workers}")

    def _aggregate_partition(
        self,
        items: list[tuple[int, ClassifiedListing]],
        seed: list[CardPriceStats],
        run_at: datetime,
        should_stop: Callable[[], bool] | None,
    ) -> tuple[list[tuple[int, PriceUpsert]], dict[str, CardPriceStats], bool]:
        aggregator = Aggregator(seed)
        upserts: list[tuple[int, PriceUpsert]] = []
        for position, listing in items:
            if should_stop is not None and should_stop():
                return upserts, aggregator.records(), True
            upserts.append((position, aggregator.apply(listing, sample_timestamp(listing, run_at))))
        return upserts, aggregator.records(), False

    def run(
        self,
        listings: Sequence[RawListing] = (),
        pages: Sequence[PageCandidates] = (),
        run_at: datetime | None = None,
        workers: int | None = None,
        should_stop: Callable[[], bool] | None = None,
    ) -> BatchResult:
        """
        Process a batch of structured listings and unstructured pages.

        Args:
            listings: Structured listings, in scrape order.
            pages: Offset-tagged candidate lists, one per unstructured page.
            run_at: Batch timestamp, used for listings without a sold date.
            workers: Thread count (default: settings.AGGREGATION_WORKERS).
            should_stop: Polled between listings during aggregation.

        Returns:
            BatchResult.

        Raises:
            ConfigurationError: If the window, proximity or worker count is invalid.
        """
        worker_count = workers if workers is not None else settings.AGGREGATION_WORKERS
        self._validate(worker_count)
        batch_time = run_at or datetime.now(timezone.utc)

        skipped: list[SkippedListing] = []
        raw_listings = list(listings)
        listings_in = len(raw_listings)
        for page in pages:
            correlation = correlate_page(page, self.window)
            raw_listings.extend(correlation.listings)
            skipped.extend(correlation.skipped)
            listings_in += len(page.titles)

        logger.info(
            "batch_started",
            listings=len(listings),
            pages=len(pages),
            workers=worker_count,
            vocabulary_version=self.vocabulary.version,
            source="batch",
        )

        with ThreadPoolExecutor(max_workers=worker_count) as executor:
            outcomes = list(
                executor.map(
                    lambda raw: process_listing(raw, self.vocabulary, self.proximity),
                    raw_listings,
                )
            )

        classified: list[ClassifiedListing] = []
        for outcome in outcomes:
            if isinstance(outcome, SkippedListing):
                skipped.append(outcome)
            else:
                classified.append(outcome)

        deduped = dedupe(classified)
        skipped.extend(deduped.duplicates)

        eligible: list[ClassifiedListing] = []
        for listing in deduped.kept:
            if listing.grade_bucket == GradeBucket.EXCLUDED:
                skipped.append(
                    SkippedListing(
                        title=listing.source.title,
                        reason=listing.reason_code or ReasonCode.UNTRACKED_GRADE,
                        detail=listing.exclusion_reason,
                    )
                )
            elif listing.canonical_subject_name == UNRESOLVED_SUBJECT:
                skipped.append(
                    SkippedListing(
                        title=listing.source.title,
                        reason=ReasonCode.UNRESOLVED_SUBJECT,
                        detail="no subject name in title",
                    )
                )
            else:
                eligible.append(listing)

        upserts, records, cancelled = self._aggregate(eligible, batch_time, worker_count, should_stop)

        touched = {u.identity.key for u in upserts}
        reasons = Counter(s.reason.value for s in skipped if s.reason not in _DUPLICATE_REASONS)
        summary = BatchSummary(
            listings_in=listings_in,
            listings_excluded=sum(reasons.values()),
            exclusion_reasons=dict(sorted(reasons.items())),
            duplicates_removed=len(deduped.duplicates),
            listings_aggregated=len(upserts),
            anomalies_detected=sum(1 for key in touched if records[key].anomaly_flag),
            cancelled=cancelled,
        )

        log = logger.warning if cancelled else logger.info
        log("batch_complete", **summary.model_dump(), source="batch")
        return BatchResult(
            classified=classified,
            upserts=upserts,
            records=records,
            skipped=skipped,
            summary=summary,
        )

    def _aggregate(
        self,
        eligible: list[ClassifiedListing],
        run_at: datetime,
        workers: int,
        should_stop: Callable[[], bool] | None,
    ) -> tuple[list[PriceUpsert], dict[str, CardPriceStats], bool]:
        partitions: list[list[tuple[int, ClassifiedListing]]] = [[] for _ in range(workers)]
        for position, listing in enumerate(eligible):
            partitions[partition_index(listing.identity, workers)].append((position, listing))

        seeds: list[list[CardPriceStats]] = [[] for _ in range(workers)]
        for stats in self.records.values():
            seeds[partition_index(stats.identity, workers)].append(stats)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self._aggregate_partition, items, seed, run_at, should_stop)
                for items, seed in zip(partitions, seeds)
            ]
            results = [f.result() for f in futures]

        records = dict(self.records)
        positioned: list[tuple[int, PriceUpsert]] = []
        cancelled = False
        for partition_upserts, partition_records, partition_cancelled in results:
            positioned.extend(partition_upserts)
            records.update(partition_records)
            cancelled = cancelled or partition_cancelled

        positioned.sort(key=lambda item: item[0])
        return [u for _, u in positioned], records, cancelled
