"""Tests for running price statistics, grade-10 policy, anomalies, and partitioning."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

import pytest

from src.config import GradeBucket
from src.engine.aggregator import (
    GRADE9_ABOVE_GRADE10,
    RAW_ABOVE_GRADE10,
    Aggregator,
    CardPriceStats,
    RunningMean,
    partition_index,
    recompute,
    sample_timestamp,
)
from src.engine.grade_classifier import classify_listing
from src.models.listing import CardIdentity, ClassifiedListing, CorrelatedListing
from src.utils.vocabulary import Vocabulary

T0 = datetime(2026, 3, 1, tzinfo=timezone.utc)

IDENTITY = CardIdentity("Paul Skenes", 2024, "Topps", "Chrome", "#PS", None)


@pytest.fixture
def classified(
    vocabulary: Vocabulary, build_listing: Callable[..., CorrelatedListing]
) -> Callable[..., ClassifiedListing]:
    def _classified(title: str, price: str, **kwargs) -> ClassifiedListing:
        return classify_listing(build_listing(title, price=price, **kwargs), vocabulary)

    return _classified


class TestRunningMean:
    def test_mean_of_samples(self) -> None:
        mean = RunningMean().add(Decimal("10")).add(Decimal("20")).add(Decimal("33"))

        assert mean.count == 3
        assert mean.mean == Decimal("21")

    def test_empty_has_no_mean(self) -> None:
        assert RunningMean().mean is None

    def test_from_average(self) -> None:
        assert RunningMean.from_average(Decimal("12.50"), 4) == RunningMean(4, Decimal("50.00"))
        assert RunningMean.from_average(None, 0) == RunningMean()


class TestCardPriceStats:
    def test_anomaly_flag_and_multiplier(self) -> None:
        """Raw 50 vs grade-10 40: flagged, and the multiplier is still computed."""
        stats = (
            CardPriceStats(identity=IDENTITY)
            .with_sample(GradeBucket.RAW, Decimal("50"), T0)
            .with_sample(GradeBucket.GRADE10, Decimal("40"), T0)
        )

        assert stats.raw_average_price == Decimal("50.00")
        assert stats.multiplier == Decimal("0.80")
        assert stats.anomaly_flag is True
        assert RAW_ABOVE_GRADE10 in stats.anomaly_reasons

    def test_no_anomaly_in_normal_ordering(self) -> None:
        stats = (
            CardPriceStats(identity=IDENTITY)
            .with_sample(GradeBucket.RAW, Decimal("20"), T0)
            .with_sample(GradeBucket.GRADE9, Decimal("45"), T0)
            .with_sample(GradeBucket.GRADE10, Decimal("150"), T0)
        )

        assert stats.multiplier == Decimal("7.50")
        assert stats.anomaly_flag is False
        assert stats.anomaly_reasons == ()

    def test_grade9_above_grade10_reported_without_flag(self) -> None:
        stats = (
            CardPriceStats(identity=IDENTITY)
            .with_sample(GradeBucket.GRADE9, Decimal("200"), T0)
            .with_sample(GradeBucket.GRADE10, Decimal("150"), T0)
        )

        assert stats.anomaly_reasons == (GRADE9_ABOVE_GRADE10,)
        assert stats.anomaly_flag is False

    def test_multiplier_needs_both_prices(self) -> None:
        raw_only = CardPriceStats(identity=IDENTITY).with_sample(GradeBucket.RAW, Decimal("5"), T0)

        assert raw_only.multiplier is None

    def test_grade10_most_recent_wins(self) -> None:
        stats = (
            CardPriceStats(identity=IDENTITY)
            .with_sample(GradeBucket.GRADE10, Decimal("100"), T0)
            .with_sample(GradeBucket.GRADE10, Decimal("90"), T0 - timedelta(days=3))
        )

        assert stats.grade10_price == Decimal("100")
        assert stats.grade10_sold_at == T0

    def test_grade10_equal_timestamp_later_sample_wins(self) -> None:
        stats = (
            CardPriceStats(identity=IDENTITY)
            .with_sample(GradeBucket.GRADE10, Decimal("100"), T0)
            .with_sample(GradeBucket.GRADE10, Decimal("120"), T0)
        )

        assert stats.grade10_price == Decimal("120")

    def test_excluded_bucket_rejected(self) -> None:
        with pytest.raises(ValueError, match="not aggregated"):
            CardPriceStats(identity=IDENTITY).with_sample(GradeBucket.EXCLUDED, Decimal("1"), T0)


class TestAggregator:
    def test_apply_returns_upsert(self, classified: Callable[..., ClassifiedListing]) -> None:
        listing = classified("2024 Topps Chrome Paul Skenes RC #PS", "25.00")
        aggregator = Aggregator()

        upsert = aggregator.apply(listing, T0)

        assert upsert.identity == listing.identity
        assert upsert.bucket == GradeBucket.RAW
        assert upsert.price == Decimal("25.00")
        assert upsert.sample_timestamp == T0
        assert aggregator.get(listing.identity).raw.count == 1

    def test_seeded_records_are_extended(self, classified: Callable[..., ClassifiedListing]) -> None:
        listing = classified("2024 Topps Chrome Paul Skenes RC #PS", "30.00")
        seed = CardPriceStats(identity=listing.identity, raw=RunningMean(1, Decimal("10")))
        aggregator = Aggregator([seed])

        aggregator.apply(listing, T0)

        assert aggregator.get(listing.identity).raw_average_price == Decimal("20.00")

    def test_apply_is_atomic_swap(self, classified: Callable[..., ClassifiedListing]) -> None:
        listing = classified("2024 Topps Chrome Paul Skenes RC #PS", "30.00")
        aggregator = Aggregator()
        aggregator.apply(listing, T0)
        before = aggregator.get(listing.identity)

        aggregator.apply(listing, T0)

        assert before.raw.count == 1
        assert aggregator.get(listing.identity).raw.count == 2

    def test_excluded_listing_rejected(self, classified: Callable[..., ClassifiedListing]) -> None:
        listing = classified("Lot of 5 2024 Topps Chrome Paul Skenes", "30.00")

        with pytest.raises(ValueError, match="excluded"):
            Aggregator().apply(listing, T0)

    def test_unresolved_subject_rejected(self, classified: Callable[..., ClassifiedListing]) -> None:
        listing = classified("2024 Topps Chrome #15 /99", "30.00")

        with pytest.raises(ValueError, match="resolved subject"):
            Aggregator().apply(listing, T0)

    def test_recompute_matches_incremental(self, classified: Callable[..., ClassifiedListing]) -> None:
        samples = [
            (classified("2024 Topps Chrome Paul Skenes RC #PS", "10.00"), T0),
            (classified("2024 Topps Chrome Paul Skenes RC #PS", "20.00"), T0),
            (classified("2024 Topps Chrome Paul Skenes RC #PS PSA 10", "150.00"), T0),
            (classified("2024 Topps Chrome Paul Skenes RC #PS PSA 9", "60.00"), T0),
            (classified("Lot of 5 2024 Topps Chrome Paul Skenes", "30.00"), T0),
        ]
        aggregator = Aggregator()
        for listing, timestamp in samples:
            if listing.grade_bucket != GradeBucket.EXCLUDED:
                aggregator.apply(listing, timestamp)

        assert recompute(samples) == aggregator.records()

    def test_identity_splits_records(self, classified: Callable[..., ClassifiedListing]) -> None:
        aggregator = Aggregator()
        aggregator.apply(classified("2024 Topps Chrome Paul Skenes RC #PS /99", "100.00"), T0)
        aggregator.apply(classified("2024 Topps Chrome Paul Skenes RC #PS", "10.00"), T0)

        assert len(aggregator.records()) == 2

    def test_first_named_sport_sticks(self, classified: Callable[..., ClassifiedListing]) -> None:
        aggregator = Aggregator()
        unnamed = classified("2024 Topps Chrome Jane Doe RC #15", "10.00")
        aggregator.apply(unnamed, T0)
        assert aggregator.get(unnamed.identity).sport is None

        aggregator.apply(classified("2024 Topps Chrome Jane Doe RC #15 MLB", "12.00"), T0)
        aggregator.apply(classified("2024 Topps Chrome Jane Doe RC #15 NFL", "14.00"), T0)

        stats = aggregator.get(unnamed.identity)
        assert stats.raw.count == 3
        assert stats.sport == "Baseball"

    def test_record_summary_title(self, classified: Callable[..., ClassifiedListing]) -> None:
        listing = classified("2024 Topps Chrome Paul Skenes Gold Refractor RC #PS-1 /50", "90.00")
        aggregator = Aggregator()
        aggregator.apply(listing, T0)

        assert aggregator.get(listing.identity).summary_title == "2024 Topps Chrome Paul Skenes #PS-1 /50"


class TestSampleTimestamp:
    def test_sold_date_parsed(self, classified: Callable[..., ClassifiedListing]) -> None:
        listing = classified("2024 Topps Chrome Paul Skenes", "10.00", sold_date="Mar 5, 2026")

        assert sample_timestamp(listing, T0) == datetime(2026, 3, 5, tzinfo=timezone.utc)

    def test_sold_prefix_and_spacing_tolerated(self, classified: Callable[..., ClassifiedListing]) -> None:
        listing = classified("2024 Topps Chrome Paul Skenes", "10.00", sold_date="Sold  Sep 20, 2025")

        assert sample_timestamp(listing, T0) == datetime(2025, 9, 20, tzinfo=timezone.utc)

    def test_stale_sale_does_not_replace_recent_grade10(
        self, classified: Callable[..., ClassifiedListing]
    ) -> None:
        """An old sale applied last keeps its own sold date, not the batch time."""
        run_at = datetime(2026, 10, 1, tzinfo=timezone.utc)
        recent = classified("2024 Topps Chrome Paul Skenes PSA 10", "100.00", sold_date="Sep 25, 2026")
        stale = classified("2024 Topps Chrome Paul Skenes PSA 10", "300.00", sold_date="Sold  Jan 2, 2025")
        aggregator = Aggregator()

        aggregator.apply(recent, sample_timestamp(recent, run_at))
        aggregator.apply(stale, sample_timestamp(stale, run_at))

        stats = aggregator.get(recent.identity)
        assert stats.grade10_price == Decimal("100.00")
        assert stats.grade10_sold_at == datetime(2026, 9, 25, tzinfo=timezone.utc)

    @pytest.mark.parametrize("sold_date", [None, "", "sometime last week"])
    def test_fallback(self, classified: Callable[..., ClassifiedListing], sold_date: str | None) -> None:
        listing = classified("2024 Topps Chrome Paul Skenes", "10.00", sold_date=sold_date)

        assert sample_timestamp(listing, T0) == T0


class TestPartitionIndex:
    def test_stable_and_in_range(self) -> None:
        first = partition_index(IDENTITY, 4)

        assert 0 <= first < 4
        assert partition_index(IDENTITY, 4) == first

    def test_single_partition(self) -> None:
        assert partition_index(IDENTITY, 1) == 0

    def test_invalid_partition_count(self) -> None:
        with pytest.raises(ValueError, match="at least 1"):
            partition_index(IDENTITY, 0)
