"""
Card Comps - Card Price Record Store

Moves CardPriceStats between the aggregator and the card_price_records
table. The engine never touches the database; the CLI (or any other caller)
loads records before a batch and saves them after it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.engine.aggregator import CardPriceStats, RunningMean
from src.models.card_price import CardPriceRecord
from src.models.listing import CardIdentity

logger = structlog.get_logger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def stats_to_row(stats: CardPriceStats) -> CardPriceRecord:
    identity = stats.identity
    return CardPriceRecord(
        card_key=identity.key,
        subject=identity.subject,
        year=identity.year,
        brand=identity.brand,
        set_name=identity.set_name,
        card_number=identity.card_number,
        print_run=identity.print_run,
        summary_title=stats.summary_title or None,
        sport=stats.sport,
        raw_average_price=stats.raw_average_price,
        raw_sample_count=stats.raw.count,
        grade9_average_price=stats.grade9_average_price,
        grade9_sample_count=stats.grade9.count,
        grade10_price=stats.grade10_price,
        grade10_sold_at=stats.grade10_sold_at,
        multiplier=stats.multiplier,
        anomaly_flag=stats.anomaly_flag,
        anomaly_reasons=list(stats.anomaly_reasons),
        last_updated=stats.last_updated or datetime.now(timezone.utc),
    )


def row_to_stats(row: CardPriceRecord) -> CardPriceStats:
    return CardPriceStats(
        identity=CardIdentity(
            subject=row.subject,
            year=row.year,
            brand=row.brand,
            set_name=row.set_name,
            card_number=row.card_number,
            print_run=row.print_run,
        ),
        raw=RunningMean.from_average(row.raw_average_price, row.raw_sample_count),
        grade9=RunningMean.from_average(row.grade9_average_price, row.grade9_sample_count),
        grade10_price=row.grade10_price,
        grade10_sold_at=_as_utc(row.grade10_sold_at),
        last_updated=_as_utc(row.last_updated),
        sport=row.sport,
    )


async def load_records(
    session: AsyncSession,
    card_keys: Iterable[str] | None = None,
) -> list[CardPriceStats]:
    """
    Load stored statistics, optionally limited to the given identity keys.

    Args:
        session: Async database session.
        card_keys: Identity keys to load (default: all rows).

    Returns:
        CardPriceStats ready to seed an Aggregator or BatchProcessor.
    """
    stmt = select(CardPriceRecord)
    if card_keys is not None:
        keys = list(card_keys)
        if not keys:
            return []
        stmt = stmt.where(CardPriceRecord.card_key.in_(keys))

    result = await session.execute(stmt.order_by(CardPriceRecord.card_key))
    records = [row_to_stats(row) for row in result.scalars().all()]
    logger.info("card_price_records_loaded", count=len(records), source="store")
    return records


async def save_records(session: AsyncSession, records: Iterable[CardPriceStats]) -> int:
    """
    Upsert statistics into card_price_records and commit.

    Returns:
        Number of rows written.
    """
    count = 0
    for stats in records:
        await session.merge(stats_to_row(stats))
        count += 1

    await session.commit()

    logger.info("card_price_records_saved", count=count, source="store")
    return count
