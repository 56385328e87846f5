"""
Card Comps - Card Price Record Model

One row per card identity, holding the aggregated price statistics.
Rows are created on the first aggregated listing and updated in place;
nothing in the pipeline deletes them.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BOOLEAN, DECIMAL, INTEGER, JSON, TIMESTAMP, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class CardPriceRecord(Base):
    """
    Aggregated prices for one card identity.

    Primary key is the identity key: subject, year, brand, set, card number
    and print run joined with '|' (missing parts are empty strings).

    Averages are stored rounded to cents next to their sample counts; the
    running totals are rebuilt from the two when a batch is seeded.
    """

    __tablename__ = "card_price_records"

    card_key: Mapped[str] = mapped_column(
        String, primary_key=True, comment="subject|year|brand|set|card_number|print_run"
    )
    subject: Mapped[str] = mapped_column(String, nullable=False, comment="Canonical subject name")
    year: Mapped[int | None] = mapped_column(INTEGER, nullable=True)
    brand: Mapped[str | None] = mapped_column(String, nullable=True)
    set_name: Mapped[str | None] = mapped_column(String, nullable=True)
    card_number: Mapped[str | None] = mapped_column(String, nullable=True, comment="e.g. '#15'")
    print_run: Mapped[str | None] = mapped_column(String, nullable=True, comment="e.g. '/99'")
    summary_title: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Display title rebuilt from the identity"
    )
    sport: Mapped[str | None] = mapped_column(String, nullable=True)

    raw_average_price: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    raw_sample_count: Mapped[int] = mapped_column(INTEGER, nullable=False, default=0)
    grade9_average_price: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    grade9_sample_count: Mapped[int] = mapped_column(INTEGER, nullable=False, default=0)
    grade10_price: Mapped[Decimal | None] = mapped_column(
        DECIMAL(10, 2), nullable=True, comment="Most recent grade-10 sale, not an average"
    )
    grade10_sold_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="Sold date backing grade10_price"
    )
    multiplier: Mapped[Decimal | None] = mapped_column(
        DECIMAL(10, 2), nullable=True, comment="grade10_price / raw_average_price"
    )
    anomaly_flag: Mapped[bool] = mapped_column(
        BOOLEAN, nullable=False, default=False, comment="raw average above grade-10 price"
    )
    anomaly_reasons: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    last_updated: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        comment="Timestamp of the latest applied sample",
    )

    __table_args__ = (
        Index("ix_card_price_records_subject", "subject"),
        Index("ix_card_price_records_anomaly", "anomaly_flag"),
        Index("ix_card_price_records_sport", "sport"),
    )

    def __repr__(self) -> str:
        return (
            f"<CardPriceRecord card_key={self.card_key!r} raw={self.raw_average_price} "
            f"grade10={self.grade10_price} multiplier={self.multiplier}>"
        )
