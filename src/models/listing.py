"""
Card Comps - Listing Records

Every record handed between pipeline stages. All models are frozen: a stage
produces a new record instead of mutating its input, which keeps each stage
pure and re-derivable from the same inputs.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field

from src.config import GradeBucket, GradeToken, ReasonCode


class RawListing(BaseModel):
    """One listing as scraped. Produced by an external scraper, consumed once."""
    model_config = ConfigDict(frozen=True)

    title: str
    price_text: str = ""
    condition_text: str | None = None
    source_url: str | None = None
    item_id: str | None = None
    sold_date: str | None = None


class ExtractedFields(BaseModel):
    """Typed fields pulled out of a normalized title."""
    model_config = ConfigDict(frozen=True)

    subject_name_candidate: str | None = None
    year: int | None = None
    brand: str | None = None
    set_name: str | None = None
    card_number: str | None = None
    print_run: str | None = None
    parallel: str | None = None
    is_rookie: bool = False
    is_autograph: bool = False
    grade_token: GradeToken = GradeToken.NONE
    sport: str | None = None


class CardIdentity(NamedTuple):
    """Composite key identifying one collectible product."""
    subject: str
    year: int | None
    brand: str | None
    set_name: str | None
    card_number: str | None
    print_run: str | None

    @property
    def key(self) -> str:
        return "|".join("" if part is None else str(part) for part in self)


class ResolvedListing(BaseModel):
    """Extracted fields with the subject name resolved to its canonical form."""
    model_config = ConfigDict(frozen=True)

    source: RawListing
    normalized_title: str
    canonical_subject_name: str
    year: int | None = None
    brand: str | None = None
    set_name: str | None = None
    card_number: str | None = None
    print_run: str | None = None
    parallel: str | None = None
    is_rookie: bool = False
    is_autograph: bool = False
    grade_token: GradeToken = GradeToken.NONE
    sport: str | None = None

    @property
    def identity(self) -> CardIdentity:
        return CardIdentity(
            subject=self.canonical_subject_name,
            year=self.year,
            brand=self.brand,
            set_name=self.set_name,
            card_number=self.card_number,
            print_run=self.print_run,
        )


class CorrelatedListing(ResolvedListing):
    """A resolved listing bound to a price."""
    price: Decimal
    item_id: str | None = None


class ClassifiedListing(CorrelatedListing):
    """Terminal classification. Never reclassified after creation."""
    grade_bucket: GradeBucket
    exclusion_reason: str | None = None
    reason_code: ReasonCode | None = None


class SkippedListing(BaseModel):
    """A listing dropped before aggregation, with its machine-readable reason."""
    model_config = ConfigDict(frozen=True)

    title: str
    reason: ReasonCode
    detail: str | None = None


class PriceUpsert(BaseModel):
    """Delta sample applied to one CardPriceRecord."""
    model_config = ConfigDict(frozen=True)

    identity: CardIdentity
    bucket: GradeBucket
    price: Decimal
    sample_timestamp: datetime


# ---------------------------------------------------------------------------
# Offset-tagged page candidates (input to the positional correlator)
# ---------------------------------------------------------------------------

class TitleCandidate(NamedTuple):
    text: str
    offset: int


class PriceCandidate(NamedTuple):
    text: str
    price: Decimal
    offset: int


class ItemIdCandidate(NamedTuple):
    item_id: str
    offset: int


class PageCandidates(BaseModel):
    """Three independent candidate lists extracted from one scraped page."""
    model_config = ConfigDict(frozen=True)

    titles: list[TitleCandidate] = Field(default_factory=list)
    prices: list[PriceCandidate] = Field(default_factory=list)
    item_ids: list[ItemIdCandidate] = Field(default_factory=list)
    source_url: str | None = None
