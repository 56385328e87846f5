"""
Card Comps - Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- The packaged vocabulary, loaded once per session
- A listing builder that runs a title through normalize/extract/resolve
- Async in-memory database session (aiosqlite)
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Callable

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.engine.extractor import extract_fields
from src.engine.name_resolver import resolve_name
from src.engine.normalizer import normalize_title
from src.models.base import Base
from src.models.listing import CorrelatedListing, RawListing
from src.utils.vocabulary import Vocabulary, load_vocabulary


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)


# ---------------------------------------------------------------------------
# Vocabulary & listing fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def vocabulary() -> Vocabulary:
    """The packaged default vocabulary (src/data/vocabulary.json)."""
    return load_vocabulary()


@pytest.fixture
def build_listing(vocabulary: Vocabulary) -> Callable[..., CorrelatedListing]:
    """Factory: raw title -> CorrelatedListing with the given price."""

    def _build(
        title: str,
        price: str = "25.00",
        condition_text: str | None = None,
        item_id: str | None = None,
        source_url: str | None = None,
        sold_date: str | None = None,
    ) -> CorrelatedListing:
        raw = RawListing(
            title=title,
            price_text=f"${price}",
            condition_text=condition_text,
            item_id=item_id,
            source_url=source_url,
            sold_date=sold_date,
        )
        normalized = normalize_title(title)
        fields = extract_fields(normalized, vocabulary)
        return CorrelatedListing(
            source=raw,
            normalized_title=normalized,
            canonical_subject_name=resolve_name(
                fields.subject_name_candidate, normalized, vocabulary
            ),
            **fields.model_dump(exclude={"subject_name_candidate"}),
            price=Decimal(price),
            item_id=item_id,
        )

    return _build


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def mock_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Async database session using aiosqlite in-memory.

    Creates a fresh database for each test, ensuring isolation.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session

    await engine.dispose()


# ---------------------------------------------------------------------------
# Utility Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    """Current timestamp for tests."""
    return datetime.now(timezone.utc)
