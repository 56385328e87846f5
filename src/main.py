"""
Card Comps - Application Entrypoint

Runs one batch over a JSON file of scraped listings (and optionally a JSON
file of unstructured result pages) and prints the batch summary as JSON.

Run via:
    python -m src.main listings.json
    python -m src.main listings.json --pages pages.json --workers 4
    python -m src.main listings.json --database   # seed from and save to DATABASE_URL

listings.json: a list of objects with RawListing fields
    (title, price_text, condition_text, source_url, item_id, sold_date).
pages.json: a list of objects, either {"source_text": ..., "source_url": ...}
    for raw page source, or pre-extracted {"titles": ..., "prices": ..., "item_ids": ...}.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config import settings
from src.engine.aggregator import CardPriceStats
from src.models.base import Base
from src.models.listing import PageCandidates, RawListing
from src.pipeline.batch import BatchProcessor, BatchResult
from src.pipeline.store import load_records, save_records
from src.scraper.candidates import extract_candidates
from src.utils.vocabulary import ConfigurationError, load_vocabulary


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Logs go to stderr so stdout carries only the summary.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # Configure stdlib logging first (for third-party libraries)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Input loading
# ---------------------------------------------------------------------------


def _read_json_list(path: Path) -> list[Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"cannot read {path}: {e}") from e
    if not isinstance(data, list):
        raise ConfigurationError(f"{path} must contain a JSON list")
    return data


def load_listings(path: Path) -> list[RawListing]:
    try:
        return [RawListing.model_validate(item) for item in _read_json_list(path)]
    except ValidationError as e:
        raise ConfigurationError(f"invalid listing in {path}: {e}") from e


def load_pages(path: Path) -> list[PageCandidates]:
    pages: list[PageCandidates] = []
    for item in _read_json_list(path):
        if not isinstance(item, dict):
            raise ConfigurationError(f"{path}: each page must be a JSON object")
        if "source_text" in item:
            pages.append(extract_candidates(item["source_text"], source_url=item.get("source_url")))
            continue
        try:
            pages.append(PageCandidates.model_validate(item))
        except ValidationError as e:
            raise ConfigurationError(f"invalid page in {path}: {e}") from e
    return pages


def summary_json(result: BatchResult) -> str:
    return json.dumps(result.summary.model_dump(), indent=2)


# ---------------------------------------------------------------------------
# Database Setup
# ---------------------------------------------------------------------------


def create_db_engine() -> tuple[Any, async_sessionmaker[AsyncSession]]:
    """
    Create SQLAlchemy async engine and session factory from settings.DATABASE_URL.

    Returns:
        (engine, session_factory) tuple.
    """
    logger = structlog.get_logger(__name__)
    logger.info("database_engine_initializing", database_url=settings.DATABASE_URL)

    engine = create_async_engine(settings.DATABASE_URL, echo=False, pool_pre_ping=True)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine, session_factory


async def run_with_database(
    processor_args: dict[str, Any],
    run_kwargs: dict[str, Any],
) -> BatchResult:
    """Seed the batch from stored records, run it, and save the touched records."""
    logger = structlog.get_logger(__name__)
    engine, session_factory = create_db_engine()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with session_factory() as session:
            seed: list[CardPriceStats] = await load_records(session)

        processor = BatchProcessor(records=seed, **processor_args)
        result = processor.run(**run_kwargs)

        touched = {u.identity.key for u in result.upserts}
        async with session_factory() as session:
            await save_records(session, (result.records[key] for key in sorted(touched)))
        return result
    except Exception as e:
        logger.error(
            "database_batch_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Classify and aggregate scraped card listings into price records.",
    )
    parser.add_argument("listings", type=Path, help="JSON file with a list of listings.")
    parser.add_argument(
        "--pages",
        type=Path,
        default=None,
        help="JSON file with unstructured result pages to correlate.",
    )
    parser.add_argument(
        "--vocabulary",
        type=Path,
        default=None,
        help=f"Vocabulary JSON file (default: {settings.VOCABULARY_PATH}).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help=f"Worker threads (default: {settings.AGGREGATION_WORKERS}).",
    )
    parser.add_argument(
        "--database",
        action="store_true",
        help="Load existing records from DATABASE_URL and save updated ones.",
    )
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """
    CLI entrypoint.

    Returns:
        Process exit code: 0 on success, 2 on configuration errors.
    """
    args = parse_args(argv)
    _configure_logging(log_level=args.log_level)
    logger = structlog.get_logger(__name__)

    try:
        vocabulary = load_vocabulary(args.vocabulary)
        listings = load_listings(args.listings)
        pages = load_pages(args.pages) if args.pages else []

        processor_args = {"vocabulary": vocabulary}
        run_kwargs = {"listings": listings, "pages": pages, "workers": args.workers}
        if args.database:
            result = asyncio.run(run_with_database(processor_args, run_kwargs))
        else:
            result = BatchProcessor(**processor_args).run(**run_kwargs)
    except ConfigurationError as e:
        logger.error("card_comps_configuration_error", error=str(e))
        return 2

    print(summary_json(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
