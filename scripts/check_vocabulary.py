"""
Card Comps - Vocabulary Check Script

Validates a vocabulary JSON file and prints its table sizes and version.
Run this after editing a table and before deploying it; the batch refuses to
start on an invalid file anyway, this just fails earlier.

Usage:
    python scripts/check_vocabulary.py
    python scripts/check_vocabulary.py path/to/vocabulary.json
    python scripts/check_vocabulary.py path/to/vocabulary.json --title "2024 Topps Chrome JR Smith #15 /99 PSA 10"
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.config import settings
from src.engine.summary import listing_summary_title
from src.models.listing import RawListing
from src.pipeline.batch import process_listing
from src.utils.vocabulary import ConfigurationError, Vocabulary, load_vocabulary


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Validate a Card Comps vocabulary file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/check_vocabulary.py
  python scripts/check_vocabulary.py custom_vocabulary.json --title "2023 Prizm Wembanyama RC #136"
""",
    )
    parser.add_argument(
        "path",
        type=Path,
        nargs="?",
        default=settings.VOCABULARY_PATH,
        help=f"Vocabulary JSON file (default: {settings.VOCABULARY_PATH}).",
    )
    parser.add_argument(
        "--title",
        action="append",
        default=[],
        help="Sample title to extract and classify with this vocabulary (repeatable).",
    )
    return parser.parse_args()


def describe(vocabulary: Vocabulary) -> None:
    print(f"version:            {vocabulary.version}")
    print(f"brands:             {len(vocabulary.brands)}")
    print(f"sets:               {len(vocabulary.sets)}")
    print(f"parallels:          {len(vocabulary.parallels)}")
    print(f"subject overrides:  {len(vocabulary.subject_overrides)}")
    print(f"bulk markers:       {len(vocabulary.bulk_markers)}")
    print(f"authorities:        {len(vocabulary.authorities)}")
    print(f"stop words:         {len(vocabulary.stop_words)}")
    print(f"sports:             {len(vocabulary.sports)}")


_PREVIEW_FIELDS = (
    "year",
    "brand",
    "set_name",
    "card_number",
    "print_run",
    "parallel",
    "is_rookie",
    "is_autograph",
    "grade_token",
    "sport",
)


def preview(title: str, vocabulary: Vocabulary) -> None:
    # Price is irrelevant to extraction and classification; any valid one will do
    listing = process_listing(RawListing(title=title, price_text="$1.00"), vocabulary)
    print()
    print(f"title:       {title}")
    print(f"normalized:  {listing.normalized_title}")
    print(f"subject:     {listing.canonical_subject_name}")
    print(f"summary:     {listing_summary_title(listing)}")
    for name in _PREVIEW_FIELDS:
        value = getattr(listing, name)
        print(f"{name + ':':<13}{getattr(value, 'value', value)}")
    print(f"bucket:      {listing.grade_bucket.value}")
    if listing.exclusion_reason:
        print(f"excluded:    {listing.exclusion_reason}")


def main() -> int:
    args = parse_args()
    try:
        vocabulary = load_vocabulary(args.path)
    except ConfigurationError as e:
        print(f"INVALID: {e}", file=sys.stderr)
        return 1

    print(f"OK: {args.path}")
    describe(vocabulary)
    for title in args.title:
        preview(title, vocabulary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
