"""
Card Comps - Summary Titles

A canonical display title rebuilt from extracted fields, so every listing of
the same card reads the same regardless of how the seller wrote it:

    year, brand + set, parallel, subject, "auto", card number, print run

Missing parts are skipped. The brand is dropped when the set name already
starts with it ("Bowman's Best"), and an unresolved subject never appears.
"""

from __future__ import annotations

from src.config import UNRESOLVED_SUBJECT
from src.models.listing import CardIdentity, ResolvedListing


def _product_name(brand: str | None, set_name: str | None) -> str | None:
    if brand and set_name and set_name.lower().startswith(brand.lower()):
        return set_name
    parts = [p for p in (brand, set_name) if p]
    return " ".join(parts) or None


def build_summary_title(
    subject: str | None,
    year: int | None = None,
    brand: str | None = None,
    set_name: str | None = None,
    parallel: str | None = None,
    is_autograph: bool = False,
    card_number: str | None = None,
    print_run: str | None = None,
) -> str:
    """
    Join the known card fields into one display title.

    Returns:
        The summary title; an empty string when no field is known.
    """
    parts: list[str] = []
    if year is not None:
        parts.append(str(year))
    product = _product_name(brand, set_name)
    if product:
        parts.append(product)
    if parallel and parallel.lower() != "base":
        parts.append(parallel)
    if subject and subject != UNRESOLVED_SUBJECT:
        parts.append(subject)
    if is_autograph:
        parts.append("auto")
    if card_number:
        parts.append("#" + card_number.lstrip("#").strip())
    if print_run:
        parts.append(print_run)
    return " ".join(parts)


def listing_summary_title(listing: ResolvedListing) -> str:
    """Summary title of one listing, parallel and autograph included."""
    return build_summary_title(
        subject=listing.canonical_subject_name,
        year=listing.year,
        brand=listing.brand,
        set_name=listing.set_name,
        parallel=listing.parallel,
        is_autograph=listing.is_autograph,
        card_number=listing.card_number,
        print_run=listing.print_run,
    )


def identity_summary_title(identity: CardIdentity) -> str:
    """Summary title of a card identity (no parallel or autograph: those are not identity)."""
    return build_summary_title(
        subject=identity.subject,
        year=identity.year,
        brand=identity.brand,
        set_name=identity.set_name,
        card_number=identity.card_number,
        print_run=identity.print_run,
    )
