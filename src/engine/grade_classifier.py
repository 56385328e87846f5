"""
Card Comps - Grade Classifier

Assigns every correlated listing exactly one terminal bucket:
RAW, GRADE9, GRADE10 or EXCLUDED.

Rules (first match wins):
1. Bulk-listing marker in the title -> EXCLUDED (bulk_listing)
2. Tracked grade-10 marker in title or condition, no competing authority -> GRADE10
3. Tracked grade-9 marker in title or condition, no competing authority -> GRADE9
4. Any other grading evidence in title or condition -> EXCLUDED (untracked_grade)
5. Otherwise -> RAW

Bulk markers are checked against the title only. Condition fields on bulk
lots usually describe the best card in the lot, not the listing.
"""

from __future__ import annotations

import structlog

from src.config import GradeBucket, ReasonCode
from src.engine.grading import authority_evidence, has_marker
from src.models.listing import ClassifiedListing, CorrelatedListing
from src.utils.vocabulary import Vocabulary

logger = structlog.get_logger(__name__)

BULK_REASON = "bulk listing"
UNTRACKED_GRADE_REASON = "graded by untracked authority or ambiguous grade"


def _texts(listing: CorrelatedListing) -> list[str]:
    texts = [listing.normalized_title]
    if listing.source.condition_text:
        texts.append(listing.source.condition_text)
    return texts


def classify_listing(
    listing: CorrelatedListing,
    vocabulary: Vocabulary,
    proximity: int | None = None,
) -> ClassifiedListing:
    """
    Classify a correlated listing into its grade bucket.

    Args:
        listing: Resolved listing with an attached price.
        vocabulary: Loaded vocabulary tables.
        proximity: Grade-number window for ambiguous authority names
            (default: settings.GRADE_PROXIMITY_CHARS).

    Returns:
        ClassifiedListing. Classifying the same listing twice gives the same bucket.
    """
    texts = _texts(listing)
    bucket = GradeBucket.RAW
    reason: str | None = None
    code: ReasonCode | None = None
    rule = "raw"

    if has_marker(listing.normalized_title, vocabulary.bulk_markers):
        bucket, reason, code, rule = (
            GradeBucket.EXCLUDED, BULK_REASON, ReasonCode.BULK_LISTING, "bulk"
        )
    else:
        competing = next(
            (
                a for a in (
                    authority_evidence(t, vocabulary, proximity, competing_only=True)
                    for t in texts
                ) if a is not None
            ),
            None,
        )
        if competing is None and any(has_marker(t, vocabulary.grade10_markers) for t in texts):
            bucket, rule = GradeBucket.GRADE10, "grade10"
        elif competing is None and any(has_marker(t, vocabulary.grade9_markers) for t in texts):
            bucket, rule = GradeBucket.GRADE9, "grade9"
        elif competing is not None or any(
            authority_evidence(t, vocabulary, proximity) is not None for t in texts
        ):
            bucket, reason, code, rule = (
                GradeBucket.EXCLUDED,
                UNTRACKED_GRADE_REASON,
                ReasonCode.UNTRACKED_GRADE,
                "untracked_grade",
            )

    if bucket == GradeBucket.EXCLUDED:
        logger.info(
            "listing_excluded",
            title=listing.normalized_title,
            reason=code.value if code else None,
            source="grade_classifier",
        )
    else:
        logger.debug(
            "listing_classified",
            title=listing.normalized_title,
            bucket=bucket.value,
            rule=rule,
            source="grade_classifier",
        )

    return ClassifiedListing(
        **listing.model_dump(exclude={"source", "grade_bucket", "exclusion_reason", "reason_code"}),
        source=listing.source,
        grade_bucket=bucket,
        exclusion_reason=reason,
        reason_code=code,
    )
