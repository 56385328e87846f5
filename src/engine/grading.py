"""
Card Comps - Grade Evidence Detection

Word-boundary detection of grade markers and grading-authority names, shared
by the field extractor (grade token) and the grade classifier (bucket).

A bare grade number is never evidence on its own. Card numbers, years and
print runs are full of 9s and 10s, so an ambiguous authority name only counts
when a grade number sits within the proximity window around it.
"""

from __future__ import annotations

import re

import structlog

from src.config import GradeToken, settings
from src.utils.vocabulary import Authority, CompiledEntry, Vocabulary

logger = structlog.get_logger(__name__)

_GRADE_NUMBER = re.compile(r"(?<![\d/#.])(?:10|[1-9](?:\.5)?)(?![\d/])")


def has_marker(text: str, markers: tuple[CompiledEntry, ...]) -> bool:
    """True when any marker occurs as a whole word."""
    return any(regex.search(text) for regex, _, _ in markers)


def _grade_number_near(text: str, start: int, end: int, proximity: int) -> bool:
    lo = max(0, start - proximity)
    hi = min(len(text), end + proximity)
    # Scan the whole text so the lookarounds see past the window edges
    for m in _GRADE_NUMBER.finditer(text):
        if m.start() < lo or m.end() > hi:
            continue
        if m.end() <= start or m.start() >= end:
            return True
    return False


def authority_evidence(
    text: str,
    vocabulary: Vocabulary,
    proximity: int | None = None,
    competing_only: bool = False,
) -> Authority | None:
    """
    Return the earliest authority that counts as grading evidence in ``text``.

    Authorities flagged ``requires_grade`` need a grade number within
    ``proximity`` characters of the name; all others count on a whole-word
    name match alone.

    Args:
        text: Title or condition text.
        vocabulary: Loaded vocabulary tables.
        proximity: Window in characters (default: settings.GRADE_PROXIMITY_CHARS).
        competing_only: Ignore the tracked authority and generic grading terms.
    """
    window = proximity if proximity is not None else settings.GRADE_PROXIMITY_CHARS
    if window < 0:
        raise ValueError("proximity must be non-negative")

    best: tuple[int, Authority] | None = None
    for authority in vocabulary.authorities:
        if competing_only and (authority.tracked or authority.generic):
            continue
        for m in authority.regex.finditer(text):
            if authority.requires_grade and not _grade_number_near(
                text, m.start(), m.end(), window
            ):
                continue
            if best is None or m.start() < best[0]:
                best = (m.start(), authority)
            break
    return best[1] if best else None


def detect_grade_token(
    text: str,
    vocabulary: Vocabulary,
    proximity: int | None = None,
) -> GradeToken:
    """
    Single grade token for a text, highest-precedence evidence first.

    Order: tracked grade-10 (no competing authority), tracked grade-9 (no
    competing authority), any other authority evidence, raw keyword, none.
    """
    competing = authority_evidence(text, vocabulary, proximity, competing_only=True)
    if competing is None:
        if has_marker(text, vocabulary.grade10_markers):
            return GradeToken.GRADE10
        if has_marker(text, vocabulary.grade9_markers):
            return GradeToken.GRADE9
    if competing is not None or authority_evidence(text, vocabulary, proximity) is not None:
        return GradeToken.OTHER_COMPANY
    if has_marker(text, vocabulary.raw_keywords):
        return GradeToken.RAW
    return GradeToken.NONE
