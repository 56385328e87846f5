"""
Card Comps - Name Resolver

Maps an extracted subject-name candidate to its canonical form.

Order is fixed and the override table always wins:
1. Exact case-insensitive lookup in the override table. Several names cannot
   be recovered from title text at all (single surnames, nicknames), so no
   heuristic may run before this lookup.
2. Light formatting: drop possessive "'s", normalize suffixes, title-case.
3. Empty candidate: the UNRESOLVED marker, never an empty string, so
   aggregation can exclude the listing instead of bucketing it under a
   blank key.
"""

from __future__ import annotations

import re

import structlog

from src.config import UNRESOLVED_SUBJECT
from src.utils.text import title_case_name
from src.utils.vocabulary import Vocabulary, override_key

logger = structlog.get_logger(__name__)

_POSSESSIVE = re.compile(r"(?<=[A-Za-z])'s\b", re.IGNORECASE)
_SUFFIX_PERIOD = re.compile(r"\b(Jr|Sr)\.(?=\s|$)", re.IGNORECASE)


def _fix_punctuation(name: str) -> str:
    name = _POSSESSIVE.sub("", name)
    # "Jr." and "Jr" become the same token before casing adds the period back
    name = _SUFFIX_PERIOD.sub(r"\1", name)
    return " ".join(name.split())


def resolve_name(candidate: str | None, normalized_title: str, vocabulary: Vocabulary) -> str:
    """
    Resolve a subject-name candidate to its canonical form.

    Args:
        candidate: Subject-name candidate from the extractor (may be None).
        normalized_title: The normalized title the candidate came from.
        vocabulary: Loaded vocabulary tables (override table).

    Returns:
        Canonical subject name, or UNRESOLVED_SUBJECT.
    """
    if not candidate or not candidate.strip():
        logger.info(
            "subject_unresolved",
            title=normalized_title,
            source="name_resolver",
        )
        return UNRESOLVED_SUBJECT

    override = vocabulary.subject_overrides.get(override_key(candidate))
    if override is not None:
        logger.debug(
            "subject_override_hit",
            candidate=candidate,
            canonical=override,
            source="name_resolver",
        )
        return override

    formatted = title_case_name(_fix_punctuation(candidate))
    if not formatted:
        return UNRESOLVED_SUBJECT

    # The formatted name may now hit the table ("Ryan O'hearn's" -> "ryan o'hearn")
    override = vocabulary.subject_overrides.get(override_key(formatted))
    if override is not None:
        return override

    logger.debug(
        "subject_formatted",
        candidate=candidate,
        canonical=formatted,
        source="name_resolver",
    )
    return formatted
