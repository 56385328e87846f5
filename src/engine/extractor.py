"""
Card Comps - Field Extractor

Pulls typed fields out of a normalized listing title with a priority-ordered
rule list. Each field has its own rules, evaluated top to bottom, first match
wins. No rule reads another field's result.

The one deliberate cross-field dependency is the subject-name fallback: it
runs on the title with every span claimed by the other rules blanked out
(`_claimed_spans`), so brands, sets, parallels, numbers and keywords can never
leak into a name. Color parallel terms ("Silver", "Gold") are always claimed,
even next to a name.

Extraction is a pure function of (normalized title, vocabulary).
"""

from __future__ import annotations

import re
from typing import NamedTuple

import structlog

from src.config import settings
from src.engine.grading import detect_grade_token, has_marker
from src.models.listing import ExtractedFields
from src.utils.text import find_all_terms, longest_match, title_case_name
from src.utils.vocabulary import Vocabulary

logger = structlog.get_logger(__name__)


class FieldMatch(NamedTuple):
    value: str
    start: int
    end: int


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

# 4 digits not glued to a slash/hash/digit on the left, nor a digit or
# "/<digit>" on the right ("2024-25" season form yields 2024)
_YEAR = re.compile(r"(?<![/#\d])(\d{4})(?!\d|/\d)")

# "2023/24": a season only when the two digits are the following year
_SLASH_SEASON = re.compile(r"(?<![/#\d])(\d{4})/(\d{2})(?![\d/])")

_CARD_NUMBER = re.compile(r"#\s?([A-Za-z0-9]+(?:-[A-Za-z0-9]+)*)")

# "/99", "15/99", "#15/99", "#d/99", "#'d/99"; dates like 9/15/2024 never match
_PRINT_RUN = re.compile(r"(?<![A-Za-z0-9/])(?:#?'?d|#?\d{1,4})?/(\d{1,5})(?![\d/])", re.IGNORECASE)

_NAME_TOKEN = re.compile(r"^[A-Za-z][A-Za-z'\-]*$")
_NAME_SUFFIX = re.compile(r"^(?:jr|sr|ii|iii|iv)\.$", re.IGNORECASE)
_CARD_CODE = re.compile(r"^[A-Z]{1,5}-[A-Z]{1,5}$")
_TOKEN_PUNCT = ",;:!?()[]{}\"*"


# ---------------------------------------------------------------------------
# Rules, one per field
# ---------------------------------------------------------------------------

def season_spans(title: str) -> list[tuple[int, int]]:
    """Spans of "YYYY/YY" seasons whose second part is the following year."""
    spans = []
    for m in _SLASH_SEASON.finditer(title):
        if int(m.group(2)) == (int(m.group(1)) + 1) % 100:
            spans.append((m.start(), m.end()))
    return spans


def match_year(title: str, year_min: int | None = None, year_max: int | None = None) -> FieldMatch | None:
    """First 4-digit token inside the plausible card-year range."""
    lo = year_min if year_min is not None else settings.YEAR_MIN
    hi = year_max if year_max is not None else settings.YEAR_MAX
    candidates = [(m.start(1), m.end(1)) for m in _YEAR.finditer(title)]
    candidates.extend((start, start + 4) for start, _ in season_spans(title))
    for start, end in sorted(candidates):
        if lo <= int(title[start:end]) <= hi:
            return FieldMatch(title[start:end], start, end)
    return None


def match_card_number(title: str) -> FieldMatch | None:
    """
    First '#' token that is a real card number.

    Rejects print-run-looking tokens: '#d/99', '#15/99' (serial numbering)
    and tokens without a digit.
    """
    for m in _CARD_NUMBER.finditer(title):
        token = m.group(1)
        if title[m.end():m.end() + 1] == "/":
            continue
        if not any(ch.isdigit() for ch in token):
            continue
        return FieldMatch("#" + token.upper(), m.start(), m.end())
    return None


def _print_run_matches(title: str) -> list[re.Match[str]]:
    seasons = season_spans(title)
    return [
        m for m in _PRINT_RUN.finditer(title)
        if not any(m.start() < end and start < m.end() for start, end in seasons)
    ]


def match_print_run(title: str) -> FieldMatch | None:
    """First '/digits' token, with any leading serial number claimed too. Seasons are skipped."""
    matches = _print_run_matches(title)
    if not matches:
        return None
    m = matches[0]
    return FieldMatch("/" + m.group(1), m.start(), m.end())


def _match_vocab(title: str, entries) -> FieldMatch | None:
    best = longest_match(find_all_terms(title, entries))
    if best is None:
        return None
    return FieldMatch(best.canonical, best.start, best.end)


def match_brand(title: str, vocabulary: Vocabulary) -> FieldMatch | None:
    return _match_vocab(title, vocabulary.brands)


def match_set(title: str, vocabulary: Vocabulary) -> FieldMatch | None:
    """Longest set name wins so 'Chrome Update' is not masked by 'Chrome'."""
    return _match_vocab(title, vocabulary.sets)


def match_parallel(title: str, vocabulary: Vocabulary) -> FieldMatch | None:
    """Longest parallel term that is not part of a team name ('Red Sox')."""
    teams = find_all_terms(title, vocabulary.stop_words)
    candidates = [
        m for m in find_all_terms(title, vocabulary.parallels)
        if not any(m.start < t.end and t.start < m.end for t in teams)
    ]
    best = longest_match(candidates)
    if best is None:
        return None
    return FieldMatch(best.canonical, best.start, best.end)


def match_subject_override(title: str, vocabulary: Vocabulary) -> FieldMatch | None:
    """High-confidence override table lookup by whole-word substring."""
    return _match_vocab(title, vocabulary.subject_patterns)


def match_sport(title: str, vocabulary: Vocabulary) -> str | None:
    """
    Sport named by a league, team, position or player keyword.

    Sports are checked in vocabulary order and the first one with any
    whole-word hit wins. None when nothing matches.
    """
    for sport in vocabulary.sports:
        if has_marker(title, sport.terms):
            return sport.sport
    return None


# ---------------------------------------------------------------------------
# Subject-name fallback
# ---------------------------------------------------------------------------

def _claimed_spans(title: str, vocabulary: Vocabulary) -> list[tuple[int, int]]:
    """
    Every span the other field rules (and the keyword tables) lay claim to.

    The subject-name fallback depends on this and only this. All occurrences
    are claimed, not only the winning match, so a second brand or set
    mention is never mistaken for a name.
    """
    spans: list[tuple[int, int]] = []
    for m in _YEAR.finditer(title):
        spans.append((m.start(1), m.end(1)))
    spans.extend(season_spans(title))
    for m in _CARD_NUMBER.finditer(title):
        spans.append((m.start(), m.end()))
    for m in _print_run_matches(title):
        spans.append((m.start(), m.end()))
    for table in (
        vocabulary.brands,
        vocabulary.sets,
        vocabulary.parallels,
        vocabulary.rookie_keywords,
        vocabulary.autograph_keywords,
        vocabulary.raw_keywords,
        vocabulary.grade10_markers,
        vocabulary.grade9_markers,
        vocabulary.bulk_markers,
        vocabulary.stop_words,
    ):
        spans.extend((m.start, m.end) for m in find_all_terms(title, table))
    for authority in vocabulary.authorities:
        spans.extend((m.start(), m.end()) for m in authority.regex.finditer(title))
    return spans


def _fallback_subject(title: str, claimed: list[tuple[int, int]]) -> str | None:
    """Longest contiguous run of alphabetic tokens left after claimed spans are blanked."""
    chars = list(title)
    for start, end in claimed:
        for i in range(start, end):
            chars[i] = "|"
    working = "".join(chars)

    runs: list[list[str]] = []
    current: list[str] = []
    for segment in re.split(r"\|+", working):
        for raw_token in segment.split():
            token = raw_token.strip(_TOKEN_PUNCT)
            # "Jr." keeps its run going; title_case_name restores the period
            if current and _NAME_SUFFIX.match(token):
                token = token[:-1]
            if _NAME_TOKEN.match(token) and not _CARD_CODE.match(token):
                current.append(token)
            else:
                if current:
                    runs.append(current)
                current = []
        # A claimed span always ends a run
        if current:
            runs.append(current)
        current = []

    if not runs:
        return None
    best = max(runs, key=len)  # max() keeps the earliest on ties
    return title_case_name(" ".join(best))


def extract_fields(title: str, vocabulary: Vocabulary) -> ExtractedFields:
    """
    Extract typed fields from a normalized title.

    Args:
        title: Output of normalize_title().
        vocabulary: Loaded vocabulary tables.

    Returns:
        ExtractedFields. Missing fields are None, never guessed.
    """
    year = match_year(title)
    brand = match_brand(title, vocabulary)
    set_name = match_set(title, vocabulary)
    card_number = match_card_number(title)
    print_run = match_print_run(title)
    parallel = match_parallel(title, vocabulary)

    override = match_subject_override(title, vocabulary)
    if override is not None:
        subject = override.value
        subject_rule = "override"
    else:
        subject = _fallback_subject(title, _claimed_spans(title, vocabulary))
        subject_rule = "fallback"

    fields = ExtractedFields(
        subject_name_candidate=subject,
        year=int(year.value) if year else None,
        brand=brand.value if brand else None,
        set_name=set_name.value if set_name else None,
        card_number=card_number.value if card_number else None,
        print_run=print_run.value if print_run else None,
        parallel=parallel.value if parallel else None,
        is_rookie=has_marker(title, vocabulary.rookie_keywords),
        is_autograph=has_marker(title, vocabulary.autograph_keywords),
        grade_token=detect_grade_token(title, vocabulary),
        sport=match_sport(title, vocabulary),
    )

    logger.debug(
        "fields_extracted",
        title=title,
        subject=subject,
        subject_rule=subject_rule,
        year=fields.year,
        brand=fields.brand,
        set_name=fields.set_name,
        card_number=fields.card_number,
        print_run=fields.print_run,
        grade_token=fields.grade_token.value,
        sport=fields.sport,
        source="extractor",
    )
    return fields
