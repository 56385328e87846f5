"""
Card Comps - Text Helpers

Word-boundary term matching, price parsing, and subject-name casing shared by
the engine modules.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Iterable, NamedTuple


class TermMatch(NamedTuple):
    """One whole-word occurrence of a vocabulary pattern in a text."""
    start: int
    end: int
    pattern: str
    canonical: str


# Letters and digits on either side break a match; punctuation does not.
_BOUNDARY_LEFT = r"(?<![A-Za-z0-9])"
_BOUNDARY_RIGHT = r"(?![A-Za-z0-9])"


def whole_word_regex(term: str) -> re.Pattern[str]:
    """
    Compile a case-insensitive pattern matching ``term`` only as a whole word.

    Internal whitespace in the term matches any run of whitespace, so
    "upper deck" also matches "Upper  Deck". A common word that merely contains
    the term ("Tagovailoa" for "TAG") never matches.
    """
    if not term or not term.strip():
        raise ValueError("term must be a non-empty string")
    parts = [re.escape(p) for p in term.strip().split()]
    return re.compile(_BOUNDARY_LEFT + r"\s+".join(parts) + _BOUNDARY_RIGHT, re.IGNORECASE)


def find_all_terms(
    text: str,
    entries: Iterable[tuple[re.Pattern[str], str, str]],
) -> list[TermMatch]:
    """Return every whole-word match of every (regex, pattern, canonical) entry."""
    matches: list[TermMatch] = []
    for regex, pattern, canonical in entries:
        for m in regex.finditer(text):
            matches.append(TermMatch(m.start(), m.end(), pattern, canonical))
    return matches


def longest_match(matches: list[TermMatch]) -> TermMatch | None:
    """Longest pattern wins; ties go to the earliest position."""
    if not matches:
        return None
    return min(matches, key=lambda m: (-(m.end - m.start), m.start))


def parse_price(text: str | None) -> Decimal | None:
    """
    Parse a price string like '$1,234.56', 'US $12.50' or '12,50 €' to Decimal.

    Returns None for missing, non-numeric, or non-positive values.
    """
    if not text:
        return None
    match = re.search(r"\d[\d,]*(?:\.\d+)?", text)
    if not match:
        return None
    raw = match.group()
    if "." not in raw and re.search(r",\d{1,2}$", raw):
        # Decimal comma ("12,50")
        raw = raw.replace(",", ".")
    else:
        raw = raw.replace(",", "")
    try:
        value = Decimal(raw)
    except (InvalidOperation, ValueError):
        return None
    if value <= Decimal("0"):
        return None
    return value


_ROMAN_SUFFIXES = {"ii", "iii", "iv", "v"}
_NAME_SUFFIXES = {"jr": "Jr.", "sr": "Sr."}
_INITIALS = re.compile(r"^(?:[A-Z]{2}|(?:[A-Z]\.){2,3})$")


def _capitalize_part(part: str) -> str:
    if not part:
        return part
    lowered = part.lower()
    if lowered.startswith("mc") and len(lowered) > 3:
        return "Mc" + lowered[2].upper() + lowered[3:]
    return lowered[0].upper() + lowered[1:]


def _case_token(token: str) -> str:
    if token.lower().endswith("'s") and len(token) > 2:
        return _case_token(token[:-2]) + "'s"
    # Apostrophes and hyphens both start a new capitalized segment
    segments = re.split(r"(['-])", token)
    return "".join(
        seg if seg in ("'", "-") else _capitalize_part(seg) for seg in segments
    )


def title_case_name(name: str) -> str:
    """
    Title-case a subject name token by token.

    Two-letter upper-case initials ("JR", "CJ") and dotted initials ("T.J.")
    are kept as written. Generational suffixes after the first token are
    normalized ("jr" -> "Jr.", "ii" -> "II").
    """
    tokens = name.split()
    out: list[str] = []
    for i, token in enumerate(tokens):
        bare = token.rstrip(".").lower()
        if _INITIALS.match(token):
            out.append(token)
        elif i > 0 and bare in _NAME_SUFFIXES:
            out.append(_NAME_SUFFIXES[bare])
        elif i > 0 and bare in _ROMAN_SUFFIXES:
            out.append(bare.upper())
        else:
            out.append(_case_token(token))
    return " ".join(out)
