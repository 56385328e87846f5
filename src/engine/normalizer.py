"""
Card Comps - Title Normalizer

Turns raw listing title text into the canonical working string every later
stage reads:
- Diacritics folded to ASCII letters ("Acuña" -> "Acuna")
- Curly quotes and backticks folded to "'"
- Whitespace runs collapsed, ends trimmed
- Dotted initials glued to the next word repaired ("J.R. Smith" -> "JR Smith",
  "T.J.Watt" -> "TJ Watt")

Initials repair only fires on Letter.Letter. followed by a capital letter or a
lowercase run, so "Jr.", "St. Louis" and abbreviated set names keep their
punctuation. Three-letter abbreviations ("U.S.A.") are left as written.
Never raises.
"""

from __future__ import annotations

import re
import unicodedata

import structlog

logger = structlog.get_logger(__name__)

_QUOTES = re.compile(r"[‘’‛′`]")
_WHITESPACE = re.compile(r"\s+")
# A third "Letter." means an abbreviation ("U.S.A."), not two initials
_INITIALS = re.compile(r"(?<![A-Za-z.])([A-Za-z])\.([A-Za-z])\.\s?(?![A-Za-z]\.)(?=[A-Z]|[a-z]+)")


def _fold_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _repair_initials(text: str) -> str:
    return _INITIALS.sub(lambda m: f"{m.group(1).upper()}{m.group(2).upper()} ", text)


def normalize_title(raw: str) -> str:
    """
    Normalize a raw listing title.

    Args:
        raw: Title text as scraped.

    Returns:
        The normalized title. Titles with nothing to repair come back with
        only whitespace and character folding applied.
    """
    if not raw:
        return ""

    text = _fold_diacritics(raw)
    text = _QUOTES.sub("'", text)
    text = _WHITESPACE.sub(" ", text).strip()
    repaired = _repair_initials(text)
    # Repair may leave a double space when the initials were already spaced
    repaired = _WHITESPACE.sub(" ", repaired).strip()

    if repaired != text:
        logger.debug(
            "title_initials_repaired",
            before=text,
            after=repaired,
            source="normalizer",
        )
    return repaired
