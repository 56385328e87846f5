"""
Card Comps - Vocabulary & Override Tables

Brand/set/parallel vocabularies, the subject-name override table, bulk-listing
markers, grading authorities and sport keywords are static data loaded once
per batch.

The loaded `Vocabulary` is immutable: every table is a tuple or a read-only
mapping, and it is passed explicitly to each engine function. Editing the
JSON file and reloading produces a new `Vocabulary` with a new `version`;
nothing patches a live table.

A malformed table is the only fatal error class. `load_vocabulary` raises
`ConfigurationError` so a batch aborts before any aggregation.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import NamedTuple

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from src.config import settings
from src.utils.text import whole_word_regex

logger = structlog.get_logger(__name__)


class ConfigurationError(Exception):
    """Vocabulary or settings are unusable; the whole batch must abort."""


# ---------------------------------------------------------------------------
# File schema
# ---------------------------------------------------------------------------

class VocabEntry(BaseModel):
    """A (match pattern, canonical output) pair."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    pattern: str = Field(min_length=1)
    canonical: str = Field(min_length=1)

    @field_validator("pattern", "canonical")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class AuthorityEntry(VocabEntry):
    """
    A grading company or generic grading term.

    tracked: the authority whose 9/10 grades are aggregated.
    requires_grade: the name is also a common word, so it only counts as
        grading evidence with a grade number close by.
    generic: a grading term rather than a company ("graded", "slab"); it is
        evidence of grading but never a competing authority.
    """
    tracked: bool = False
    requires_grade: bool = False
    generic: bool = False


class GradeMarkers(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    grade10: list[str] = Field(min_length=1)
    grade9: list[str] = Field(min_length=1)


class SportEntry(BaseModel):
    """Keywords (leagues, teams, positions, players) that identify one sport."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    sport: str = Field(min_length=1)
    terms: list[str] = Field(min_length=1)

    @field_validator("terms")
    @classmethod
    def _no_blank_terms(cls, values: list[str]) -> list[str]:
        cleaned = [v.strip() for v in values]
        if any(not v for v in cleaned):
            raise ValueError("sport terms must not be blank")
        return cleaned


class VocabularyFile(BaseModel):
    """Validated shape of the vocabulary JSON document."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    brands: list[VocabEntry] = Field(min_length=1)
    sets: list[VocabEntry] = Field(default_factory=list)
    parallels: list[VocabEntry] = Field(default_factory=list)
    subject_overrides: list[VocabEntry] = Field(default_factory=list)
    bulk_markers: list[str] = Field(min_length=1)
    grading_authorities: list[AuthorityEntry] = Field(min_length=1)
    grade_markers: GradeMarkers
    rookie_keywords: list[str] = Field(min_length=1)
    autograph_keywords: list[str] = Field(min_length=1)
    raw_keywords: list[str] = Field(default_factory=list)
    stop_words: list[str] = Field(default_factory=list)
    sports: list[SportEntry] = Field(default_factory=list)

    @field_validator(
        "bulk_markers", "rookie_keywords", "autograph_keywords", "raw_keywords", "stop_words"
    )
    @classmethod
    def _no_blank_terms(cls, values: list[str]) -> list[str]:
        cleaned = [v.strip() for v in values]
        if any(not v for v in cleaned):
            raise ValueError("keyword lists must not contain blank entries")
        return cleaned

    @model_validator(mode="after")
    def _check_consistency(self) -> "VocabularyFile":
        tracked = [a for a in self.grading_authorities if a.tracked]
        if len(tracked) != 1:
            raise ValueError(
                f"exactly one grading authority must be tracked, found {len(tracked)}"
            )
        seen: dict[str, str] = {}
        for entry in self.subject_overrides:
            key = override_key(entry.pattern)
            if key in seen and seen[key] != entry.canonical:
                raise ValueError(
                    f"conflicting subject overrides for {entry.pattern!r}: "
                    f"{seen[key]!r} vs {entry.canonical!r}"
                )
            seen[key] = entry.canonical
        return self


# ---------------------------------------------------------------------------
# Compiled, immutable form
# ---------------------------------------------------------------------------

CompiledEntry = tuple[re.Pattern[str], str, str]


class Authority(NamedTuple):
    regex: re.Pattern[str]
    name: str
    tracked: bool
    requires_grade: bool
    generic: bool


class SportTerms(NamedTuple):
    sport: str
    terms: tuple[CompiledEntry, ...]


class Vocabulary(NamedTuple):
    """Compiled tables injected into the engine. Never mutated."""
    version: str
    brands: tuple[CompiledEntry, ...]
    sets: tuple[CompiledEntry, ...]
    parallels: tuple[CompiledEntry, ...]
    subject_patterns: tuple[CompiledEntry, ...]
    subject_overrides: Mapping[str, str]
    bulk_markers: tuple[CompiledEntry, ...]
    authorities: tuple[Authority, ...]
    grade10_markers: tuple[CompiledEntry, ...]
    grade9_markers: tuple[CompiledEntry, ...]
    rookie_keywords: tuple[CompiledEntry, ...]
    autograph_keywords: tuple[CompiledEntry, ...]
    raw_keywords: tuple[CompiledEntry, ...]
    stop_words: tuple[CompiledEntry, ...]
    # Checked in file order; the first sport with a matching term wins
    sports: tuple[SportTerms, ...] = ()


def override_key(name: str) -> str:
    """Lookup key for the subject override table: lower case, no periods, single spaces."""
    return " ".join(name.replace(".", "").lower().split())


def _compile_pairs(entries: list[VocabEntry]) -> tuple[CompiledEntry, ...]:
    return tuple((whole_word_regex(e.pattern), e.pattern, e.canonical) for e in entries)


def _compile_terms(terms: list[str]) -> tuple[CompiledEntry, ...]:
    return tuple((whole_word_regex(t), t, t) for t in terms)


def build_vocabulary(document: VocabularyFile, version: str = "inline") -> Vocabulary:
    """Compile a validated document into the immutable runtime form."""
    overrides = {override_key(e.pattern): e.canonical for e in document.subject_overrides}
    subject_patterns = tuple(
        (whole_word_regex(key), key, canonical) for key, canonical in overrides.items()
    )
    return Vocabulary(
        version=version,
        brands=_compile_pairs(document.brands),
        sets=_compile_pairs(document.sets),
        parallels=_compile_pairs(document.parallels),
        subject_patterns=subject_patterns,
        subject_overrides=MappingProxyType(overrides),
        bulk_markers=_compile_terms(document.bulk_markers),
        authorities=tuple(
            Authority(
                regex=whole_word_regex(a.pattern),
                name=a.canonical,
                tracked=a.tracked,
                requires_grade=a.requires_grade,
                generic=a.generic,
            )
            for a in document.grading_authorities
        ),
        grade10_markers=_compile_terms(document.grade_markers.grade10),
        grade9_markers=_compile_terms(document.grade_markers.grade9),
        rookie_keywords=_compile_terms(document.rookie_keywords),
        autograph_keywords=_compile_terms(document.autograph_keywords),
        raw_keywords=_compile_terms(document.raw_keywords),
        stop_words=_compile_terms(document.stop_words),
        sports=tuple(
            SportTerms(sport=s.sport.strip(), terms=_compile_terms(s.terms))
            for s in document.sports
        ),
    )


def parse_vocabulary(data: dict) -> Vocabulary:
    """
    Validate and compile an in-memory vocabulary document.

    Raises:
        ConfigurationError: If the document does not match the schema.
    """
    try:
        document = VocabularyFile.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid vocabulary: {e}") from e
    raw = json.dumps(data, sort_keys=True).encode("utf-8")
    return build_vocabulary(document, version=hashlib.sha1(raw).hexdigest()[:12])


def load_vocabulary(path: Path | str | None = None) -> Vocabulary:
    """
    Load the vocabulary JSON file (default: settings.VOCABULARY_PATH).

    Raises:
        ConfigurationError: If the file is missing, not JSON, or invalid.
    """
    vocab_path = Path(path) if path is not None else settings.VOCABULARY_PATH
    try:
        data = json.loads(vocab_path.read_text(encoding="utf-8"))
    except OSError as e:
        logger.error("vocabulary_unreadable", path=str(vocab_path), error=str(e), source="vocabulary")
        raise ConfigurationError(f"cannot read vocabulary file {vocab_path}: {e}") from e
    except json.JSONDecodeError as e:
        logger.error("vocabulary_not_json", path=str(vocab_path), error=str(e), source="vocabulary")
        raise ConfigurationError(f"vocabulary file {vocab_path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"vocabulary file {vocab_path} must contain a JSON object")

    try:
        vocabulary = parse_vocabulary(data)
    except ConfigurationError:
        logger.error("vocabulary_invalid", path=str(vocab_path), source="vocabulary")
        raise

    logger.info(
        "vocabulary_loaded",
        path=str(vocab_path),
        version=vocabulary.version,
        brands=len(vocabulary.brands),
        sets=len(vocabulary.sets),
        subject_overrides=len(vocabulary.subject_overrides),
        source="vocabulary",
    )
    return vocabulary
