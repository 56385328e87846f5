"""Tests for subject-name resolution: override precedence, formatting, unresolved marker."""

from __future__ import annotations

import pytest

from src.config import UNRESOLVED_SUBJECT
from src.engine.name_resolver import resolve_name
from src.utils.vocabulary import Vocabulary


class TestOverridePrecedence:
    def test_override_beats_title_casing(self, vocabulary: Vocabulary) -> None:
        """Heuristic casing would give 'CJ Stroud'; the table says otherwise."""
        assert resolve_name("CJ Stroud", "2023 Prizm CJ Stroud RC", vocabulary) == "C.J. Stroud"

    @pytest.mark.parametrize(
        ("candidate", "expected"),
        [
            ("ken griffey jr", "Ken Griffey Jr."),
            ("Ken Griffey Jr.", "Ken Griffey Jr."),
            ("ja marr chase", "Ja'Marr Chase"),
            ("T.J. Watt", "T.J. Watt"),
            ("Ohtani", "Shohei Ohtani"),
            ("ryan  ohearn", "Ryan O'Hearn"),
        ],
    )
    def test_lookup_ignores_case_spacing_and_periods(
        self, vocabulary: Vocabulary, candidate: str, expected: str
    ) -> None:
        assert resolve_name(candidate, candidate, vocabulary) == expected

    def test_override_after_possessive_fix(self, vocabulary: Vocabulary) -> None:
        assert resolve_name("kobe's", "Kobe's rookie", vocabulary) == "Kobe Bryant"


class TestFormatting:
    @pytest.mark.parametrize(
        ("candidate", "expected"),
        [
            ("paul skenes", "Paul Skenes"),
            ("PAUL SKENES", "Paul Skenes"),
            ("paul skenes's", "Paul Skenes"),
            ("bobby witt jr", "Bobby Witt Jr."),
            ("bobby witt jr.", "Bobby Witt Jr."),
            ("connor mcdavid", "Connor McDavid"),
            ("cal ripken iii", "Cal Ripken III"),
            ("JR Smith", "JR Smith"),
        ],
    )
    def test_light_formatting(self, vocabulary: Vocabulary, candidate: str, expected: str) -> None:
        assert resolve_name(candidate, candidate, vocabulary) == expected


class TestUnresolved:
    @pytest.mark.parametrize("candidate", [None, "", "   "])
    def test_empty_candidate_is_marked(self, vocabulary: Vocabulary, candidate: str | None) -> None:
        result = resolve_name(candidate, "2024 Topps Chrome #15 /99", vocabulary)

        assert result == UNRESOLVED_SUBJECT
        assert result != ""
