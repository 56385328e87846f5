"""Tests for vocabulary loading, validation, and immutability."""

from __future__ import annotations

import copy
import json
from pathlib import Path

import pytest

from src.config import settings
from src.utils.vocabulary import (
    ConfigurationError,
    Vocabulary,
    load_vocabulary,
    override_key,
    parse_vocabulary,
)


@pytest.fixture
def document() -> dict:
    return json.loads(settings.VOCABULARY_PATH.read_text(encoding="utf-8"))


class TestLoadVocabulary:
    def test_packaged_default_loads(self, vocabulary: Vocabulary) -> None:
        assert len(vocabulary.brands) > 0
        assert sum(1 for a in vocabulary.authorities if a.tracked) == 1
        assert len(vocabulary.version) == 12
        assert vocabulary.sports[0].sport == "Football"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="cannot read"):
            load_vocabulary(tmp_path / "missing.json")

    def test_not_json(self, tmp_path: Path) -> None:
        path = tmp_path / "vocabulary.json"
        path.write_text("{brands: nope", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="not valid JSON"):
            load_vocabulary(path)

    def test_not_an_object(self, tmp_path: Path) -> None:
        path = tmp_path / "vocabulary.json"
        path.write_text("[]", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="JSON object"):
            load_vocabulary(path)

    def test_edit_produces_new_version(self, tmp_path: Path, document: dict) -> None:
        path = tmp_path / "vocabulary.json"
        path.write_text(json.dumps(document), encoding="utf-8")
        before = load_vocabulary(path)

        document["subject_overrides"].append({"pattern": "skenes", "canonical": "Paul Skenes"})
        path.write_text(json.dumps(document), encoding="utf-8")
        after = load_vocabulary(path)

        assert before.version != after.version
        assert "skenes" not in before.subject_overrides
        assert after.subject_overrides["skenes"] == "Paul Skenes"


class TestValidation:
    def test_blank_pattern_rejected(self, document: dict) -> None:
        document["brands"].append({"pattern": "  ", "canonical": "Topps"})

        with pytest.raises(ConfigurationError, match="invalid vocabulary"):
            parse_vocabulary(document)

    def test_unknown_table_rejected(self, document: dict) -> None:
        document["colours"] = ["red"]

        with pytest.raises(ConfigurationError):
            parse_vocabulary(document)

    def test_exactly_one_tracked_authority(self, document: dict) -> None:
        broken = copy.deepcopy(document)
        for entry in broken["grading_authorities"]:
            entry["tracked"] = False

        with pytest.raises(ConfigurationError, match="tracked"):
            parse_vocabulary(broken)

    def test_conflicting_overrides_rejected(self, document: dict) -> None:
        document["subject_overrides"].append({"pattern": "Kobe", "canonical": "Kobe Bean"})

        with pytest.raises(ConfigurationError, match="conflicting"):
            parse_vocabulary(document)

    def test_empty_bulk_markers_rejected(self, document: dict) -> None:
        document["bulk_markers"] = []

        with pytest.raises(ConfigurationError):
            parse_vocabulary(document)

    def test_blank_sport_term_rejected(self, document: dict) -> None:
        document["sports"][0]["terms"].append(" ")

        with pytest.raises(ConfigurationError, match="invalid vocabulary"):
            parse_vocabulary(document)

    def test_sports_table_optional(self, document: dict) -> None:
        del document["sports"]

        assert parse_vocabulary(document).sports == ()


class TestImmutability:
    def test_override_table_is_read_only(self, vocabulary: Vocabulary) -> None:
        with pytest.raises(TypeError):
            vocabulary.subject_overrides["kobe"] = "Someone Else"  # type: ignore[index]

    def test_tables_are_tuples(self, vocabulary: Vocabulary) -> None:
        assert isinstance(vocabulary.brands, tuple)
        assert isinstance(vocabulary.bulk_markers, tuple)


class TestOverrideKey:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("T.J. Watt", "tj watt"),
            ("  Ken   Griffey Jr. ", "ken griffey jr"),
            ("LEBRON", "lebron"),
        ],
    )
    def test_keys(self, name: str, expected: str) -> None:
        assert override_key(name) == expected
