"""Tests for hoisting misplaced sections out of the diagnostic."""

from __future__ import annotations

from typing import Any

import pytest

from schemas.advisor import RawAdvice, StructuredAdvice, parse_advisory_document
from services.advisor.restructure import restructure


def _structured(**fields: Any) -> StructuredAdvice:
    fields.setdefault("confidence", 0.5)
    return StructuredAdvice(**fields)


class TestRestructureStructured:
    """Hoisting on documents that already have the structured shape."""

    def test_nested_section_is_hoisted(self) -> None:
        doc = _structured(
            diagnostic={"etat": "ok", "risques": [{"risque": "r1"}]},
        )
        result = restructure(doc)

        assert isinstance(result, StructuredAdvice)
        assert result.diagnostic == {"etat": "ok"}
        assert result.risks == [{"risque": "r1"}]
        assert result.recommended_actions == []

    def test_nested_value_wins_over_top_level(self) -> None:
        doc = parse_advisory_document(
            {
                "diagnostic": {"risks": ["X"]},
                "risks": ["Y"],
                "confidence": 0.9,
            }
        )
        result = restructure(doc)

        assert isinstance(result, StructuredAdvice)
        assert result.risks == ["X"]
        assert result.diagnostic == {}

    def test_nested_null_does_not_override(self) -> None:
        doc = _structured(
            diagnostic={"actions_recommandees": None, "etat": "lent"},
            recommended_actions=[{"action": "ANALYZE"}],
        )
        result = restructure(doc)

        assert result.recommended_actions == [{"action": "ANALYZE"}]
        assert result.diagnostic == {"etat": "lent"}

    def test_all_three_sections_hoisted_under_either_spelling(self) -> None:
        doc = _structured(
            diagnostic={
                "recommended_actions": ["a"],
                "risques": ["r"],
                "suggested_queries": ["SELECT 1"],
                "hypotheses": ["h"],
            }
        )
        result = restructure(doc)

        assert result.recommended_actions == ["a"]
        assert result.risks == ["r"]
        assert result.suggested_queries == ["SELECT 1"]
        assert result.diagnostic == {"hypotheses": ["h"]}

    def test_both_nested_spellings_are_merged(self) -> None:
        doc = _structured(diagnostic={"risques": ["a"], "risks": ["b"]})
        result = restructure(doc)

        assert result.risks == ["a", "b"]
        assert result.diagnostic == {}

    def test_hoisting_everything_leaves_empty_diagnostic(self) -> None:
        doc = _structured(diagnostic={"risques": ["r"]})
        result = restructure(doc)

        assert result.diagnostic == {}
        assert "risques" not in result.diagnostic

    def test_non_object_diagnostic_is_untouched(self) -> None:
        doc = _structured(diagnostic="Tout va bien", risks=["r"])
        result = restructure(doc)

        assert result.diagnostic == "Tout va bien"
        assert result.risks == ["r"]

    def test_null_sections_default_to_empty_arrays(self) -> None:
        doc = _structured(recommended_actions=None, risks=None)
        result = restructure(doc)

        assert result.recommended_actions == []
        assert result.risks == []
        assert result.suggested_queries is None

    def test_other_fields_are_preserved(self) -> None:
        doc = _structured(
            diagnostic={"risques": []},
            confidence=0.42,
            notes={"outils_recommandes": ["pg_stat_statements"]},
        )
        result = restructure(doc)

        assert result.confidence == 0.42
        assert result.notes == {"outils_recommandes": ["pg_stat_statements"]}

    def test_input_document_is_not_mutated(self) -> None:
        diagnostic = {"etat": "ok", "risques": ["r"]}
        doc = _structured(diagnostic=diagnostic)
        restructure(doc)

        assert doc.diagnostic == {"etat": "ok", "risques": ["r"]}


class TestRestructureRaw:
    """Best-effort reinterpretation of documents without the structured shape."""

    def test_unknown_keys_fold_into_diagnostic(self) -> None:
        doc = parse_advisory_document(
            {"etat_actuel": "ok", "risques": ["r"], "niveau_confiance": 0.6}
        )
        assert isinstance(doc, RawAdvice)

        result = restructure(doc)

        assert isinstance(result, StructuredAdvice)
        assert result.diagnostic == {"etat_actuel": "ok"}
        assert result.risks == ["r"]
        assert result.confidence == 0.6

    def test_scalar_diagnostic_is_kept_beside_folded_keys(self) -> None:
        doc = RawAdvice({"diagnostic": "lent", "extra": 1, "confidence": 0.4})
        result = restructure(doc)

        assert isinstance(result, StructuredAdvice)
        assert result.diagnostic == {"diagnostic": "lent", "extra": 1}

    def test_folded_keys_then_hoisting_apply(self) -> None:
        doc = RawAdvice(
            {
                "diagnostic": {"risques": ["nested"]},
                "commentaire": "x",
                "niveau_confiance": 0.3,
            }
        )
        result = restructure(doc)

        assert isinstance(result, StructuredAdvice)
        assert result.risks == ["nested"]
        assert result.diagnostic == {"commentaire": "x"}

    def test_folded_key_colliding_with_diagnostic_key_is_kept(self) -> None:
        doc = RawAdvice(
            {"diagnostic": {"etat": "a"}, "etat": "b", "niveau_confiance": 0.5}
        )
        result = restructure(doc)

        assert isinstance(result, StructuredAdvice)
        assert result.diagnostic == {"etat": "a", "etat_2": "b"}

    def test_folded_key_with_identical_value_is_not_duplicated(self) -> None:
        doc = RawAdvice(
            {"diagnostic": {"etat": "a"}, "etat": "a", "niveau_confiance": 0.5}
        )
        result = restructure(doc)

        assert result.diagnostic == {"etat": "a"}

    def test_duplicate_spellings_are_merged(self) -> None:
        doc = parse_advisory_document(
            {"risques": ["a"], "risks": ["a", "b"], "niveau_confiance": 0.5}
        )
        assert isinstance(doc, RawAdvice)

        result = restructure(doc)

        assert isinstance(result, StructuredAdvice)
        assert result.risks == ["a", "b"]

    @pytest.mark.parametrize(
        "payload",
        [
            {"diagnostic": {"risques": ["r"]}},
            {"diagnostic": "x", "niveau_confiance": "0.8"},
            {"diagnostic": "x", "niveau_confiance": True},
        ],
    )
    def test_unreinterpretable_object_is_returned_unchanged(
        self, payload: dict[str, Any]
    ) -> None:
        doc = RawAdvice(payload)
        assert restructure(doc) is doc

    @pytest.mark.parametrize("value", [[1, 2], "texte", 3, None])
    def test_non_object_values_are_returned_unchanged(self, value: Any) -> None:
        doc = RawAdvice(value)
        assert restructure(doc) is doc


class TestIdempotence:
    """A second pass never changes the result of the first."""

    @pytest.mark.parametrize(
        "payload",
        [
            {"diagnostic": {"etat": "ok", "risques": ["r"]}, "niveau_confiance": 0.7},
            {"diagnostic": {"risks": ["X"]}, "risks": ["Y"], "confidence": 0.1},
            {"diagnostic": "s", "actions_recommandees": None, "niveau_confiance": 1},
            {"foo": {"risques": ["r"]}, "niveau_confiance": 0.2},
            {"risques": ["a"], "risks": ["b"], "niveau_confiance": 0.5},
            {"diagnostic": {"etat": "a"}, "etat": "b", "niveau_confiance": 0.5},
            {"diagnostic": {"risques": ["a"], "risks": ["b"]}, "confidence": 0.4},
            {"diagnostic": {"risques": ["r"]}},
            [1, {"risques": []}],
            "plain",
        ],
    )
    def test_restructure_twice_equals_once(self, payload: Any) -> None:
        once = restructure(parse_advisory_document(payload))
        twice = restructure(once)

        assert twice == once
        assert twice.to_flat_dict() == once.to_flat_dict()
