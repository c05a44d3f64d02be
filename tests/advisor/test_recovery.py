"""Tests for the full text-to-document recovery pipeline."""

from __future__ import annotations

import json

import pytest

from schemas.advisor import RawAdvice, StructuredAdvice
from services.advisor.recovery import recover_document, synthesize_fallback


class TestRecoverDocument:
    """Each stage of the pipeline and its fallbacks."""

    def test_end_to_end_heading_fences_and_nested_risks(self) -> None:
        text = (
            "Diagnostic\n```json\n"
            '{"diagnostic":{"etat":"ok","risques":[{"risque":"r1"}]},'
            '"niveau_confiance":0.7}\n```'
        )
        result = recover_document(text)

        assert result == StructuredAdvice(
            diagnostic={"etat": "ok"},
            risks=[{"risque": "r1"}],
            recommended_actions=[],
            confidence=0.7,
            suggested_queries=None,
            notes=None,
        )

    def test_clean_json_is_decoded_directly(self) -> None:
        payload = {
            "diagnostic": {"etat_actuel": "ok"},
            "actions_recommandees": [{"action": "VACUUM"}],
            "risques": [],
            "sql_suggere": [{"requete": "ANALYZE t;"}],
            "niveau_confiance": 0.85,
            "notes_complementaires": {"bonnes_pratiques": ["index"]},
        }
        result = recover_document(json.dumps(payload))

        assert isinstance(result, StructuredAdvice)
        assert result.to_flat_dict() == payload

    def test_prose_around_object(self) -> None:
        text = (
            "Voici mon analyse :\n"
            '{"diagnostic": "Index manquant", "niveau_confiance": 0.6}\n'
            "N'hésitez pas si vous avez des questions."
        )
        result = recover_document(text)

        assert isinstance(result, StructuredAdvice)
        assert result.diagnostic == "Index manquant"

    def test_truncated_answer_is_repaired(self) -> None:
        text = (
            '```json\n{"diagnostic": {"etat_actuel": "lent"}, '
            '"niveau_confiance": 0.8, "risques": [{"risque": "verrou'
        )
        result = recover_document(text)

        assert isinstance(result, StructuredAdvice)
        assert result.risks == [{"risque": "verrou"}]
        assert result.confidence == 0.8

    @pytest.mark.parametrize(
        "tail",
        ['"notes_complementaires": tr', '"sql_suggere": [], "niveau_confiance": 0.'],
    )
    def test_truncated_literal_or_number_keeps_earlier_sections(
        self, tail: str
    ) -> None:
        text = (
            '{"diagnostic": {"etat": "ok"}, "risques": [{"risque": "r1"}], '
            '"niveau_confiance": 0.7, ' + tail
        )
        result = recover_document(text)

        flat = result.to_flat_dict()
        assert flat["risques"] == [{"risque": "r1"}]
        assert flat["diagnostic"] == {"etat": "ok"}

    def test_truncated_literal_in_unknown_object_is_raw(self) -> None:
        result = recover_document('{"a": tru')

        assert isinstance(result, RawAdvice)
        assert list(result.root) == ["a"]

    def test_brace_in_leading_prose_does_not_hide_answer(self) -> None:
        text = (
            "Réponse au format {json} demandé :\n"
            '{"diagnostic": "Index manquant", "niveau_confiance": 0.6}'
        )
        result = recover_document(text)

        assert isinstance(result, StructuredAdvice)
        assert result.diagnostic == "Index manquant"
        assert result.confidence == 0.6

    def test_object_without_confidence_is_raw(self) -> None:
        result = recover_document('{"diagnostic": {"etat": "ok"}}')

        assert isinstance(result, RawAdvice)
        assert result.root == {"diagnostic": {"etat": "ok"}}

    def test_top_level_array_is_raw(self) -> None:
        result = recover_document('[{"risque": "r"}]')

        assert isinstance(result, RawAdvice)
        assert result.root == [{"risque": "r"}]

    def test_json_scalar_is_not_accepted(self) -> None:
        result = recover_document('"juste une phrase"')

        assert isinstance(result, StructuredAdvice)
        assert result.confidence == 0.0

    @pytest.mark.parametrize(
        "text",
        ["", "Aucune idée, désolé.", "{"],
    )
    def test_unrecoverable_text_falls_back(self, text: str) -> None:
        result = recover_document(text)

        assert isinstance(result, StructuredAdvice)
        assert result.confidence == 0.0
        assert result.recommended_actions == []
        assert result.risks == []
        assert result.suggested_queries is None
        assert result.notes is None

    def test_fallback_logs_a_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level("WARNING"):
            recover_document("no json")

        assert "using fallback" in caplog.text


class TestSynthesizeFallback:
    """The fallback document carries the raw text."""

    def test_carries_raw_text(self) -> None:
        doc = synthesize_fallback("raw answer")

        assert isinstance(doc.diagnostic, str)
        assert "raw answer" in doc.diagnostic
        assert "(10 characters)" in doc.diagnostic
        assert doc.confidence == 0.0

    def test_long_text_is_previewed(self) -> None:
        doc = synthesize_fallback("x" * 50, preview_chars=10)

        assert doc.diagnostic.endswith("x" * 10 + "...")
        assert "(50 characters)" in doc.diagnostic

    def test_has_data(self) -> None:
        assert synthesize_fallback("").has_data() is True
