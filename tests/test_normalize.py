"""Tests for backlog normalization and functionality coverage."""

from storyforge.config import FALLBACK_ACCEPTANCE_CRITERION
from storyforge.extraction.coverage import compute_functionality_coverage, story_match_text
from storyforge.extraction.normalize import (
    normalize_backlog,
    normalize_criterion,
    normalize_story,
    normalize_trace_link,
)
from storyforge.models import Backlog, FunctionalityCatalog

PLACEHOLDER = {"chunkId": "unknown", "confidence": 0.5}


class TestNormalizeTraceLink:
    def test_bare_string(self):
        assert normalize_trace_link("c_9") == {"chunkId": "c_9", "confidence": 0.8}

    def test_dict_keeps_confidence(self):
        assert normalize_trace_link({"chunkId": "c_1", "confidence": 0.3}) == {
            "chunkId": "c_1",
            "confidence": 0.3,
        }

    def test_dict_without_confidence(self):
        assert normalize_trace_link({"chunkId": "c_1"}) == {"chunkId": "c_1", "confidence": 0.8}

    def test_malformed(self):
        assert normalize_trace_link({"id": "c_1"}) == PLACEHOLDER
        assert normalize_trace_link(42) == PLACEHOLDER


class TestNormalizeCriterion:
    def test_given_when_then_dict(self):
        criterion = {"given": "un cliente", "when": "paga", "then": "se emite factura"}
        assert normalize_criterion(criterion) == "DADO un cliente CUANDO paga ENTONCES se emite factura"

    def test_partial_dict_is_joined(self):
        assert normalize_criterion({"given": "un cliente", "then": "algo"}) == "un cliente algo"

    def test_string_passthrough(self):
        assert normalize_criterion("DADO x CUANDO y ENTONCES z") == "DADO x CUANDO y ENTONCES z"


class TestNormalizeStory:
    def test_empty_traceability_gets_placeholder(self):
        story = normalize_story({"traceability": []})
        assert story["traceability"] == [PLACEHOLDER]

    def test_missing_traceability_gets_placeholder(self):
        story = normalize_story({"traceability": "c_1"})
        assert story["traceability"] == [PLACEHOLDER]

    def test_pads_criteria_to_five(self):
        story = normalize_story({"acceptanceCriteria": ["DADO a CUANDO b ENTONCES c"]})
        assert len(story["acceptanceCriteria"]) == 5
        assert story["acceptanceCriteria"][1:] == [FALLBACK_ACCEPTANCE_CRITERION] * 4

    def test_long_lists_untouched(self):
        criteria = [f"DADO caso {i} CUANDO ocurre ENTONCES pasa" for i in range(7)]
        story = normalize_story({"acceptanceCriteria": list(criteria)})
        assert story["acceptanceCriteria"] == criteria


class TestNormalizeBacklog:
    def test_normalized_candidate_passes_schema(self, story_dict):
        story = story_dict(
            criteria=[{"given": "un cliente valido", "when": "se registra", "then": "se guarda"}],
            traceability=["c_1", {"bad": True}],
        )
        candidate = normalize_backlog(
            {"documentId": "doc", "versionId": "v1", "generatedAt": "now", "userStories": [story]}
        )
        backlog = Backlog.model_validate(candidate)

        parsed = backlog.user_stories[0]
        assert len(parsed.acceptance_criteria) == 5
        assert [t.chunk_id for t in parsed.traceability] == ["c_1", "unknown"]

    def test_missing_stories_key(self):
        assert normalize_backlog({}) == {}


class TestFunctionalityCoverage:
    def _catalog(self) -> FunctionalityCatalog:
        return FunctionalityCatalog.model_validate(
            {
                "functionalities": [
                    {
                        "id": "F1",
                        "action": "registrar cliente nuevo con datos fiscales",
                        "userGoal": "facturarle sus compras",
                        "validations": ["rfc duplicado muestra error", "campo vacio formulario"],
                    },
                    {"id": "F2", "action": "exportar inventario almacen", "userGoal": "auditar"},
                ]
            }
        )

    def test_empty_catalog(self, story_dict):
        coverage = compute_functionality_coverage(FunctionalityCatalog(), [story_dict()])
        assert coverage.total_functionalities == 0
        assert coverage.coverage == 0.0

    def test_partial_coverage(self, story_dict):
        coverage = compute_functionality_coverage(self._catalog(), [story_dict()])
        assert coverage.covered_functionalities == 1
        assert coverage.coverage == 0.5
        assert [u.id for u in coverage.uncovered_top] == ["F2"]

    def test_no_stories(self):
        coverage = compute_functionality_coverage(self._catalog(), [])
        assert coverage.coverage == 0.0
        assert len(coverage.uncovered_top) == 2

    def test_uncovered_sorted_by_score_and_capped(self):
        catalog = FunctionalityCatalog.model_validate(
            {"functionalities": [{"id": f"F{i}", "action": f"accion{i} distinta"} for i in range(12)]}
        )
        coverage = compute_functionality_coverage(catalog, [])
        assert len(coverage.uncovered_top) == 10

    def test_to_dict_is_camel_case(self, story_dict):
        payload = compute_functionality_coverage(self._catalog(), [story_dict()]).to_dict()
        assert payload["uncoveredTop"][0]["id"] == "F2"
        assert payload["totalFunctionalities"] == 2

    def test_story_match_text_includes_criteria(self):
        text = story_match_text({"title": "T1", "acceptanceCriteria": ["DADO x"]})
        assert "DADO x" in text
