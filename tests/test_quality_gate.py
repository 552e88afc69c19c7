"""Tests for the deterministic quality gate and hard constraints."""

import pytest

from storyforge.config import HardConstraintsMode, PipelineSettings
from storyforge.models import Backlog, FindingType, ValidationFinding, ValidationReport
from storyforge.quality.gate import apply_deterministic_quality_gate, minimum_story_count
from storyforge.quality.hard_constraints import evaluate_hard_constraints

FOUR_CRITERIA = [
    "DADO un cliente valido CUANDO se registra ENTONCES se guarda",
    "DADO un RFC duplicado CUANDO se registra ENTONCES se muestra un error",
    "DADO un cliente guardado CUANDO se consulta ENTONCES aparece",
    "DADO un cliente guardado CUANDO se edita ENTONCES se actualiza",
]

POSITIVE_ONLY_CRITERIA = [
    "DADO un cliente valido CUANDO se registra ENTONCES se guarda",
    "DADO un cliente guardado CUANDO se consulta ENTONCES aparece",
    "DADO un cliente guardado CUANDO se edita ENTONCES se actualiza",
    "DADO un cliente guardado CUANDO se exporta ENTONCES se descarga",
    "DADO un cliente guardado CUANDO se archiva ENTONCES se oculta",
]


def _backlog(*stories: dict) -> Backlog:
    return Backlog.model_validate(
        {
            "documentId": "doc",
            "versionId": "v1",
            "generatedAt": "2026-01-01T00:00:00Z",
            "userStories": list(stories),
        }
    )


def _report(score: float = 95, findings: list | None = None) -> ValidationReport:
    return ValidationReport(score=score, findings=findings or [], summary="ok")


def _types(report: ValidationReport) -> list[FindingType]:
    return [f.type for f in report.findings]


class TestMinimumStoryCount:
    def test_floor(self):
        assert minimum_story_count(0) == 3
        assert minimum_story_count(3599) == 3

    def test_scales_with_length(self):
        assert minimum_story_count(12000) == 10


class TestDeterministicQualityGate:
    """Rule findings and score ceilings."""

    def test_clean_backlog_keeps_score(self, story_dict):
        backlog = _backlog(*(story_dict(story_id=f"US-{i}") for i in range(3)))
        result = apply_deterministic_quality_gate(backlog, _report(92), raw_text_length=500)
        assert result.score == 92
        assert result.findings == []

    @pytest.mark.parametrize("prior", [100, 90, 76])
    def test_four_criteria_is_weak_ac_capped_at_75(self, story_dict, prior):
        backlog = _backlog(
            story_dict(story_id="US-1", criteria=FOUR_CRITERIA),
            story_dict(story_id="US-2"),
            story_dict(story_id="US-3"),
        )
        result = apply_deterministic_quality_gate(backlog, _report(prior), raw_text_length=500)

        assert result.score == 75
        weak = [f for f in result.findings if f.type == FindingType.WEAK_AC]
        assert len(weak) == 1
        assert weak[0].target_id == "US-1"

    def test_score_never_increases(self, story_dict):
        backlog = _backlog(story_dict(criteria=FOUR_CRITERIA))
        result = apply_deterministic_quality_gate(backlog, _report(40), raw_text_length=500)
        assert result.score == 40

    def test_too_few_stories(self, story_dict):
        backlog = _backlog(story_dict())
        result = apply_deterministic_quality_gate(backlog, _report(95), raw_text_length=12000)
        assert result.score == 80
        assert _types(result) == [FindingType.MISSING_FLOW]
        assert result.findings[0].target_id is None

    def test_missing_negative_criterion(self, story_dict):
        backlog = _backlog(*(story_dict(story_id=f"US-{i}", criteria=POSITIVE_ONLY_CRITERIA) for i in range(3)))
        result = apply_deterministic_quality_gate(backlog, _report(95), raw_text_length=500)
        assert result.score == 85
        assert _types(result) == [FindingType.MISSING_FLOW] * 3

    def test_missing_notes(self, story_dict):
        one_section = [{"section": "Reglas", "bullets": ["Solo una seccion"]}]
        backlog = _backlog(
            story_dict(story_id="US-1", notes=one_section),
            story_dict(story_id="US-2"),
            story_dict(story_id="US-3"),
        )
        result = apply_deterministic_quality_gate(backlog, _report(95), raw_text_length=500)
        assert result.score == 80
        assert _types(result) == [FindingType.MISSING_NOTES]

    def test_generic_actor(self, story_dict):
        backlog = _backlog(
            story_dict(story_id="US-1", role="Usuario"),
            story_dict(story_id="US-2"),
            story_dict(story_id="US-3"),
        )
        result = apply_deterministic_quality_gate(backlog, _report(95), raw_text_length=500)
        assert result.score == 80
        assert _types(result) == [FindingType.BAD_ACTOR]

    def test_vague_verb(self, story_dict):
        backlog = _backlog(
            story_dict(story_id="US-1", want="gestionar los clientes del sistema"),
            story_dict(story_id="US-2"),
            story_dict(story_id="US-3"),
        )
        result = apply_deterministic_quality_gate(backlog, _report(95), raw_text_length=500)
        assert result.score == 85
        assert _types(result) == [FindingType.AMBIGUITY]

    def test_lowest_ceiling_wins_and_findings_accumulate(self, story_dict):
        existing = ValidationFinding(type="duplicate", severity="low", message="dup")
        backlog = _backlog(story_dict(role="Usuario", criteria=FOUR_CRITERIA))
        result = apply_deterministic_quality_gate(
            backlog, _report(99, [existing]), raw_text_length=12000
        )
        assert result.score == 75
        assert _types(result)[0] == FindingType.DUPLICATE
        assert {FindingType.MISSING_FLOW, FindingType.WEAK_AC, FindingType.BAD_ACTOR} <= set(_types(result))

    def test_input_report_is_not_mutated(self, story_dict):
        report = _report(95)
        apply_deterministic_quality_gate(_backlog(story_dict(criteria=FOUR_CRITERIA)), report, 500)
        assert report.score == 95
        assert report.findings == []


class TestHardConstraints:
    def test_all_pass(self):
        result = evaluate_hard_constraints(
            PipelineSettings(),
            generated_count=10,
            target_count=10,
            validation_score=80,
            quality_score=0.6,
            functionality_coverage=0.75,
        )
        assert result.passed
        assert result.violations == []
        assert result.to_dict()["mode"] == "warn"

    def test_each_violation_is_reported(self):
        settings = PipelineSettings(hard_constraints_mode=HardConstraintsMode.FAIL)
        result = evaluate_hard_constraints(
            settings,
            generated_count=4,
            target_count=10,
            validation_score=60,
            quality_score=0.2,
            functionality_coverage=0.5,
        )
        assert not result.passed
        assert [v.split(" ")[0] for v in result.violations] == [
            "stories",
            "validation_score",
            "quality_score",
            "functionality_coverage",
        ]
        assert result.thresholds["minStories"] == 10
        assert result.values["stories"] == 4
        assert result.to_dict()["mode"] == "fail"
