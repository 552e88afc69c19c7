"""Tests for the learning store: gating, running averages and guidance."""

import pytest

from storyforge.learning import LearningStore
from storyforge.learning.store import normalize_key, running_average
from storyforge.storage import InMemoryRecordStore


@pytest.fixture
def generated(user_story):
    return [user_story(story_id="US-1"), user_story(story_id="US-2", role="Cajero")]


def _expected(expected_story, count: int, role: str = "Administrador"):
    return [expected_story(story_id=f"EXP-{i}", role=role) for i in range(count)]


class TestRunningAverage:
    def test_first_value(self):
        assert running_average(0.0, 1, 10) == 10

    def test_incremental_mean(self):
        assert running_average(10.0, 2, 20) == 15
        assert running_average(15.0, 3, 30) == 20


class TestNormalizeKey:
    def test_lowercase_diacritics_whitespace(self):
        assert normalize_key("  Gestión   de  Órdenes ") == "gestion de ordenes"


class TestLearningProfile:
    def test_lazy_creation(self, records, learning):
        assert records.read("quality_patterns", None) is None
        profile = learning.profile()
        assert profile.runs == 0
        assert records.read("quality_patterns", None) is not None

    def test_guidance_empty_before_first_run(self, learning):
        assert learning.guidance_text() == ""


class TestUpdateFromRun:
    """Threshold gating and running statistics."""

    def test_two_qualifying_runs_average_target(self, learning, generated, expected_story):
        first = learning.update_from_run(
            generated, _expected(expected_story, 10), validation_score=90, quality_score=0.80
        )
        assert first.updated
        assert first.reason == "ok"
        assert learning.profile().stats.target_stories_avg == 10

        learning.update_from_run(
            generated, _expected(expected_story, 20), validation_score=90, quality_score=0.80
        )
        profile = learning.profile()
        assert profile.runs == 2
        assert profile.stats.target_stories_avg == 15
        assert profile.stats.validation_score_avg == 90

    def test_quality_below_threshold(self, records, learning, generated):
        result = learning.update_from_run(generated, validation_score=90, quality_score=0.5)
        assert not result.updated
        assert result.reason == "quality_below_threshold"
        assert result.values == {"qualityScore": 0.5, "validationScore": 90}
        assert records.read("quality_patterns", None) is None

    def test_validation_below_threshold(self, learning, generated):
        result = learning.update_from_run(generated, validation_score=74.9, quality_score=0.9)
        assert not result.updated
        assert result.reason == "validation_below_threshold"

    def test_no_generated_stories(self, learning):
        result = learning.update_from_run([], validation_score=100, quality_score=1.0)
        assert not result.updated
        assert result.reason == "no_generated_stories"

    def test_custom_thresholds(self, learning, generated):
        result = learning.update_from_run(
            generated, validation_score=50, quality_score=0.3, min_quality=0.2, min_validation=40
        )
        assert result.updated

    def test_forced_acceptance_bypasses_thresholds(self, learning, generated):
        result = learning.update_from_run(
            generated, validation_score=10, quality_score=0.1, force_accept=True
        )
        assert result.updated
        assert result.reason == "forced_by_human"
        assert learning.profile().runs == 1

    def test_forced_acceptance_of_qualifying_run_is_ok(self, learning, generated):
        result = learning.update_from_run(
            generated, validation_score=90, quality_score=0.9, force_accept=True
        )
        assert result.reason == "ok"

    def test_counts_come_from_generated_without_expected(self, learning, generated):
        learning.update_from_run(generated, validation_score=90, quality_score=0.9)
        profile = learning.profile()
        assert profile.role_counts == {"administrador": 1, "cajero": 1}
        assert profile.notes_section_counts == {"reglas de negocio": 2, "casos borde": 2}
        assert profile.stats.target_stories_avg == 2

    def test_counts_come_from_expected_when_present(self, learning, generated, expected_story):
        learning.update_from_run(
            generated,
            _expected(expected_story, 3, role="Auditor Fiscal"),
            validation_score=90,
            quality_score=0.9,
        )
        profile = learning.profile()
        assert profile.role_counts == {"auditor fiscal": 3}
        assert profile.notes_section_counts == {"reglas de negocio": 3}
        assert profile.stats.target_ac_avg == 1

    def test_shared_record_store_between_instances(self, generated):
        records = InMemoryRecordStore()
        LearningStore(records).update_from_run(generated, validation_score=90, quality_score=0.9)
        assert LearningStore(records).profile().runs == 1


class TestGuidance:
    def test_ranked_roles_and_sections(self, learning, generated):
        learning.update_from_run(generated, validation_score=90, quality_score=0.9)
        learning.update_from_run(generated[:1], validation_score=90, quality_score=0.9)

        text = learning.guidance_text()
        assert "- learned_runs: 2" in text
        assert "- learned_frequent_roles: administrador, cajero" in text

    def test_top_n_limit(self, learning, user_story):
        stories = [user_story(story_id=f"US-{i}", role=f"Rol{i}") for i in range(8)]
        learning.update_from_run(stories, validation_score=90, quality_score=0.9)

        roles_line = next(
            line for line in learning.guidance_text().splitlines() if "frequent_roles" in line
        )
        assert len(roles_line.split(": ", 1)[1].split(", ")) == 6

    def test_suggested_target_uses_learned_average(self, learning, generated, expected_story):
        learning.update_from_run(
            generated, _expected(expected_story, 14), validation_score=90, quality_score=0.9
        )
        assert learning.suggest_target_stories(functionality_count=8, expected_count=0) == 14

    def test_suggested_target_rounds_half_up(self, learning, generated, expected_story):
        for count in (20, 25):
            learning.update_from_run(
                generated, _expected(expected_story, count), validation_score=90, quality_score=0.9
            )
        assert learning.profile().stats.target_stories_avg == 22.5
        assert learning.suggest_target_stories(functionality_count=8, expected_count=0) == 23
