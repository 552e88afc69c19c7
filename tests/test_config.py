"""Tests for environment-driven pipeline settings."""

from pathlib import Path

import pytest

from storyforge.config import HardConstraintsMode, PipelineSettings

ENV_VARS = (
    "HARD_CONSTRAINTS_MODE",
    "MIN_QUALITY_SCORE",
    "MIN_VALIDATION_SCORE",
    "MIN_FUNCTIONALITY_COVERAGE",
    "STORYFORGE_DATA_DIR",
    "STORYFORGE_OUTPUT_DIR",
    "STORYFORGE_CONTEXT_DIR",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestPipelineSettingsFromEnv:
    def test_defaults(self):
        settings = PipelineSettings.from_env()

        assert settings == PipelineSettings()
        assert settings.hard_constraints_mode == HardConstraintsMode.WARN
        assert settings.min_quality_score == 0.55
        assert settings.min_validation_score == 75.0
        assert settings.min_functionality_coverage == 0.70

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HARD_CONSTRAINTS_MODE", " FAIL ")
        monkeypatch.setenv("MIN_QUALITY_SCORE", "0.7")
        monkeypatch.setenv("MIN_VALIDATION_SCORE", "")
        monkeypatch.setenv("STORYFORGE_OUTPUT_DIR", str(tmp_path / "out"))

        settings = PipelineSettings.from_env()

        assert settings.hard_constraints_mode == HardConstraintsMode.FAIL
        assert settings.min_quality_score == 0.7
        assert settings.min_validation_score == 75.0
        assert settings.output_dir == Path(tmp_path / "out")

    def test_invalid_mode(self, monkeypatch):
        monkeypatch.setenv("HARD_CONSTRAINTS_MODE", "explode")

        with pytest.raises(ValueError, match="HARD_CONSTRAINTS_MODE"):
            PipelineSettings.from_env()

    def test_invalid_number_names_variable(self, monkeypatch):
        monkeypatch.setenv("MIN_FUNCTIONALITY_COVERAGE", "alto")

        with pytest.raises(ValueError, match="MIN_FUNCTIONALITY_COVERAGE"):
            PipelineSettings.from_env()
