"""Tests for applying human feedback to completed runs."""

import json

import pytest

from storyforge.cli import read_feedback_file
from storyforge.errors import FeedbackError, RunNotFoundError, StoryforgeError
from storyforge.feedback import FeedbackApplier, load_feedback_history, load_human_feedback
from storyforge.feedback.applier import normalize_corrected_stories


def _write(path, payload):
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
    return str(path)


@pytest.fixture
def run_outputs(tmp_path, story_dict):
    """Factory writing run output files and returning the outputs mapping."""

    def _make(stories=None, validation_score=60, quality_score=0.3, with_eval=True):
        out = tmp_path / "outputs"
        out.mkdir(exist_ok=True)
        outputs = {
            "backlog": _write(
                out / "doc.backlog.json",
                {"userStories": [story_dict()] if stories is None else stories},
            ),
            "validation": _write(
                out / "doc.validation.json", {"score": validation_score, "findings": [], "summary": ""}
            ),
        }
        if with_eval:
            outputs["eval"] = _write(out / "doc.eval.json", {"qualityScore": quality_score})
        return outputs

    return _make


@pytest.fixture
def completed_run(registry, run_outputs):
    def _make(**kwargs):
        run = registry.start("doc.md")
        registry.complete(run.run_id, run_outputs(**kwargs))
        return run.run_id

    return _make


@pytest.fixture
def applier(registry, learning, records, settings):
    return FeedbackApplier(registry, learning, records, settings)


CORRECTED = [
    {
        "storyId": "HU-1",
        "role": " Administrador ",
        "want": "registrar un cliente",
        "soThat": "facturarle",
        "acceptanceCriteria": ["DADO a CUANDO b ENTONCES c", "  "],
        "notesHu": [{"section": "Reglas de negocio", "bullets": ["RFC obligatorio"]}],
    }
]


class TestFeedbackApply:
    """Successful submissions update learning, history and the run record."""

    def test_accepted_feedback_forces_learning(self, applier, completed_run, learning, registry):
        run_id = completed_run()
        result = applier.apply(run_id, CORRECTED, author="ana", notes="revisado")

        assert result.accepted is True
        assert result.corrected_stories_count == 1
        assert result.feedback_id.startswith("fb_")
        assert result.learning_update.updated is True
        assert result.learning_update.reason == "forced_by_human"

        profile = learning.profile()
        assert profile.runs == 1
        assert profile.role_counts == {"administrador": 1}
        assert profile.notes_section_counts == {"reglas de negocio": 1}

        summary = registry.find(run_id).feedback
        assert summary.feedback_id == result.feedback_id
        assert summary.author == "ana"
        assert summary.learning_updated is True

    def test_accepted_above_thresholds_reason_ok(self, applier, completed_run):
        run_id = completed_run(validation_score=90, quality_score=0.8)
        result = applier.apply(run_id, CORRECTED)

        assert result.learning_update.reason == "ok"

    def test_rejected_feedback_stays_gated(self, applier, completed_run, learning, registry):
        run_id = completed_run()
        result = applier.apply(run_id, CORRECTED, accepted=False)

        assert result.learning_update.updated is False
        assert result.learning_update.reason == "quality_below_threshold"
        assert learning.profile().runs == 0
        assert registry.find(run_id).feedback.learning_updated is False
        assert len(applier.history()) == 1

    def test_history_records_every_submission(self, applier, completed_run, records):
        run_id = completed_run()
        applier.apply(run_id, CORRECTED, notes="primera")
        applier.apply(run_id, CORRECTED, notes="segunda")

        history = load_feedback_history(records)
        assert [h["notes"] for h in history] == ["primera", "segunda"]
        assert history[0]["runId"] == run_id
        assert history[0]["learningUpdate"]["updated"] is True

    def test_eval_output_is_optional(self, applier, completed_run):
        run_id = completed_run(with_eval=False, validation_score=90)
        result = applier.apply(run_id, CORRECTED, accepted=False)

        assert result.learning_update.values["qualityScore"] == 0.0

    def test_to_dict_is_camel_case(self, applier, completed_run):
        result = applier.apply(completed_run(), CORRECTED).to_dict()

        assert set(result) == {
            "runId",
            "feedbackId",
            "createdAt",
            "correctedStoriesCount",
            "accepted",
            "learningUpdate",
        }


class TestFeedbackRejected:
    """Invalid submissions raise before any state changes."""

    def _assert_untouched(self, applier, learning):
        assert applier.history() == []
        assert learning.profile().runs == 0

    def test_unknown_run(self, applier, learning):
        with pytest.raises(RunNotFoundError):
            applier.apply("run_missing", CORRECTED)
        self._assert_untouched(applier, learning)

    def test_run_not_completed(self, applier, registry, learning):
        run = registry.start("doc.md")
        with pytest.raises(FeedbackError, match="not completed"):
            applier.apply(run.run_id, CORRECTED)
        self._assert_untouched(applier, learning)

    def test_failed_run(self, applier, registry, learning):
        run = registry.start("doc.md")
        registry.fail(run.run_id, "boom")
        with pytest.raises(FeedbackError, match="not completed"):
            applier.apply(run.run_id, CORRECTED)

    def test_empty_corrections(self, applier, completed_run, learning, registry):
        run_id = completed_run()
        with pytest.raises(FeedbackError, match="at least one corrected story"):
            applier.apply(run_id, [])
        self._assert_untouched(applier, learning)
        assert registry.find(run_id).feedback is None

    def test_run_without_generated_stories(self, applier, completed_run, learning):
        run_id = completed_run(stories=[])
        with pytest.raises(FeedbackError, match="no generated stories"):
            applier.apply(run_id, CORRECTED)
        self._assert_untouched(applier, learning)

    def test_missing_validation_output(self, applier, registry, run_outputs):
        outputs = run_outputs()
        del outputs["validation"]
        run = registry.start("doc.md")
        registry.complete(run.run_id, outputs)

        with pytest.raises(FeedbackError, match="validation"):
            applier.apply(run.run_id, CORRECTED)

    def test_deleted_backlog_file(self, applier, completed_run, tmp_path):
        run_id = completed_run()
        (tmp_path / "outputs" / "doc.backlog.json").unlink()

        with pytest.raises(FeedbackError, match="not found"):
            applier.apply(run_id, CORRECTED)


class TestNormalizeCorrectedStories:
    def test_trims_and_flattens(self):
        (story,) = normalize_corrected_stories(CORRECTED)

        assert story.role == "Administrador"
        assert story.acceptance_criteria == ["DADO a CUANDO b ENTONCES c"]
        assert story.notes_hu == "- Reglas de negocio\n  - RFC obligatorio"

    def test_parses_description(self):
        (story,) = normalize_corrected_stories(
            [{"description": "Como cajero quiero cobrar un ticket para cerrar la venta"}]
        )

        assert (story.role, story.want, story.so_that) == ("cajero", "cobrar un ticket", "cerrar la venta")

    def test_non_list_and_non_dict_items(self):
        assert normalize_corrected_stories({"storyId": "x"}) == []
        assert len(normalize_corrected_stories(["texto", {"title": "ok"}])) == 1


class TestReadFeedbackFile:
    def test_list_file(self, tmp_path):
        path = tmp_path / "fb.json"
        _write(path, CORRECTED)

        assert read_feedback_file(path) == {"correctedStories": CORRECTED}

    def test_object_file(self, tmp_path):
        path = tmp_path / "fb.json"
        _write(path, {"correctedStories": CORRECTED, "accepted": False, "notes": "n"})

        payload = read_feedback_file(path)
        assert payload["accepted"] is False
        assert payload["notes"] == "n"

    def test_scalar_file_raises(self, tmp_path):
        path = tmp_path / "fb.json"
        _write(path, 42)

        with pytest.raises(StoryforgeError):
            read_feedback_file(path)


class TestLoadHumanFeedback:
    def test_missing_folder(self, tmp_path):
        pack = load_human_feedback(tmp_path / "missing")

        assert pack.stories == []
        assert pack.guide_text == ""

    def test_guides_and_stats(self, tmp_path):
        folder = tmp_path / "human_feedback"
        folder.mkdir()
        (folder / "guia.md").write_text("Usar roles concretos.\n", encoding="utf-8")
        (folder / "vacio.txt").write_text("   ", encoding="utf-8")
        _write(folder / "historias.json", {"stories": [CORRECTED[0], {**CORRECTED[0], "storyId": "HU-2"}]})

        pack = load_human_feedback(folder)

        assert len(pack.stories) == 2
        assert pack.guide_text.startswith("### guia.md\nUsar roles concretos.")
        assert "vacio.txt" not in pack.guide_text
        assert "- feedback_stories: 2" in pack.guide_text
        assert "- frequent_roles: Administrador (2)" in pack.guide_text
