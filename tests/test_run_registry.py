"""Tests for the run lifecycle registry."""

import pytest

from storyforge.errors import RunNotFoundError, StoryforgeError
from storyforge.runs import RunRegistry
from storyforge.runs.registry import RunFeedbackSummary
from storyforge.storage import InMemoryRecordStore


class TestRunLifecycle:
    """running -> completed | failed, exactly once."""

    def test_start_registers_running_run(self, registry):
        run = registry.start("requisitos.md", "/tmp/requisitos.md")

        assert run.run_id.startswith("run_")
        assert run.status == "running"
        assert run.finished_at is None
        assert registry.find(run.run_id) == run

    def test_complete_records_outputs(self, registry):
        run = registry.start("requisitos.md")
        done = registry.complete(run.run_id, {"backlog": "/out/requisitos.backlog.json"})

        assert done.status == "completed"
        assert done.is_completed
        assert done.finished_at is not None
        assert registry.find(run.run_id).outputs == {"backlog": "/out/requisitos.backlog.json"}

    def test_fail_records_error(self, registry):
        run = registry.start("requisitos.md")
        failed = registry.fail(run.run_id, "No valid JSON found")

        assert failed.status == "failed"
        assert failed.error == "No valid JSON found"
        assert not failed.is_completed

    def test_finishing_twice_raises(self, registry):
        run = registry.start("requisitos.md")
        registry.complete(run.run_id, {})

        with pytest.raises(StoryforgeError, match="already completed"):
            registry.fail(run.run_id, "late failure")
        assert registry.find(run.run_id).status == "completed"

    def test_finishing_unknown_run_raises(self, registry):
        with pytest.raises(RunNotFoundError):
            registry.complete("run_missing", {})

    def test_list_keeps_start_order(self, registry):
        first = registry.start("a.md", run_id="run_a")
        second = registry.start("b.md", run_id="run_b")

        assert [r.run_id for r in registry.list()] == [first.run_id, second.run_id]
        assert registry.find("run_c") is None


class TestAttachFeedback:
    def test_attach_feedback_to_run(self, registry):
        run = registry.start("requisitos.md")
        registry.complete(run.run_id, {})
        summary = RunFeedbackSummary(
            feedback_id="fb_1",
            created_at="2026-01-01T00:00:00Z",
            corrected_stories_count=2,
            learning_updated=True,
        )
        registry.attach_feedback(run.run_id, summary)

        stored = registry.find(run.run_id)
        assert stored.feedback.feedback_id == "fb_1"
        assert stored.status == "completed"

    def test_attach_feedback_unknown_run(self, registry):
        summary = RunFeedbackSummary(feedback_id="fb_1", created_at="x", corrected_stories_count=1)
        with pytest.raises(RunNotFoundError):
            registry.attach_feedback("run_missing", summary)


class TestWireFormat:
    def test_runs_are_stored_camel_case(self):
        records = InMemoryRecordStore()
        registry = RunRegistry(records)
        run = registry.start("requisitos.md", run_id="run_x")

        stored = records.read("runs", [])
        assert stored[0]["runId"] == run.run_id
        assert stored[0]["originalName"] == "requisitos.md"
        assert stored[0]["status"] == "running"
