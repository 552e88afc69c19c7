"""Run registry.

Tracks the lifecycle of pipeline runs in the ``runs`` record: a run starts
as ``running`` and moves exactly once to ``completed`` or ``failed``.
Feedback summaries are attached to completed runs afterwards.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import Field

from storyforge.config import RUNS_RECORD, RunStatus
from storyforge.errors import RunNotFoundError, StoryforgeError
from storyforge.models import WireModel
from storyforge.storage.records import RecordStore

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class RunFeedbackSummary(WireModel):
    feedback_id: str
    created_at: str
    author: str | None = None
    corrected_stories_count: int
    notes: str | None = None
    accepted: bool = True
    learning_updated: bool = False


class RunRecord(WireModel):
    run_id: str
    status: str = RunStatus.RUNNING.value
    started_at: str
    finished_at: str | None = None
    original_name: str = ""
    stored_path: str = ""
    outputs: dict[str, str] = Field(default_factory=dict)
    error: str | None = None
    feedback: RunFeedbackSummary | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == RunStatus.COMPLETED.value


class RunRegistry:
    """Run lifecycle operations over a record store.

    Args:
        records: Backing record store.
        record_name: Name of the runs record.
    """

    def __init__(self, records: RecordStore, record_name: str = RUNS_RECORD):
        self.records = records
        self.record_name = record_name

    def list(self) -> list[RunRecord]:
        return [RunRecord.model_validate(r) for r in self.records.read(self.record_name, [])]

    def find(self, run_id: str) -> RunRecord | None:
        for run in self.list():
            if run.run_id == run_id:
                return run
        return None

    def upsert(self, run_id: str, updater: Callable[[RunRecord | None], RunRecord]) -> RunRecord:
        """Replace (or append) one run with ``updater(current)`` in a single update."""
        result: list[RunRecord] = []

        def apply(runs: list[dict]) -> list[dict]:
            index = next((i for i, r in enumerate(runs) if r.get("runId") == run_id), None)
            current = RunRecord.model_validate(runs[index]) if index is not None else None
            updated = updater(current)
            result.append(updated)
            if index is None:
                runs.append(updated.to_wire())
            else:
                runs[index] = updated.to_wire()
            return runs

        self.records.update(self.record_name, apply, [])
        return result[0]

    def start(self, original_name: str, stored_path: str = "", run_id: str | None = None) -> RunRecord:
        run = RunRecord(
            run_id=run_id or f"run_{uuid.uuid4()}",
            status=RunStatus.RUNNING.value,
            started_at=utc_now(),
            original_name=original_name,
            stored_path=stored_path,
        )
        self.upsert(run.run_id, lambda _current: run)
        logger.info(f"Run {run.run_id} started for {original_name}")
        return run

    def _finish(self, run_id: str, status: RunStatus, **changes) -> RunRecord:
        def updater(current: RunRecord | None) -> RunRecord:
            if current is None:
                raise RunNotFoundError(run_id)
            if current.status != RunStatus.RUNNING.value:
                raise StoryforgeError(f"Run {run_id} is already {current.status}")
            return current.model_copy(
                update={"status": status.value, "finished_at": utc_now(), **changes}
            )

        return self.upsert(run_id, updater)

    def complete(self, run_id: str, outputs: dict[str, str]) -> RunRecord:
        run = self._finish(run_id, RunStatus.COMPLETED, outputs=dict(outputs))
        logger.info(f"Run {run_id} completed")
        return run

    def fail(self, run_id: str, error: str) -> RunRecord:
        run = self._finish(run_id, RunStatus.FAILED, error=error)
        logger.info(f"Run {run_id} failed: {error}")
        return run

    def attach_feedback(self, run_id: str, summary: RunFeedbackSummary) -> RunRecord:
        def updater(current: RunRecord | None) -> RunRecord:
            if current is None:
                raise RunNotFoundError(run_id)
            return current.model_copy(update={"feedback": summary})

        return self.upsert(run_id, updater)
