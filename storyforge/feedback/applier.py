"""Human feedback on completed runs.

Corrected stories are treated as the expected set for the run's generated
stories and folded into the learning profile. Every submission is appended
to the feedback history and summarized on the run record.
"""

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from storyforge.config import FEEDBACK_RECORD, PipelineSettings
from storyforge.errors import FeedbackError, RunNotFoundError
from storyforge.evaluation.golden import to_expected_story
from storyforge.learning.store import LearningStore, LearningUpdate
from storyforge.models import ExpectedStory, UserStory
from storyforge.runs.registry import RunFeedbackSummary, RunRecord, RunRegistry, utc_now
from storyforge.storage.records import RecordStore

logger = logging.getLogger(__name__)


def normalize_corrected_stories(stories: Any) -> list[ExpectedStory]:
    """Trim fields, flatten notes and drop empty criteria of each corrected story."""
    if not isinstance(stories, list):
        return []
    return [to_expected_story(s) for s in stories if isinstance(s, dict)]


def load_feedback_history(records: RecordStore, record_name: str = FEEDBACK_RECORD) -> list[dict]:
    history = records.read(record_name, [])
    return history if isinstance(history, list) else []


def _read_run_output(run: RunRecord, key: str, required: bool = True) -> Any:
    path_str = run.outputs.get(key)
    if not path_str:
        if required:
            raise FeedbackError(f"Run output missing: {key}")
        return None

    path = Path(path_str)
    if not path.exists():
        if required:
            raise FeedbackError(f"Run output file not found for {key}: {path}")
        return None

    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise FeedbackError(f"Run output {key} is not valid JSON: {path}") from e


@dataclass
class FeedbackResult:
    run_id: str
    feedback_id: str
    created_at: str
    corrected_stories_count: int
    accepted: bool
    learning_update: LearningUpdate

    def to_dict(self) -> dict:
        return {
            "runId": self.run_id,
            "feedbackId": self.feedback_id,
            "createdAt": self.created_at,
            "correctedStoriesCount": self.corrected_stories_count,
            "accepted": self.accepted,
            "learningUpdate": self.learning_update.to_dict(),
        }


class FeedbackApplier:
    """Applies human corrections to completed runs.

    Args:
        registry: Run registry holding the run records.
        learning: Learning store to update.
        records: Record store for the feedback history.
        settings: Thresholds for the learning update.
    """

    def __init__(
        self,
        registry: RunRegistry,
        learning: LearningStore,
        records: RecordStore,
        settings: PipelineSettings | None = None,
    ):
        self.registry = registry
        self.learning = learning
        self.records = records
        self.settings = settings or PipelineSettings()

    def history(self) -> list[dict]:
        return load_feedback_history(self.records)

    def _generated_stories(self, run: RunRecord) -> list[UserStory]:
        backlog = _read_run_output(run, "backlog")
        raw_stories = backlog.get("userStories") if isinstance(backlog, dict) else None
        if not raw_stories:
            raise FeedbackError(f"Run {run.run_id} has no generated stories in backlog.")
        try:
            return [UserStory.model_validate(s) for s in raw_stories]
        except ValidationError as e:
            raise FeedbackError(f"Run {run.run_id} backlog is not a valid backlog: {e}") from e

    def apply(
        self,
        run_id: str,
        corrected_stories: Any,
        author: str | None = None,
        notes: str | None = None,
        accepted: bool = True,
    ) -> FeedbackResult:
        """Apply one feedback submission.

        ``accepted=True`` marks an explicit human approval, which bypasses the
        learning thresholds; rejected feedback is still gated by them.

        Raises:
            RunNotFoundError: If the run does not exist.
            FeedbackError: If the run is not completed, has no generated
                stories, or no corrected stories are supplied.
        """
        run = self.registry.find(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        if not run.is_completed:
            raise FeedbackError(f"Run {run_id} is not completed.")

        generated = self._generated_stories(run)
        validation = _read_run_output(run, "validation") or {}
        evaluation = _read_run_output(run, "eval", required=False) or {}

        corrected = normalize_corrected_stories(corrected_stories)
        if not corrected:
            raise FeedbackError("Feedback must include at least one corrected story.")

        validation_score = float(validation.get("score") or 0)
        quality_score = float(evaluation.get("qualityScore") or 0)

        learning_update = self.learning.update_from_run(
            generated=generated,
            expected=corrected,
            validation_score=validation_score,
            quality_score=quality_score,
            min_quality=self.settings.min_quality_score,
            min_validation=self.settings.min_validation_score,
            force_accept=accepted,
        )

        feedback_id = f"fb_{int(time.time() * 1000)}"
        created_at = utc_now()
        record = {
            "feedbackId": feedback_id,
            "runId": run_id,
            "createdAt": created_at,
            "author": author,
            "notes": notes,
            "accepted": accepted,
            "correctedStoriesCount": len(corrected),
            "learningUpdate": learning_update.to_dict(),
        }
        self.records.update(FEEDBACK_RECORD, lambda history: [*history, record], [])

        self.registry.attach_feedback(
            run_id,
            RunFeedbackSummary(
                feedback_id=feedback_id,
                created_at=created_at,
                author=author,
                corrected_stories_count=len(corrected),
                notes=notes,
                accepted=accepted,
                learning_updated=learning_update.updated,
            ),
        )

        logger.info(
            f"Feedback {feedback_id} applied to run {run_id}: "
            f"{len(corrected)} corrected stories, learning {learning_update.reason}"
        )
        return FeedbackResult(
            run_id=run_id,
            feedback_id=feedback_id,
            created_at=created_at,
            corrected_stories_count=len(corrected),
            accepted=accepted,
            learning_update=learning_update,
        )
