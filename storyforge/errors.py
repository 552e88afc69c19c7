"""Exception hierarchy for the backlog generation pipeline.

Each class maps to one failure category:
- GenerationError: a completion produced no usable JSON (unrecoverable)
- SchemaValidationError: parsed JSON failed structural validation
- HardConstraintError: post-hoc business thresholds unmet in "fail" mode
- FeedbackError / RunNotFoundError: feedback rejected before any mutation

Store and completion-provider exceptions are not wrapped; they propagate
to the caller unchanged.
"""

from typing import Any


class StoryforgeError(Exception):
    """Base class for all pipeline errors."""


class GenerationError(StoryforgeError):
    """Raised when a completion cannot be turned into the expected JSON value."""

    def __init__(self, message: str, raw_content: str = ""):
        super().__init__(message)
        self.raw_content = raw_content


class SchemaValidationError(StoryforgeError):
    """Raised when a parsed object fails schema validation."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class HardConstraintError(StoryforgeError):
    """Raised when hard constraints fail and the mode is ``fail``."""

    def __init__(self, message: str, evaluation: dict[str, Any] | None = None):
        super().__init__(message)
        self.evaluation = evaluation or {}


class FeedbackError(StoryforgeError):
    """Raised when human feedback cannot be applied to a run."""


class RunNotFoundError(FeedbackError):
    """Raised when a run id is not present in the run registry."""

    def __init__(self, run_id: str):
        super().__init__(f"Run not found: {run_id}")
        self.run_id = run_id
