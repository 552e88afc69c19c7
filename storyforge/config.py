"""Centralized configuration for Storyforge.

Single source of truth for the thresholds, limits and status values used by
the backlog generation pipeline. Runtime settings that operators tune per
deployment are read from the environment by ``PipelineSettings.from_env()``.
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

# =============================================================================
# Enums for Type Safety
# =============================================================================


class RunStatus(Enum):
    """Lifecycle states of a pipeline run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid status values as strings."""
        return [status.value for status in cls]


class HardConstraintsMode(Enum):
    """What to do when post-hoc hard constraints are not met."""

    WARN = "warn"
    FAIL = "fail"


# =============================================================================
# Retrieval
# =============================================================================

TOP_K = 12

RETRIEVAL_CATEGORIES = ["functional", "integration", "security", "data", "flows", "nfr"]

# Category-specific guidance used as the similarity query text
CATEGORY_QUERIES: dict[str, str] = {
    "functional": "Extract user and system functionality and actions, including CRUD, screens and operating rules.",
    "integration": "Extract integrations, APIs, events, webhooks, external systems and interface contracts.",
    "security": "Extract security, permissions, roles, auditing, logging, privacy, encryption and authentication.",
    "data": "Extract entities, fields, states, identifiers, data rules and data validations.",
    "nfr": "Extract non-functional requirements: performance, availability, scalability, observability, SLAs.",
    "flows": "Extract end-to-end flows, steps, states, exceptions, retries and alternative paths.",
    "validation": "Extract validations, implicit acceptance criteria, errors, messages and conditions.",
}

# Number of merged hits rendered into the analysis context
MERGED_CONTEXT_LIMIT = 30

# =============================================================================
# Chunking
# =============================================================================

CHUNK_SIZE = 600
CHUNK_OVERLAP = 120

# A long text that still yields a single chunk is re-chunked with halved sizes
ADAPTIVE_MIN_TEXT_CHARS = 2000
ADAPTIVE_MIN_CHUNK_SIZE = 300
ADAPTIVE_MIN_OVERLAP = 60

# =============================================================================
# Story Extraction
# =============================================================================

MAX_REFINEMENT_PASSES = 3
TARGET_STORIES_FLOOR = 5
TARGET_STORIES_CEILING = 30
DEDUPE_SIMILARITY = 0.82
GAP_COVERAGE_TOP_N = 10
COVERAGE_MATCH_THRESHOLD = 0.18

# Acceptance criteria are padded up to this count during normalization
MIN_NORMALIZED_AC = 5
FALLBACK_ACCEPTANCE_CRITERION = (
    "DADO un contexto valido CUANDO se ejecuta la accion "
    "ENTONCES el sistema responde segun la regla definida."
)
DEFAULT_TRACE_CONFIDENCE = 0.8
PLACEHOLDER_CHUNK_ID = "unknown"
PLACEHOLDER_TRACE_CONFIDENCE = 0.5

# =============================================================================
# Consistency Enforcement
# =============================================================================

ACTOR_BY_FUNCTIONALITY_THRESHOLD = 0.15
ACTOR_BY_NAME_THRESHOLD = 0.20
EVIDENCE_MATCH_THRESHOLD = 0.12
MAX_FUNCTIONALITY_TRACE_LINKS = 3
MAX_EVIDENCE_TRACE_LINKS = 3
MAX_TRACE_LINKS = 4
FUNCTIONALITY_CONFIDENCE_RANGE = (0.55, 0.95)
EVIDENCE_CONFIDENCE_RANGE = (0.50, 0.90)

# =============================================================================
# Deterministic Quality Gate
# =============================================================================

CHARS_PER_EXPECTED_STORY = 1200
MIN_STORIES_FLOOR = 3
MIN_ACCEPTANCE_CRITERIA = 5
MIN_NOTES_SECTIONS = 2

# Ceilings applied to the validation score per violated rule
CEILING_MIN_STORIES = 80
CEILING_WEAK_AC = 75
CEILING_NO_NEGATIVE_AC = 85
CEILING_MISSING_NOTES = 80
CEILING_GENERIC_ACTOR = 80
CEILING_VAGUE_VERB = 85

NEGATIVE_AC_MARKERS = ["error", "falla", "no "]
GENERIC_ROLES = ["usuario"]
VAGUE_VERBS = ["gestionar", "permitir", "soportar", "manejar"]

# =============================================================================
# Expected-Stories Evaluation
# =============================================================================

MATCH_THRESHOLD = 0.45

STORY_SIMILARITY_WEIGHTS: dict[str, float] = {
    "role": 0.25,
    "title": 0.25,
    "want": 0.35,
    "so_that": 0.15,
}

QUALITY_SCORE_WEIGHTS: dict[str, float] = {
    "coverage": 0.30,
    "precision": 0.15,
    "avg_match_score": 0.15,
    "actor_consistency": 0.15,
    "ac_gwt_ratio": 0.10,
    "stories_with_enough_ac": 0.10,
    "stories_with_notes": 0.05,
}

GIVEN_WHEN_THEN_MARKERS = ("dado", "cuando", "entonces")

# =============================================================================
# Learning
# =============================================================================

DEFAULT_MIN_QUALITY_SCORE = 0.55
DEFAULT_MIN_VALIDATION_SCORE = 75.0
DEFAULT_MIN_FUNCTIONALITY_COVERAGE = 0.70
GUIDANCE_TOP_N = 6

# Record store names for the durable, process-wide state
LEARNING_RECORD = "quality_patterns"
RUNS_RECORD = "runs"
FEEDBACK_RECORD = "run_feedback"
MEMORY_RECORD = "memory"

# =============================================================================
# Memory Context
# =============================================================================

MEMORY_TOP_K = 6

# Leading document characters used as the memory similarity query
MEMORY_QUERY_CHARS = 2000

# Items whose tags contain any of these are never injected into prompts
MEMORY_EXCLUDED_TAGS = ("golden_excel",)

# =============================================================================
# Runtime Settings
# =============================================================================


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'") from None


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from None


@dataclass(frozen=True)
class PipelineSettings:
    """Operator-tunable settings for a pipeline run.

    Attributes:
        hard_constraints_mode: Whether unmet hard constraints warn or abort
        min_quality_score: Minimum evaluator quality score (0-1)
        min_validation_score: Minimum validation score (0-100)
        min_functionality_coverage: Minimum functionality coverage ratio (0-1)
        data_dir: Directory for durable records (runs, feedback, learning)
        output_dir: Directory where run artifacts are written
        context_dir: Directory holding expected stories and human feedback
    """

    hard_constraints_mode: HardConstraintsMode = HardConstraintsMode.WARN
    min_quality_score: float = DEFAULT_MIN_QUALITY_SCORE
    min_validation_score: float = DEFAULT_MIN_VALIDATION_SCORE
    min_functionality_coverage: float = DEFAULT_MIN_FUNCTIONALITY_COVERAGE
    data_dir: Path = Path("data")
    output_dir: Path = Path("outputs")
    context_dir: Path = Path("context")

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Create settings from environment variables."""
        mode_str = os.getenv("HARD_CONSTRAINTS_MODE", "warn").strip().lower()
        try:
            mode = HardConstraintsMode(mode_str)
        except ValueError:
            valid = ", ".join(m.value for m in HardConstraintsMode)
            raise ValueError(
                f"HARD_CONSTRAINTS_MODE must be one of: {valid}, got '{mode_str}'"
            ) from None

        return cls(
            hard_constraints_mode=mode,
            min_quality_score=env_float("MIN_QUALITY_SCORE", DEFAULT_MIN_QUALITY_SCORE),
            min_validation_score=env_float("MIN_VALIDATION_SCORE", DEFAULT_MIN_VALIDATION_SCORE),
            min_functionality_coverage=env_float(
                "MIN_FUNCTIONALITY_COVERAGE", DEFAULT_MIN_FUNCTIONALITY_COVERAGE
            ),
            data_dir=Path(os.getenv("STORYFORGE_DATA_DIR", "data")),
            output_dir=Path(os.getenv("STORYFORGE_OUTPUT_DIR", "outputs")),
            context_dir=Path(os.getenv("STORYFORGE_CONTEXT_DIR", "context")),
        )
