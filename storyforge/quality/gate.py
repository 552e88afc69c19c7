"""Deterministic quality gate.

Rule-based checks over a validated backlog. Each violation appends one
finding and clamps the report score to the rule's ceiling; the score is
never raised.
"""

import logging

from storyforge.config import (
    CEILING_GENERIC_ACTOR,
    CEILING_MIN_STORIES,
    CEILING_MISSING_NOTES,
    CEILING_NO_NEGATIVE_AC,
    CEILING_VAGUE_VERB,
    CEILING_WEAK_AC,
    CHARS_PER_EXPECTED_STORY,
    GENERIC_ROLES,
    MIN_ACCEPTANCE_CRITERIA,
    MIN_NOTES_SECTIONS,
    MIN_STORIES_FLOOR,
    NEGATIVE_AC_MARKERS,
    VAGUE_VERBS,
)
from storyforge.models import (
    Backlog,
    FindingType,
    Severity,
    UserStory,
    ValidationFinding,
    ValidationReport,
)
from storyforge.similarity import normalize

logger = logging.getLogger(__name__)


def minimum_story_count(raw_text_length: int) -> int:
    """Expected minimum backlog size for a document of the given length."""
    return max(MIN_STORIES_FLOOR, raw_text_length // CHARS_PER_EXPECTED_STORY)


def has_negative_criterion(story: UserStory) -> bool:
    return any(
        marker in criterion.lower()
        for criterion in story.acceptance_criteria
        for marker in NEGATIVE_AC_MARKERS
    )


def valid_notes_sections(story: UserStory) -> int:
    return sum(1 for n in story.notes_hu if any(b.strip() for b in n.bullets))


def is_generic_role(role: str) -> bool:
    return normalize(role) in GENERIC_ROLES


def has_vague_verb(want: str) -> bool:
    lowered = want.lower()
    return any(verb in lowered for verb in VAGUE_VERBS)


class _Gate:
    """Accumulates findings and the clamped score for one report."""

    def __init__(self, report: ValidationReport):
        self.score = report.score
        self.findings = list(report.findings)

    def violate(
        self,
        ceiling: float,
        type_: FindingType,
        severity: Severity,
        message: str,
        suggested_fix: str,
        target_id: str | None = None,
    ) -> None:
        self.score = min(self.score, ceiling)
        self.findings.append(
            ValidationFinding(
                type=type_,
                severity=severity,
                target_id=target_id,
                message=message,
                suggested_fix=suggested_fix,
            )
        )


def apply_deterministic_quality_gate(
    backlog: Backlog, report: ValidationReport, raw_text_length: int
) -> ValidationReport:
    """Return a copy of ``report`` with rule findings added and the score clamped.

    Args:
        backlog: Schema-validated backlog.
        report: Report from the generative validator.
        raw_text_length: Character length of the source document text.
    """
    gate = _Gate(report)

    min_stories = minimum_story_count(raw_text_length)
    if len(backlog.user_stories) < min_stories:
        gate.violate(
            CEILING_MIN_STORIES,
            FindingType.MISSING_FLOW,
            Severity.MEDIUM,
            f"Backlog has {len(backlog.user_stories)} stories, expected at least {min_stories}.",
            "Review the functional decomposition.",
        )

    for story in backlog.user_stories:
        sid = story.story_id

        if len(story.acceptance_criteria) < MIN_ACCEPTANCE_CRITERIA:
            gate.violate(
                CEILING_WEAK_AC,
                FindingType.WEAK_AC,
                Severity.MEDIUM,
                f"Fewer than {MIN_ACCEPTANCE_CRITERIA} acceptance criteria.",
                "Add happy path, error and edge-case scenarios.",
                sid,
            )

        if not has_negative_criterion(story):
            gate.violate(
                CEILING_NO_NEGATIVE_AC,
                FindingType.MISSING_FLOW,
                Severity.LOW,
                "No negative or error scenario in the acceptance criteria.",
                "Add at least one failure criterion.",
                sid,
            )

        if valid_notes_sections(story) < MIN_NOTES_SECTIONS:
            gate.violate(
                CEILING_MISSING_NOTES,
                FindingType.MISSING_NOTES,
                Severity.MEDIUM,
                "Insufficient notes sections.",
                "Add technical rules and edge cases.",
                sid,
            )

        if is_generic_role(story.role):
            gate.violate(
                CEILING_GENERIC_ACTOR,
                FindingType.BAD_ACTOR,
                Severity.MEDIUM,
                "Actor is too generic.",
                "Name a concrete actor.",
                sid,
            )

        if has_vague_verb(story.want):
            gate.violate(
                CEILING_VAGUE_VERB,
                FindingType.AMBIGUITY,
                Severity.MEDIUM,
                "Vague verb in want.",
                "Replace it with a concrete action.",
                sid,
            )

    added = len(gate.findings) - len(report.findings)
    logger.info(f"quality gate: score {report.score} -> {gate.score}, {added} findings added")
    return report.model_copy(update={"score": gate.score, "findings": gate.findings})
