"""Evaluation of a generated backlog against reference (expected) stories.

Matching is greedy: each expected story, in order, takes the best-scoring
generated story still available, if that score reaches ``MATCH_THRESHOLD``.
Structural metrics (Given/When/Then ratio, criteria count, notes) are computed
over all generated stories regardless of matching.
"""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from storyforge.config import (
    GIVEN_WHEN_THEN_MARKERS,
    MATCH_THRESHOLD,
    MIN_ACCEPTANCE_CRITERIA,
    MIN_NOTES_SECTIONS,
    QUALITY_SCORE_WEIGHTS,
    STORY_SIMILARITY_WEIGHTS,
)
from storyforge.models import ExpectedStory, UserStory
from storyforge.similarity import normalize, overlap

logger = logging.getLogger(__name__)


def round3(value: float) -> float:
    """Round to three decimals with halves rounded up."""
    return math.floor(value * 1000 + 0.5) / 1000


def ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def story_similarity(expected: ExpectedStory, generated: UserStory) -> float:
    """Weighted field overlap: role, title, want and soThat."""
    w = STORY_SIMILARITY_WEIGHTS
    score = (
        overlap(expected.role, generated.role) * w["role"]
        + overlap(expected.title, generated.title) * w["title"]
        + overlap(expected.want, generated.want) * w["want"]
        + overlap(expected.so_that, generated.so_that) * w["so_that"]
    )
    return round3(score)


def is_given_when_then(criterion: str) -> bool:
    text = normalize(criterion)
    return all(marker in text for marker in GIVEN_WHEN_THEN_MARKERS)


def count_valid_notes_sections(story: UserStory) -> int:
    return sum(
        1 for n in story.notes_hu if n.section.strip() and any(b.strip() for b in n.bullets)
    )


def quality_score(metrics: dict[str, float]) -> float:
    return round3(sum(metrics[name] * weight for name, weight in QUALITY_SCORE_WEIGHTS.items()))


@dataclass
class StoryMatch:
    expected_index: int
    generated_index: int
    score: float
    role_match: bool

    def to_dict(self) -> dict:
        return {
            "expectedIndex": self.expected_index,
            "generatedIndex": self.generated_index,
            "score": self.score,
            "roleMatch": self.role_match,
        }


@dataclass
class EvaluationResult:
    status: str
    reason: str = ""
    quality_score: float | None = None
    metrics: dict = field(default_factory=dict)
    matches: list[StoryMatch] = field(default_factory=list)
    unmatched_expected: list[dict] = field(default_factory=list)
    unmatched_generated: list[dict] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    def to_dict(self) -> dict:
        if self.skipped:
            return {"status": self.status, "reason": self.reason, "metrics": {}}
        return {
            "status": self.status,
            "qualityScore": self.quality_score,
            "metrics": self.metrics,
            "matches": [m.to_dict() for m in self.matches],
            "unmatchedExpected": self.unmatched_expected,
            "unmatchedGenerated": self.unmatched_generated,
        }


def skipped(reason: str) -> EvaluationResult:
    return EvaluationResult(status="skipped", reason=reason)


def _match_stories(
    generated: Sequence[UserStory], expected: Sequence[ExpectedStory], threshold: float
) -> list[StoryMatch]:
    used: set[int] = set()
    matches = []
    for ei, exp in enumerate(expected):
        best_idx = -1
        best_score = 0.0
        for gi, gen in enumerate(generated):
            if gi in used:
                continue
            score = story_similarity(exp, gen)
            if score > best_score:
                best_score = score
                best_idx = gi

        if best_idx >= 0 and best_score >= threshold:
            used.add(best_idx)
            role_match = normalize(exp.role) == normalize(generated[best_idx].role)
            matches.append(StoryMatch(ei, best_idx, best_score, role_match))
    return matches


def evaluate_backlog(
    generated: Sequence[UserStory],
    expected: Sequence[ExpectedStory],
    threshold: float = MATCH_THRESHOLD,
) -> EvaluationResult:
    """Score generated stories against the reference set.

    Returns a ``skipped`` result when there are no reference stories.
    """
    if not expected:
        return skipped("No expected stories found.")

    matches = _match_stories(generated, expected, threshold)
    matched = len(matches)

    gwt_ratios = [
        ratio(sum(1 for c in s.acceptance_criteria if is_given_when_then(c)), len(s.acceptance_criteria))
        for s in generated
    ]

    metrics = {
        "expectedCount": len(expected),
        "generatedCount": len(generated),
        "matchedCount": matched,
        "coverage": ratio(matched, len(expected)),
        "precision": ratio(matched, len(generated)),
        "avgMatchScore": round3(ratio(sum(m.score for m in matches), matched)),
        "actorConsistency": round3(ratio(sum(1 for m in matches if m.role_match), matched)),
        "acGwtRatio": round3(ratio(sum(gwt_ratios), len(gwt_ratios))),
        "storiesWithEnoughAC": round3(
            ratio(
                sum(1 for s in generated if len(s.acceptance_criteria) >= MIN_ACCEPTANCE_CRITERIA),
                len(generated),
            )
        ),
        "storiesWithNotes": round3(
            ratio(
                sum(1 for s in generated if count_valid_notes_sections(s) >= MIN_NOTES_SECTIONS),
                len(generated),
            )
        ),
    }

    score = quality_score(
        {
            "coverage": metrics["coverage"],
            "precision": metrics["precision"],
            "avg_match_score": metrics["avgMatchScore"],
            "actor_consistency": metrics["actorConsistency"],
            "ac_gwt_ratio": metrics["acGwtRatio"],
            "stories_with_enough_ac": metrics["storiesWithEnoughAC"],
            "stories_with_notes": metrics["storiesWithNotes"],
        }
    )

    matched_expected = {m.expected_index for m in matches}
    matched_generated = {m.generated_index for m in matches}

    logger.info(f"evaluation: {matched}/{len(expected)} matched, quality score {score}")
    return EvaluationResult(
        status="ok",
        quality_score=score,
        metrics=metrics,
        matches=matches,
        unmatched_expected=[
            {"idx": i, "storyId": s.story_id, "title": s.title}
            for i, s in enumerate(expected)
            if i not in matched_expected
        ],
        unmatched_generated=[
            {"idx": i, "storyId": s.story_id, "title": s.title}
            for i, s in enumerate(generated)
            if i not in matched_generated
        ],
    )
