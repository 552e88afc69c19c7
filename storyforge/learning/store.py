"""Cross-run learning profile.

The profile holds running averages of the target story count, criteria per
story, validation score and quality score, plus frequency counters of roles
and notes sections. It is updated at most once per qualifying run and feeds
back into target sizing and prompt guidance.

The store is an explicit object over a ``RecordStore`` so the pipeline and
tests can inject it; the profile record is created lazily on first access.
"""

import logging
import math
import re
import unicodedata
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pydantic import Field

from storyforge.config import (
    DEFAULT_MIN_QUALITY_SCORE,
    DEFAULT_MIN_VALIDATION_SCORE,
    GUIDANCE_TOP_N,
    LEARNING_RECORD,
    TARGET_STORIES_CEILING,
    TARGET_STORIES_FLOOR,
)
from storyforge.models import ExpectedStory, UserStory, WireModel
from storyforge.storage.records import RecordStore

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

EPOCH = datetime.fromtimestamp(0, UTC).isoformat().replace("+00:00", "Z")


class LearningStats(WireModel):
    target_stories_avg: float = 0.0
    target_ac_avg: float = 0.0
    validation_score_avg: float = 0.0
    quality_score_avg: float = 0.0


class LearningProfile(WireModel):
    version: int = 1
    runs: int = 0
    last_updated: str = EPOCH
    stats: LearningStats = Field(default_factory=LearningStats)
    role_counts: dict[str, int] = Field(default_factory=dict)
    notes_section_counts: dict[str, int] = Field(default_factory=dict)


@dataclass
class LearningUpdate:
    """Outcome of one learning attempt."""

    updated: bool
    reason: str
    thresholds: dict = field(default_factory=dict)
    values: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        result = {"updated": self.updated, "reason": self.reason}
        if self.thresholds:
            result["thresholds"] = self.thresholds
        if self.values:
            result["values"] = self.values
        return result


def normalize_key(text: str) -> str:
    """Lowercase, strip diacritics, collapse whitespace (punctuation is kept)."""
    value = unicodedata.normalize("NFD", str(text or "").lower())
    value = "".join(ch for ch in value if not unicodedata.combining(ch))
    return _WHITESPACE_RE.sub(" ", value).strip()


def running_average(current: float, count: int, value: float) -> float:
    """Incremental mean where ``count`` already includes ``value``."""
    if count <= 1:
        return value
    return (current * (count - 1) + value) / count


def _average_criteria(criteria_lists: list[list[str]]) -> float:
    if not criteria_lists:
        return 0.0
    return sum(len(c) for c in criteria_lists) / len(criteria_lists)


def _sections_from_expected(stories: Sequence[ExpectedStory]) -> list[str]:
    # Flattened notes: unindented lines are sections, indented ones bullets
    sections = []
    for story in stories:
        for line in story.notes_hu.splitlines():
            if line.strip() and not line[0].isspace():
                sections.append(line.strip().removeprefix("- "))
    return sections


def _sections_from_generated(stories: Sequence[UserStory]) -> list[str]:
    return [n.section.strip() for s in stories for n in s.notes_hu if n.section.strip()]


def _top_keys(counts: dict[str, int], limit: int) -> list[str]:
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [key for key, _ in ranked[:limit]]


class LearningStore:
    """Read and update the learning profile held in a record store.

    Args:
        records: Backing record store.
        record_name: Name of the profile record.
    """

    def __init__(self, records: RecordStore, record_name: str = LEARNING_RECORD):
        self.records = records
        self.record_name = record_name

    def profile(self) -> LearningProfile:
        """Return the current profile, creating the empty one on first access."""
        data = self.records.read(self.record_name, None)
        if data is None:
            data = self.records.update(
                self.record_name, lambda current: current, LearningProfile().to_wire()
            )
        return LearningProfile.model_validate(data)

    def suggest_target_stories(self, functionality_count: int, expected_count: int) -> int:
        """Target backlog size for a run.

        The reference-story count wins when present. Otherwise the catalog size
        clamped to [5, 30] is the baseline, raised to the learned average (capped
        at 30) once at least one run has been learned.
        """
        if expected_count > 0:
            return expected_count

        profile = self.profile()
        learned = math.floor(profile.stats.target_stories_avg + 0.5) if profile.runs > 0 else 0
        baseline = max(
            TARGET_STORIES_FLOOR,
            min(TARGET_STORIES_CEILING, functionality_count or TARGET_STORIES_FLOOR),
        )
        if learned <= 0:
            return baseline
        return max(baseline, min(TARGET_STORIES_CEILING, learned))

    def guidance_text(self, top_n: int = GUIDANCE_TOP_N) -> str:
        """Learned patterns for the extraction prompt; empty before the first run."""
        profile = self.profile()
        if profile.runs == 0:
            return ""

        roles = _top_keys(profile.role_counts, top_n)
        sections = _top_keys(profile.notes_section_counts, top_n)
        return "\n".join(
            [
                f"- learned_runs: {profile.runs}",
                f"- learned_target_stories_avg: {profile.stats.target_stories_avg:.1f}",
                f"- learned_ac_per_story_avg: {profile.stats.target_ac_avg:.1f}",
                f"- learned_frequent_roles: {', '.join(roles) or 'n/a'}",
                f"- learned_frequent_notes_sections: {', '.join(sections) or 'n/a'}",
                "- use these patterns as a quality guide; never invent requirements absent from the document.",
            ]
        )

    def update_from_run(
        self,
        generated: Sequence[UserStory],
        expected: Sequence[ExpectedStory] = (),
        validation_score: float = 0.0,
        quality_score: float = 0.0,
        min_quality: float = DEFAULT_MIN_QUALITY_SCORE,
        min_validation: float = DEFAULT_MIN_VALIDATION_SCORE,
        force_accept: bool = False,
    ) -> LearningUpdate:
        """Fold one run into the profile when it qualifies.

        A run qualifies when both scores reach their thresholds, or when a human
        explicitly accepted it (``force_accept``). Counters come from the
        expected stories when there are any, else from the generated ones.
        """
        if not generated:
            return LearningUpdate(updated=False, reason="no_generated_stories")

        thresholds = {"minQualityScore": min_quality, "minValidationScore": min_validation}
        values = {"qualityScore": quality_score, "validationScore": validation_score}

        if not force_accept:
            if quality_score < min_quality:
                return LearningUpdate(False, "quality_below_threshold", thresholds, values)
            if validation_score < min_validation:
                return LearningUpdate(False, "validation_below_threshold", thresholds, values)

        if expected:
            target_stories = len(expected)
            target_ac = _average_criteria([s.acceptance_criteria for s in expected])
            roles = [s.role for s in expected]
            sections = _sections_from_expected(expected)
        else:
            target_stories = len(generated)
            target_ac = _average_criteria([s.acceptance_criteria for s in generated])
            roles = [s.role for s in generated]
            sections = _sections_from_generated(generated)

        def apply(data: dict) -> dict:
            profile = LearningProfile.model_validate(data)
            profile.runs += 1
            profile.last_updated = datetime.now(UTC).isoformat().replace("+00:00", "Z")

            n = profile.runs
            stats = profile.stats
            stats.target_stories_avg = running_average(stats.target_stories_avg, n, target_stories)
            stats.target_ac_avg = running_average(stats.target_ac_avg, n, target_ac)
            stats.validation_score_avg = running_average(stats.validation_score_avg, n, validation_score)
            stats.quality_score_avg = running_average(stats.quality_score_avg, n, quality_score)

            for role in roles:
                key = normalize_key(role)
                if key:
                    profile.role_counts[key] = profile.role_counts.get(key, 0) + 1
            for section in sections:
                key = normalize_key(section)
                if key:
                    profile.notes_section_counts[key] = profile.notes_section_counts.get(key, 0) + 1

            return profile.to_wire()

        self.records.update(self.record_name, apply, LearningProfile().to_wire())

        reason = "ok"
        if force_accept and (quality_score < min_quality or validation_score < min_validation):
            reason = "forced_by_human"
        logger.info(f"Learning profile updated ({reason}): target_stories={target_stories}")
        return LearningUpdate(True, reason, thresholds, values)
