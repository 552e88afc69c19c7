"""Story extraction controller.

Drives the generated story set towards a target size:

1. Initial extraction from the functionality catalog
2. Up to ``MAX_REFINEMENT_PASSES`` refinement passes while the set is below
   target; the loop stops as soon as a pass fails to grow the set
3. One gap-coverage pass when functionality coverage is below the minimum,
   followed by intent deduplication

Stories stay camelCase dicts here; normalization and schema validation happen
after the consistency pass.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from storyforge.config import (
    DEDUPE_SIMILARITY,
    DEFAULT_MIN_FUNCTIONALITY_COVERAGE,
    MAX_REFINEMENT_PASSES,
)
from storyforge.errors import GenerationError
from storyforge.extraction.coverage import FunctionalityCoverage, compute_functionality_coverage
from storyforge.learning.store import LearningStore
from storyforge.llm.client import CompletionClient, call_json
from storyforge.llm.prompts import (
    PromptGuides,
    extraction_prompt,
    gap_coverage_prompt,
    refinement_prompt,
    system_policy_prompt,
)
from storyforge.models import FunctionalityCatalog
from storyforge.similarity import join_text, overlap

logger = logging.getLogger(__name__)


def resolve_target_story_count(
    functionality_count: int,
    expected_count: int,
    learning: LearningStore,
    target_override: int = 0,
) -> int:
    """Target size for this run; a positive override wins."""
    if target_override > 0:
        return target_override
    return learning.suggest_target_stories(functionality_count, expected_count)


def _dict_items(value: Any) -> list[dict]:
    return [item for item in value if isinstance(item, dict)]


def stories_from_extraction(raw: Any) -> list[dict] | None:
    """Story list from an extraction response, or None if it has none.

    Accepts a bare array, ``{"userStories": [...]}`` or ``{"stories": [...]}``.
    """
    if isinstance(raw, list):
        return _dict_items(raw)
    if isinstance(raw, dict):
        for key in ("userStories", "stories"):
            if isinstance(raw.get(key), list):
                return _dict_items(raw[key])
    return None


def stories_from_refinement(raw: Any) -> list[dict]:
    if isinstance(raw, dict) and isinstance(raw.get("userStories"), list):
        return _dict_items(raw["userStories"])
    if isinstance(raw, list):
        return _dict_items(raw)
    return []


def stories_from_gap_coverage(raw: Any) -> list[dict]:
    if isinstance(raw, dict) and isinstance(raw.get("additionalUserStories"), list):
        return _dict_items(raw["additionalUserStories"])
    return []


def intent_key(story: dict) -> str:
    return join_text(
        str(story.get("role") or ""), str(story.get("title") or ""), str(story.get("want") or "")
    )


def dedupe_stories_by_intent(
    stories: list[dict], threshold: float = DEDUPE_SIMILARITY
) -> list[dict]:
    """Greedy, order-preserving deduplication on role + title + want.

    A story is dropped when its key overlaps any already kept key by at least
    ``threshold``.
    """
    kept: list[dict] = []
    kept_keys: list[str] = []
    for story in stories:
        key = intent_key(story)
        if any(overlap(key, k) >= threshold for k in kept_keys):
            logger.debug(f"Dropping duplicate story: {story.get('title', '')!r}")
            continue
        kept.append(story)
        kept_keys.append(key)
    return kept


@dataclass
class ExtractionResult:
    """Story set produced by the controller plus how it got there."""

    stories: list[dict]
    target: int
    refinement_passes: int = 0
    gap_coverage_applied: bool = False
    coverage_before_gap: FunctionalityCoverage = field(default_factory=FunctionalityCoverage)


class StoryExtractionController:
    """Runs extraction, refinement and gap coverage for one catalog.

    Args:
        client: Completion client.
        guides: Guidance blocks shared by the story prompts.
        max_refinement_passes: Upper bound on refinement calls.
        min_coverage: Coverage ratio below which a gap-coverage pass runs.
    """

    def __init__(
        self,
        client: CompletionClient,
        guides: PromptGuides | None = None,
        max_refinement_passes: int = MAX_REFINEMENT_PASSES,
        min_coverage: float = DEFAULT_MIN_FUNCTIONALITY_COVERAGE,
    ):
        self.client = client
        self.guides = guides or PromptGuides()
        self.max_refinement_passes = max_refinement_passes
        self.min_coverage = min_coverage

    def _call(self, user_prompt: str) -> Any:
        return call_json(self.client, system_policy_prompt(), user_prompt)

    def extract(self, catalog: FunctionalityCatalog) -> list[dict]:
        """Initial extraction.

        Raises:
            GenerationError: If the response holds no story array or an empty one.
        """
        raw = self._call(extraction_prompt(catalog.to_wire(), self.guides))
        stories = stories_from_extraction(raw)
        if stories is None:
            logger.error(f"Extraction returned no story array: {str(raw)[:500]}")
            raise GenerationError("Extraction did not return a valid userStories array", str(raw))
        if not stories:
            raise GenerationError("Extraction returned zero stories", str(raw))
        logger.info(f"extraction: {len(stories)} stories")
        return stories

    def refine(
        self, catalog: FunctionalityCatalog, stories: list[dict], target: int
    ) -> tuple[list[dict], int]:
        """Grow the set towards ``target``; returns the stories and passes used."""
        passes = 0
        while len(stories) < target and passes < self.max_refinement_passes:
            passes += 1
            before = len(stories)
            logger.info(f"refinement #{passes} ({before} -> min {target})")

            raw = self._call(
                refinement_prompt(catalog.to_wire(), stories, target, passes, self.guides)
            )
            refined = stories_from_refinement(raw)

            if len(refined) <= before:
                logger.info(f"refinement #{passes} did not grow the backlog ({len(refined)}), stopping")
                break
            stories = refined

        return stories, passes

    def cover_gaps(
        self,
        catalog: FunctionalityCatalog,
        stories: list[dict],
        coverage: FunctionalityCoverage,
        target: int,
    ) -> list[dict] | None:
        """One gap-coverage call; returns the merged, deduplicated set or None."""
        logger.info(
            f"gap coverage ({coverage.covered_functionalities}/{coverage.total_functionalities})"
        )
        raw = self._call(
            gap_coverage_prompt(
                catalog.to_wire(),
                stories,
                [u.to_dict() for u in coverage.uncovered_top],
                target,
                self.guides,
            )
        )
        additional = stories_from_gap_coverage(raw)
        if not additional:
            logger.info("gap coverage returned no additional stories")
            return None

        merged = dedupe_stories_by_intent([*stories, *additional])
        logger.info(f"gap coverage: +{len(additional)} stories, {len(merged)} after dedupe")
        return merged

    def run(self, catalog: FunctionalityCatalog, target: int) -> ExtractionResult:
        stories = self.extract(catalog)
        stories, passes = self.refine(catalog, stories, target)

        coverage = compute_functionality_coverage(catalog, stories)
        result = ExtractionResult(
            stories=stories, target=target, refinement_passes=passes, coverage_before_gap=coverage
        )

        if coverage.coverage < self.min_coverage and coverage.uncovered_top:
            merged = self.cover_gaps(catalog, stories, coverage, target)
            if merged is not None:
                result.stories = merged
                result.gap_coverage_applied = True

        return result
