"""Repair of generated story dicts before schema validation.

Completions often return traceability as bare chunk ids and acceptance
criteria as given/when/then objects. These are coerced into the backlog wire
shape; short criterion lists are padded with a generic criterion.
"""

import logging

from storyforge.config import (
    DEFAULT_TRACE_CONFIDENCE,
    FALLBACK_ACCEPTANCE_CRITERION,
    MIN_NORMALIZED_AC,
    PLACEHOLDER_CHUNK_ID,
    PLACEHOLDER_TRACE_CONFIDENCE,
)

logger = logging.getLogger(__name__)


def placeholder_trace() -> dict:
    return {"chunkId": PLACEHOLDER_CHUNK_ID, "confidence": PLACEHOLDER_TRACE_CONFIDENCE}


def normalize_trace_link(link) -> dict:
    if isinstance(link, str):
        return {"chunkId": link, "confidence": DEFAULT_TRACE_CONFIDENCE}
    if isinstance(link, dict) and link.get("chunkId"):
        confidence = link.get("confidence")
        return {
            "chunkId": str(link["chunkId"]),
            "confidence": DEFAULT_TRACE_CONFIDENCE if confidence is None else confidence,
        }
    return placeholder_trace()


def normalize_criterion(criterion) -> str:
    if isinstance(criterion, str):
        return criterion
    if isinstance(criterion, dict):
        given, when, then = criterion.get("given"), criterion.get("when"), criterion.get("then")
        if given and when and then:
            return f"DADO {given} CUANDO {when} ENTONCES {then}"
        return " ".join(str(v) for v in criterion.values())
    return str(criterion)


def normalize_story(story: dict, min_criteria: int = MIN_NORMALIZED_AC) -> dict:
    """Normalize one story dict in place and return it."""
    traceability = story.get("traceability")
    if not isinstance(traceability, list):
        traceability = []
    links = [normalize_trace_link(t) for t in traceability]
    story["traceability"] = links or [placeholder_trace()]

    criteria = story.get("acceptanceCriteria")
    if not isinstance(criteria, list):
        criteria = []
    criteria = [normalize_criterion(c) for c in criteria]
    padded = max(0, min_criteria - len(criteria))
    criteria.extend([FALLBACK_ACCEPTANCE_CRITERION] * padded)
    if padded:
        logger.debug(f"Story {story.get('storyId', '?')}: padded {padded} acceptance criteria")
    story["acceptanceCriteria"] = criteria

    return story


def normalize_backlog(candidate: dict) -> dict:
    """Normalize every story of a backlog candidate in place."""
    for story in candidate.get("userStories") or []:
        normalize_story(story)
    return candidate
