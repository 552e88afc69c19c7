"""Actor normalization and traceability enrichment of extracted stories.

Both passes mutate camelCase story dicts in place before schema validation.
"""

import logging
from collections import Counter
from dataclasses import dataclass

from storyforge.config import (
    ACTOR_BY_FUNCTIONALITY_THRESHOLD,
    ACTOR_BY_NAME_THRESHOLD,
    EVIDENCE_CONFIDENCE_RANGE,
    EVIDENCE_MATCH_THRESHOLD,
    FUNCTIONALITY_CONFIDENCE_RANGE,
    MAX_EVIDENCE_TRACE_LINKS,
    MAX_FUNCTIONALITY_TRACE_LINKS,
    MAX_TRACE_LINKS,
)
from storyforge.extraction.coverage import story_match_text
from storyforge.models import Actor, Functionality, FunctionalityCatalog
from storyforge.retrieval.vector_store import RetrievedChunk
from storyforge.similarity import join_text, normalize, overlap

logger = logging.getLogger(__name__)


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


def _append(story: dict, key: str, text: str) -> None:
    current = story.get(key)
    if not isinstance(current, list):
        current = []
    current.append(text)
    story[key] = current


# =============================================================================
# Actor normalization
# =============================================================================


@dataclass
class ActorMatch:
    actor: Actor
    kind: str
    source: str


def canonical_actors(catalog: FunctionalityCatalog) -> list[Actor]:
    """Catalog actors that have a name, with surrounding whitespace trimmed."""
    return [
        Actor(id=a.id, name=a.name.strip(), description=a.description.strip())
        for a in catalog.actors
        if a.name.strip()
    ]


def find_actor_by_functionality(
    story: dict,
    functionalities: list[Functionality],
    actors_by_id: dict[str, Actor],
    threshold: float = ACTOR_BY_FUNCTIONALITY_THRESHOLD,
) -> ActorMatch | None:
    """Actor of the functionality whose intent best matches the story's want + soThat."""
    story_text = join_text(str(story.get("want") or ""), str(story.get("soThat") or ""))
    if not story_text:
        return None

    best_score = 0.0
    best: ActorMatch | None = None
    for functionality in functionalities:
        source_text = functionality.intent_text
        if not source_text:
            continue
        score = overlap(story_text, source_text)
        if score <= best_score:
            continue
        actor = actors_by_id.get(functionality.actor_id)
        if actor is None:
            continue
        best_score = score
        best = ActorMatch(actor, "functionality", f"functionality {functionality.id}".strip())

    return best if best_score >= threshold else None


def find_actor_by_name(
    role: str, actors: list[Actor], threshold: float = ACTOR_BY_NAME_THRESHOLD
) -> ActorMatch | None:
    """Actor whose name + description best matches the raw role text."""
    if not normalize(role):
        return None

    best_score = 0.0
    best: Actor | None = None
    for actor in actors:
        score = overlap(role, join_text(actor.name, actor.description))
        if score > best_score:
            best_score = score
            best = actor

    if best is None or best_score < threshold:
        return None
    return ActorMatch(best, "name", "actor catalog name match")


def enforce_actor_consistency(stories: list[dict], catalog: FunctionalityCatalog) -> Counter:
    """Map every story role onto a canonical catalog actor where possible.

    Resolution order per story: exact normalized name, best-matching
    functionality's actor, best name/description match. Substitutions add an
    assumption; unresolved roles add an open question listing the actors.

    Returns:
        Counts per outcome (exact, functionality, name, unresolved).
    """
    outcomes: Counter = Counter()
    actors = canonical_actors(catalog)
    if not stories or not actors:
        return outcomes

    actors_by_id = {a.id: a for a in actors if a.id}
    actors_by_norm = {}
    for actor in actors:
        actors_by_norm.setdefault(normalize(actor.name), actor)

    for story in stories:
        role = str(story.get("role") or "").strip()

        direct = actors_by_norm.get(normalize(role))
        if direct is not None:
            story["role"] = direct.name
            outcomes["exact"] += 1
            continue

        match = find_actor_by_functionality(
            story, catalog.functionalities, actors_by_id
        ) or find_actor_by_name(role, actors)

        if match is not None:
            story["role"] = match.actor.name
            _append(
                story,
                "assumptions",
                f"Actor normalized to '{match.actor.name}' ({match.source}).",
            )
            outcomes[match.kind] += 1
        else:
            story_ref = story.get("storyId") or story.get("title") or "no_id"
            names = ", ".join(a.name for a in actors)
            _append(
                story,
                "openQuestions",
                f"Confirm the actor for story '{story_ref}'. Available actors: {names}.",
            )
            outcomes["unresolved"] += 1

    logger.info(f"actor consistency: {dict(outcomes)}")
    return outcomes


# =============================================================================
# Traceability enrichment
# =============================================================================


def _functionality_links(story_text: str, functionalities: list[Functionality]) -> list[dict]:
    best_score = 0.0
    best: Functionality | None = None
    for functionality in functionalities:
        score = overlap(story_text, functionality.full_text)
        if score > best_score:
            best_score = score
            best = functionality

    if best is None:
        return []

    confidence = _clamp(best_score, FUNCTIONALITY_CONFIDENCE_RANGE)
    return [
        {"chunkId": chunk_id, "confidence": confidence}
        for chunk_id in best.source_chunk_ids[:MAX_FUNCTIONALITY_TRACE_LINKS]
        if chunk_id
    ]


def _evidence_links(story_text: str, chunks: list[RetrievedChunk]) -> list[dict]:
    scored = [(c.chunk_id, overlap(story_text, c.content)) for c in chunks]
    matched = [(cid, score) for cid, score in scored if score >= EVIDENCE_MATCH_THRESHOLD]
    matched.sort(key=lambda item: item[1], reverse=True)
    return [
        {"chunkId": cid, "confidence": _clamp(score, EVIDENCE_CONFIDENCE_RANGE)}
        for cid, score in matched[:MAX_EVIDENCE_TRACE_LINKS]
    ]


def enrich_traceability(
    stories: list[dict], catalog: FunctionalityCatalog, chunks: list[RetrievedChunk]
) -> int:
    """Replace placeholder traceability with functionality and evidence links.

    Links from the best-matching functionality come first, then directly
    matched evidence chunks; duplicates keep their first occurrence and the
    result is capped. Stories with no links keep their prior traceability.

    Returns:
        Number of stories whose traceability was replaced.
    """
    enriched = 0
    for story in stories:
        story_text = story_match_text(story)
        candidates = [
            *_functionality_links(story_text, catalog.functionalities),
            *_evidence_links(story_text, chunks),
        ]

        seen: set[str] = set()
        links = []
        for link in candidates:
            if not link["chunkId"] or link["chunkId"] in seen:
                continue
            seen.add(link["chunkId"])
            links.append(link)

        if links:
            story["traceability"] = links[:MAX_TRACE_LINKS]
            enriched += 1

    logger.info(f"traceability enriched for {enriched}/{len(stories)} stories")
    return enriched
