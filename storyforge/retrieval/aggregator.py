"""Multi-category retrieval.

One similarity query per category, scoped to the run's document/version ids
(plus any extra scope ids), merged into a single ranking that keeps the best
score seen for each chunk id. Categories are independent read-only queries,
so they are dispatched concurrently.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from storyforge.config import CATEGORY_QUERIES, RETRIEVAL_CATEGORIES, TOP_K
from storyforge.retrieval.embedder import Embedder
from storyforge.retrieval.vector_store import ChunkStore, RetrievedChunk

logger = logging.getLogger(__name__)

MAX_RETRIEVAL_WORKERS = 4


@dataclass
class RetrievalPack:
    """Merged ranking plus the raw hits of every category."""

    merged: list[RetrievedChunk] = field(default_factory=list)
    per_category: dict[str, list[RetrievedChunk]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "merged": [c.to_dict() for c in self.merged],
            "perCategory": {
                cat: [c.to_dict() for c in hits] for cat, hits in self.per_category.items()
            },
        }


def category_query(category: str) -> str:
    """Guidance text used as the similarity query for a category."""
    return CATEGORY_QUERIES.get(category, f"Extract requirements for category: {category}")


def merge_hits(hit_lists: list[list[RetrievedChunk]]) -> list[RetrievedChunk]:
    """Deduplicate by chunk id keeping the highest score; sort descending."""
    best: dict[str, RetrievedChunk] = {}
    for hits in hit_lists:
        for hit in hits:
            previous = best.get(hit.chunk_id)
            if previous is None or hit.score > previous.score:
                best[hit.chunk_id] = hit
    return sorted(best.values(), key=lambda c: c.score, reverse=True)


def multi_retrieve(
    embedder: Embedder,
    store: ChunkStore,
    document_id: str,
    version_id: str,
    categories: list[str] | None = None,
    top_k: int = TOP_K,
    extra_document_ids: list[str] | None = None,
    extra_version_ids: list[str] | None = None,
) -> RetrievalPack:
    """Run one scoped query per category and merge the results.

    Store and embedder errors propagate unchanged.
    """
    categories = list(RETRIEVAL_CATEGORIES if categories is None else categories)
    document_ids = [document_id, *(extra_document_ids or [])]
    version_ids = [version_id, *(extra_version_ids or [])]

    def retrieve(category: str) -> list[RetrievedChunk]:
        [vector] = embedder.embed([category_query(category)])
        return store.search(vector, top_k, document_ids=document_ids, version_ids=version_ids)

    if not categories:
        return RetrievalPack()

    workers = min(MAX_RETRIEVAL_WORKERS, len(categories))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        results = list(executor.map(retrieve, categories))

    per_category = dict(zip(categories, results, strict=True))
    merged = merge_hits(results)

    logger.info(
        "Retrieved %d unique chunks across %d categories (%s)",
        len(merged),
        len(categories),
        ", ".join(f"{c}={len(h)}" for c, h in per_category.items()),
    )
    return RetrievalPack(merged=merged, per_category=per_category)
