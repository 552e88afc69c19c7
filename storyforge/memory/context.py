"""Memory hits relevant to the document being analyzed."""

import logging

from storyforge.config import MEMORY_EXCLUDED_TAGS, MEMORY_QUERY_CHARS, MEMORY_TOP_K
from storyforge.memory.index import MemoryHit, MemoryIndex, MemoryRow
from storyforge.memory.store import MemoryStore
from storyforge.retrieval.embedder import Embedder

logger = logging.getLogger(__name__)


def build_memory_context(
    store: MemoryStore,
    index: MemoryIndex,
    embedder: Embedder,
    raw_text: str,
    top_k: int = MEMORY_TOP_K,
    query_chars: int = MEMORY_QUERY_CHARS,
    exclude_tags: tuple[str, ...] = MEMORY_EXCLUDED_TAGS,
) -> list[MemoryHit]:
    """Sync memory items into the index and return the ones closest to the document.

    The query is the first ``query_chars`` characters of the document. With
    no memory items nothing is embedded and no hits are returned.
    """
    items = store.items()
    if not items:
        return []

    vectors = embedder.embed([item.embedding_text for item in items])
    index.upsert_memory(
        [
            MemoryRow(
                memory_id=item.id,
                title=item.title,
                content=item.content,
                tags=", ".join(item.tags),
                vector=vector,
                updated_at=item.updated_at,
            )
            for item, vector in zip(items, vectors, strict=True)
        ]
    )

    [query_vector] = embedder.embed([f"Document summary:\n{raw_text[:query_chars]}"])
    hits = index.search_memory(query_vector, top_k, exclude_tags)
    logger.info(f"Memory context: {len(hits)} of {len(items)} items")
    return hits
