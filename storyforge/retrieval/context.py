"""Rendering of memory hits and retrieved evidence into the analysis prompt context."""

from storyforge.config import MERGED_CONTEXT_LIMIT
from storyforge.memory.index import MemoryHit
from storyforge.retrieval.aggregator import RetrievalPack
from storyforge.retrieval.vector_store import RetrievedChunk

_HIT_SEPARATOR = "\n\n---\n\n"
_BLOCK_SEPARATOR = "\n\n" + "=" * 20 + "\n\n"


def _render_hits(label: str, hits: list[RetrievedChunk]) -> str:
    return _HIT_SEPARATOR.join(
        f"[{label}.{i}] chunkId={c.chunk_id} score={c.score:.3f}\n{c.content}"
        for i, c in enumerate(hits, start=1)
    )


def _render_memory(hits: list[MemoryHit]) -> str:
    return _HIT_SEPARATOR.join(
        f"[memory.{i}] id={m.memory_id} score={m.score:.3f} title={m.title}\n{m.content}\nTags: {m.tags}"
        for i, m in enumerate(hits, start=1)
    )


def build_rag_context(
    pack: RetrievalPack,
    memory_hits: list[MemoryHit] | None = None,
    merged_limit: int = MERGED_CONTEXT_LIMIT,
) -> str:
    """Render an optional ``MEMORY`` block, one block per category and a ``merged_top`` block.

    Every evidence hit carries its chunk id so the model can cite it in
    ``sourceChunkIds``.
    """
    blocks = []
    if memory_hits:
        blocks.append(f"### MEMORY\n\n{_render_memory(memory_hits)}")
    blocks.extend(
        f"### CATEGORY: {category}\n\n{_render_hits(category, hits)}"
        for category, hits in pack.per_category.items()
    )
    blocks.append(
        f"### CATEGORY: merged_top\n\n{_render_hits('merged', pack.merged[:merged_limit])}"
    )
    return "EVIDENCE (chunks):\n\n" + _BLOCK_SEPARATOR.join(blocks)
