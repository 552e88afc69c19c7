"""Whitespace-token chunking with overlap."""

import hashlib
import uuid
from dataclasses import dataclass

from storyforge.config import (
    ADAPTIVE_MIN_CHUNK_SIZE,
    ADAPTIVE_MIN_OVERLAP,
    ADAPTIVE_MIN_TEXT_CHARS,
    CHUNK_OVERLAP,
    CHUNK_SIZE,
)


@dataclass
class Chunk:
    chunk_id: str
    content: str
    index: int
    char_start: int
    char_end: int
    hash: str


def content_hash(text: str) -> str:
    """Stable short hash of chunk content, used for upsert deduplication."""
    return "h_" + hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def chunk_text(text: str, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> list[Chunk]:
    """Split text into windows of ``chunk_size`` tokens sharing ``overlap`` tokens.

    Character offsets are approximate: they assume single spaces between
    tokens.

    Raises:
        ValueError: If ``chunk_size`` is not larger than ``overlap``.
    """
    if chunk_size <= overlap:
        raise ValueError("chunk_size must be greater than overlap")

    tokens = text.split()
    chunks: list[Chunk] = []
    start = 0
    cursor = 0

    while start < len(tokens):
        end = min(start + chunk_size, len(tokens))
        content = " ".join(tokens[start:end]).strip()

        if content:
            char_start = max(0, cursor)
            char_end = char_start + len(content)
            chunks.append(
                Chunk(
                    chunk_id=f"c_{uuid.uuid4()}",
                    content=content,
                    index=len(chunks),
                    char_start=char_start,
                    char_end=char_end,
                    hash=content_hash(content),
                )
            )
            cursor = char_end - overlap

        if end == len(tokens):
            break
        start = max(0, end - overlap)

    return chunks


def chunk_text_adaptive(
    text: str, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP
) -> list[Chunk]:
    """Chunk text, halving the window when a long text yields a single chunk."""
    chunks = chunk_text(text, chunk_size, overlap)
    if len(chunks) == 1 and len(text) > ADAPTIVE_MIN_TEXT_CHARS:
        smaller = max(ADAPTIVE_MIN_CHUNK_SIZE, chunk_size // 2)
        smaller_overlap = max(ADAPTIVE_MIN_OVERLAP, overlap // 2)
        chunks = chunk_text(text, smaller, smaller_overlap)
    return chunks
