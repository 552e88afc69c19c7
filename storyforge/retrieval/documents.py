"""Document evidence: loading plain-text documents and indexing their chunks.

PDF and DOCX text extraction happens outside this package; callers hand over
the extracted text as a ``DocumentEvidence``.
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from storyforge.retrieval.chunker import chunk_text_adaptive
from storyforge.retrieval.embedder import Embedder
from storyforge.retrieval.vector_store import ChunkRow, ChunkStore, UpsertResult

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".txt", ".md", ".markdown", ".text"}

_SLUG_RE = re.compile(r"[^a-z0-9]+")


@dataclass
class DocumentEvidence:
    """Extracted text of one requirements document version."""

    document_id: str
    version_id: str
    filename: str
    raw_text: str

    @property
    def base_name(self) -> str:
        """Filename without its extension, used to name run artifacts."""
        return Path(self.filename).stem


def slugify(name: str) -> str:
    return _SLUG_RE.sub("-", name.lower()).strip("-") or "document"


def version_of(text: str) -> str:
    """Content-derived version id: same text, same version."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]


def load_text_document(path: str | Path) -> DocumentEvidence:
    """Load a plain-text or markdown document.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file type is not plain text or the text is empty.
    """
    path = Path(path)
    if path.suffix.lower() not in TEXT_SUFFIXES:
        raise ValueError(
            f"Unsupported document type '{path.suffix}'. "
            f"Supported: {', '.join(sorted(TEXT_SUFFIXES))}"
        )

    raw_text = path.read_text(encoding="utf-8")
    if not raw_text.strip():
        raise ValueError(f"Document is empty: {path}")

    return DocumentEvidence(
        document_id=slugify(path.stem),
        version_id=version_of(raw_text),
        filename=path.name,
        raw_text=raw_text,
    )


def index_document(
    evidence: DocumentEvidence, embedder: Embedder, store: ChunkStore
) -> UpsertResult:
    """Chunk, embed and upsert a document so retrieval can find it."""
    chunks = chunk_text_adaptive(evidence.raw_text)
    if not chunks:
        logger.warning(f"No chunks produced for {evidence.filename}")
        return UpsertResult()

    vectors = embedder.embed([c.content for c in chunks])
    rows = [
        ChunkRow(
            chunk_id=c.chunk_id,
            content=c.content,
            vector=vector,
            document_id=evidence.document_id,
            version_id=evidence.version_id,
            chunk_hash=c.hash,
            chunk_index=c.index,
        )
        for c, vector in zip(chunks, vectors, strict=True)
    ]

    logger.info(f"Indexing {evidence.filename}: {len(rows)} chunks")
    return store.upsert_chunks(rows)
