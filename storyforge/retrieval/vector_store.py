"""Vector-similarity store for evidence chunks.

``LanceChunkStore`` persists chunk rows with their embeddings in LanceDB;
``InMemoryChunkStore`` keeps them in a list and ranks by cosine similarity.
Both return ``RetrievedChunk`` hits scoped to document/version ids.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import lancedb

logger = logging.getLogger(__name__)


@dataclass
class RetrievedChunk:
    """One similarity hit."""

    chunk_id: str
    content: str
    score: float

    def to_dict(self) -> dict:
        return {"chunkId": self.chunk_id, "content": self.content, "score": self.score}


@dataclass
class ChunkRow:
    """An embedded chunk ready for upsert."""

    chunk_id: str
    content: str
    vector: list[float]
    document_id: str
    version_id: str
    chunk_hash: str
    chunk_index: int

    @property
    def dedupe_key(self) -> str:
        return f"{self.document_id}::{self.version_id}::{self.chunk_hash}"


@dataclass
class UpsertResult:
    added: int = 0
    skipped: int = 0
    table: str = ""


class ChunkStore(Protocol):
    def upsert_chunks(self, rows: list[ChunkRow]) -> UpsertResult: ...

    def search(
        self,
        vector: list[float],
        top_k: int,
        document_ids: list[str] | None = None,
        version_ids: list[str] | None = None,
    ) -> list[RetrievedChunk]: ...


def _quote_list(values: list[str]) -> str:
    escaped = [v.replace("'", "''") for v in values]
    return ", ".join(f"'{v}'" for v in escaped)


def _scope_filter(document_ids: list[str] | None, version_ids: list[str] | None) -> str | None:
    filters = []
    if document_ids:
        filters.append(f"document_id IN ({_quote_list(document_ids)})")
    if version_ids:
        filters.append(f"version_id IN ({_quote_list(version_ids)})")
    return " AND ".join(filters) if filters else None


def _in_scope(
    document_id: str,
    version_id: str,
    document_ids: list[str] | None,
    version_ids: list[str] | None,
) -> bool:
    if document_ids and document_id not in document_ids:
        return False
    if version_ids and version_id not in version_ids:
        return False
    return True


def distance_to_score(distance: float | None) -> float:
    """Map a LanceDB distance to a (0, 1] similarity score."""
    if distance is None:
        return 0.5
    return 1.0 / (1.0 + float(distance))


class LanceChunkStore:
    """LanceDB-backed chunk store.

    The table is created on the first insert because LanceDB infers the schema
    from the first rows.
    """

    TABLE_NAME = "chunks"

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.mkdir(parents=True, exist_ok=True)
        self.db = lancedb.connect(str(self.db_path))

        if self.TABLE_NAME in self.db.table_names():
            self._table = self.db.open_table(self.TABLE_NAME)
            logger.info(f"Opened existing table {self.TABLE_NAME}")
        else:
            self._table = None

        logger.info(f"LanceChunkStore initialized at {self.db_path}")

    @staticmethod
    def _row_to_record(row: ChunkRow) -> dict:
        return {
            "vector": row.vector,
            "chunk_id": row.chunk_id,
            "content": row.content,
            "document_id": row.document_id,
            "version_id": row.version_id,
            "chunk_hash": row.chunk_hash,
            "chunk_index": row.chunk_index,
        }

    def _existing_keys(self) -> set[str]:
        columns = ["document_id", "version_id", "chunk_hash"]
        existing = self._table.to_arrow().select(columns).to_pylist()
        return {f"{r['document_id']}::{r['version_id']}::{r['chunk_hash']}" for r in existing}

    def upsert_chunks(self, rows: list[ChunkRow]) -> UpsertResult:
        """Insert rows whose ``document::version::hash`` key is not stored yet."""
        if not rows:
            return UpsertResult(table=self.TABLE_NAME)

        if self._table is None:
            self._table = self.db.create_table(
                self.TABLE_NAME, [self._row_to_record(r) for r in rows]
            )
            logger.info(f"Created table {self.TABLE_NAME} with {len(rows)} chunks")
            return UpsertResult(added=len(rows), table=self.TABLE_NAME)

        seen = self._existing_keys()
        to_add = []
        for row in rows:
            if row.dedupe_key in seen:
                continue
            seen.add(row.dedupe_key)
            to_add.append(row)

        if to_add:
            self._table.add([self._row_to_record(r) for r in to_add])

        result = UpsertResult(
            added=len(to_add), skipped=len(rows) - len(to_add), table=self.TABLE_NAME
        )
        logger.info(f"Upserted chunks: added={result.added}, skipped={result.skipped}")
        return result

    def search(
        self,
        vector: list[float],
        top_k: int,
        document_ids: list[str] | None = None,
        version_ids: list[str] | None = None,
    ) -> list[RetrievedChunk]:
        """Return up to ``top_k`` nearest chunks within the given scope."""
        if self._table is None:
            return []

        query = self._table.search(vector).limit(top_k)
        where_clause = _scope_filter(document_ids, version_ids)
        if where_clause:
            query = query.where(where_clause, prefilter=True)

        results = query.to_list()
        return [
            RetrievedChunk(
                chunk_id=r["chunk_id"],
                content=r["content"],
                score=distance_to_score(r.get("_distance")),
            )
            for r in results
            if _in_scope(r["document_id"], r["version_id"], document_ids, version_ids)
        ][:top_k]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=False))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryChunkStore:
    """List-backed chunk store ranking by cosine similarity."""

    def __init__(self) -> None:
        self.rows: list[ChunkRow] = []

    def upsert_chunks(self, rows: list[ChunkRow]) -> UpsertResult:
        seen = {r.dedupe_key for r in self.rows}
        added = 0
        for row in rows:
            if row.dedupe_key in seen:
                continue
            seen.add(row.dedupe_key)
            self.rows.append(row)
            added += 1
        return UpsertResult(added=added, skipped=len(rows) - added, table="memory")

    def search(
        self,
        vector: list[float],
        top_k: int,
        document_ids: list[str] | None = None,
        version_ids: list[str] | None = None,
    ) -> list[RetrievedChunk]:
        scored = [
            RetrievedChunk(r.chunk_id, r.content, cosine_similarity(vector, r.vector))
            for r in self.rows
            if _in_scope(r.document_id, r.version_id, document_ids, version_ids)
        ]
        scored.sort(key=lambda c: c.score, reverse=True)
        return scored[:top_k]
