"""Vector index over memory items.

``LanceMemoryIndex`` keeps one row per memory item in the ``memory_items``
LanceDB table; ``InMemoryMemoryIndex`` ranks a list by cosine similarity.
Rows are keyed by item id and ``updatedAt``: an edited item replaces its old
row, an unchanged one is skipped.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import lancedb

from storyforge.retrieval.vector_store import UpsertResult, cosine_similarity, distance_to_score

logger = logging.getLogger(__name__)

# Hits are over-fetched before tag filtering so excluded items do not starve top_k
CANDIDATE_FACTOR = 5


@dataclass
class MemoryRow:
    memory_id: str
    title: str
    content: str
    tags: str
    vector: list[float]
    updated_at: str


@dataclass
class MemoryHit:
    memory_id: str
    title: str
    content: str
    tags: str
    score: float

    def to_dict(self) -> dict:
        return {
            "id": self.memory_id,
            "title": self.title,
            "content": self.content,
            "tags": self.tags,
            "score": self.score,
        }


class MemoryIndex(Protocol):
    def upsert_memory(self, rows: list[MemoryRow]) -> UpsertResult: ...

    def search_memory(
        self, vector: list[float], top_k: int, exclude_tags: tuple[str, ...] = ()
    ) -> list[MemoryHit]: ...


def filter_excluded(hits: list[MemoryHit], exclude_tags: tuple[str, ...], top_k: int) -> list[MemoryHit]:
    """Drop hits whose tags contain any excluded fragment (case-insensitive)."""
    blocked = [t.lower() for t in exclude_tags]
    kept = [h for h in hits if not any(b in h.tags.lower() for b in blocked)]
    return kept[:top_k]


def _changed_rows(rows: list[MemoryRow], stored: dict[str, str]) -> list[MemoryRow]:
    """Rows that are new or whose ``updated_at`` differs from the stored one."""
    changed: dict[str, MemoryRow] = {}
    for row in rows:
        if stored.get(row.memory_id) != row.updated_at:
            changed[row.memory_id] = row
    return list(changed.values())


class LanceMemoryIndex:
    """LanceDB-backed memory index, sharing the database of the chunk store."""

    TABLE_NAME = "memory_items"

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.mkdir(parents=True, exist_ok=True)
        self.db = lancedb.connect(str(self.db_path))
        self._table = (
            self.db.open_table(self.TABLE_NAME) if self.TABLE_NAME in self.db.table_names() else None
        )

    @staticmethod
    def _row_to_record(row: MemoryRow) -> dict:
        return {
            "vector": row.vector,
            "memory_id": row.memory_id,
            "title": row.title,
            "content": row.content,
            "tags": row.tags,
            "updated_at": row.updated_at,
        }

    def _stored_versions(self) -> dict[str, str]:
        existing = self._table.to_arrow().select(["memory_id", "updated_at"]).to_pylist()
        return {r["memory_id"]: r["updated_at"] for r in existing}

    def upsert_memory(self, rows: list[MemoryRow]) -> UpsertResult:
        if not rows:
            return UpsertResult(table=self.TABLE_NAME)

        if self._table is None:
            to_add = _changed_rows(rows, {})
            self._table = self.db.create_table(
                self.TABLE_NAME, [self._row_to_record(r) for r in to_add]
            )
            logger.info(f"Created table {self.TABLE_NAME} with {len(to_add)} memory items")
            return UpsertResult(added=len(to_add), skipped=len(rows) - len(to_add), table=self.TABLE_NAME)

        stored = self._stored_versions()
        to_add = _changed_rows(rows, stored)
        stale = [r.memory_id for r in to_add if r.memory_id in stored]
        if stale:
            quoted = ", ".join("'" + i.replace("'", "''") + "'" for i in stale)
            self._table.delete(f"memory_id IN ({quoted})")
        if to_add:
            self._table.add([self._row_to_record(r) for r in to_add])

        result = UpsertResult(added=len(to_add), skipped=len(rows) - len(to_add), table=self.TABLE_NAME)
        logger.info(
            f"Upserted memory items: added={result.added}, replaced={len(stale)}, skipped={result.skipped}"
        )
        return result

    def search_memory(
        self, vector: list[float], top_k: int, exclude_tags: tuple[str, ...] = ()
    ) -> list[MemoryHit]:
        if self._table is None:
            return []

        results = self._table.search(vector).limit(top_k * CANDIDATE_FACTOR).to_list()
        hits = [
            MemoryHit(
                memory_id=r["memory_id"],
                title=r["title"],
                content=r["content"],
                tags=r["tags"],
                score=distance_to_score(r.get("_distance")),
            )
            for r in results
        ]
        return filter_excluded(hits, exclude_tags, top_k)


class InMemoryMemoryIndex:
    """Dict-backed memory index ranking by cosine similarity."""

    def __init__(self) -> None:
        self.rows: dict[str, MemoryRow] = {}

    def upsert_memory(self, rows: list[MemoryRow]) -> UpsertResult:
        stored = {memory_id: row.updated_at for memory_id, row in self.rows.items()}
        to_add = _changed_rows(rows, stored)
        for row in to_add:
            self.rows[row.memory_id] = row
        return UpsertResult(added=len(to_add), skipped=len(rows) - len(to_add), table="memory")

    def search_memory(
        self, vector: list[float], top_k: int, exclude_tags: tuple[str, ...] = ()
    ) -> list[MemoryHit]:
        hits = [
            MemoryHit(r.memory_id, r.title, r.content, r.tags, cosine_similarity(vector, r.vector))
            for r in self.rows.values()
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return filter_excluded(hits, exclude_tags, top_k)
