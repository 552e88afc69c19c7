"""Durable project memory.

Memory items are curated facts that outlive a single document (decisions,
glossary terms, business rules, resolved questions and patterns). They live
as a list in the ``memory`` record and are embedded into the memory index at
the start of every run.
"""

import logging
import uuid
from collections.abc import Sequence
from enum import Enum

from pydantic import Field, field_validator

from storyforge.config import MEMORY_RECORD
from storyforge.errors import StoryforgeError
from storyforge.models import WireModel
from storyforge.runs.registry import utc_now
from storyforge.storage.records import RecordStore

logger = logging.getLogger(__name__)


class MemoryItemType(Enum):
    DECISION = "decision"
    GLOSSARY = "glossary"
    RULE = "rule"
    RESOLVED_QUESTION = "resolved_question"
    PATTERN = "pattern"


class MemoryItem(WireModel):
    id: str
    type: MemoryItemType
    title: str
    content: str
    tags: list[str] = Field(default_factory=list)
    created_at: str
    updated_at: str

    @field_validator("tags", mode="before")
    @classmethod
    def coerce_tags(cls, v):
        if v is None or v == "":
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v

    @property
    def embedding_text(self) -> str:
        return f"TITLE: {self.title}\nCONTENT: {self.content}\nTAGS: {', '.join(self.tags)}"


def new_memory_item(
    item_type: MemoryItemType | str,
    title: str,
    content: str,
    tags: Sequence[str] = (),
    item_id: str | None = None,
) -> MemoryItem:
    now = utc_now()
    return MemoryItem(
        id=item_id or f"mem_{uuid.uuid4().hex[:12]}",
        type=MemoryItemType(item_type),
        title=title,
        content=content,
        tags=list(tags),
        created_at=now,
        updated_at=now,
    )


class MemoryStore:
    """Memory items over a record store.

    Args:
        records: Backing record store.
        record_name: Name of the memory record.
    """

    def __init__(self, records: RecordStore, record_name: str = MEMORY_RECORD):
        self.records = records
        self.record_name = record_name

    def items(self) -> list[MemoryItem]:
        return [MemoryItem.model_validate(raw) for raw in self.records.read(self.record_name, [])]

    def find(self, item_id: str) -> MemoryItem | None:
        return next((item for item in self.items() if item.id == item_id), None)

    def add(self, item: MemoryItem) -> MemoryItem:
        """Append a new item.

        Raises:
            StoryforgeError: If an item with the same id already exists.
        """

        def apply(items: list[dict]) -> list[dict]:
            if any(raw.get("id") == item.id for raw in items):
                raise StoryforgeError(f"Memory item {item.id} already exists")
            return [*items, item.to_wire()]

        self.records.update(self.record_name, apply, [])
        logger.info(f"Memory item {item.id} added ({item.type.value})")
        return item

    def upsert(self, item: MemoryItem) -> MemoryItem:
        """Replace the item with the same id, or append it.

        A replaced item keeps its original ``createdAt`` and gets a fresh
        ``updatedAt`` so the memory index re-embeds it.
        """
        stored: list[MemoryItem] = []

        def apply(items: list[dict]) -> list[dict]:
            index = next((i for i, raw in enumerate(items) if raw.get("id") == item.id), None)
            if index is None:
                stored.append(item)
                return [*items, item.to_wire()]
            created_at = items[index].get("createdAt", item.created_at)
            updated = item.model_copy(update={"created_at": created_at, "updated_at": utc_now()})
            stored.append(updated)
            return [*items[:index], updated.to_wire(), *items[index + 1 :]]

        self.records.update(self.record_name, apply, [])
        return stored[0]
