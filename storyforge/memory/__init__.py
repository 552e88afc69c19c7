"""Curated project memory injected into the analysis context."""

from storyforge.memory.context import build_memory_context
from storyforge.memory.index import InMemoryMemoryIndex, LanceMemoryIndex, MemoryHit, MemoryIndex
from storyforge.memory.store import MemoryItem, MemoryItemType, MemoryStore, new_memory_item

__all__ = [
    "InMemoryMemoryIndex",
    "LanceMemoryIndex",
    "MemoryHit",
    "MemoryIndex",
    "MemoryItem",
    "MemoryItemType",
    "MemoryStore",
    "build_memory_context",
    "new_memory_item",
]
