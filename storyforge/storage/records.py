"""Versioned key-value record stores.

Runs, feedback history and the learning profile are each one logical record
that is read whole and rewritten whole. ``update`` performs the
read-modify-write as a single step so overlapping runs do not lose updates.

Two implementations:
- JsonFileRecordStore: one ``<name>.json`` file per record under a root
  directory, written atomically through a temp file and ``os.replace``.
- InMemoryRecordStore: a dict, for tests.
"""

import copy
import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecordStore(Protocol):
    """Read-all / write-all access to named records."""

    def read(self, name: str, default: T) -> T: ...

    def update(self, name: str, fn: Callable[[T], T], default: T) -> T: ...


class JsonFileRecordStore:
    """File-backed record store.

    Each file holds an envelope ``{"version": n, "data": ...}``; ``version`` is
    incremented on every update. Mutations within one process are serialised
    by a lock held across the read, the update function and the write.

    Args:
        root: Directory holding the record files. Created on first write.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._lock = threading.Lock()

    def _path(self, name: str) -> Path:
        return self.root / f"{name}.json"

    def _read_envelope(self, name: str) -> dict | None:
        """Read a record envelope from disk. Caller must hold self._lock."""
        path = self._path(name)
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.error(f"Corrupted record file {path}")
            raise
        # Files written without the envelope are treated as version 0
        if isinstance(raw, dict) and "version" in raw and "data" in raw:
            return raw
        return {"version": 0, "data": raw}

    def _write_envelope(self, name: str, envelope: dict) -> None:
        """Write a record envelope atomically. Caller must hold self._lock."""
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._path(name)
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(envelope, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def read(self, name: str, default: T) -> T:
        """Return the record's data, or a copy of ``default`` if absent."""
        with self._lock:
            envelope = self._read_envelope(name)
        if envelope is None:
            return copy.deepcopy(default)
        return envelope["data"]

    def version(self, name: str) -> int:
        """Return the record's version counter (0 when absent)."""
        with self._lock:
            envelope = self._read_envelope(name)
        return 0 if envelope is None else int(envelope["version"])

    def update(self, name: str, fn: Callable[[T], T], default: T) -> T:
        """Apply ``fn`` to the current data and persist the result.

        Returns:
            The new data as written.
        """
        with self._lock:
            envelope = self._read_envelope(name)
            if envelope is None:
                envelope = {"version": 0, "data": copy.deepcopy(default)}
            data = fn(envelope["data"])
            self._write_envelope(name, {"version": envelope["version"] + 1, "data": data})
        return data


class InMemoryRecordStore:
    """Dict-backed record store with the same contract as the file store."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._records: dict[str, Any] = copy.deepcopy(initial or {})
        self._versions: dict[str, int] = {name: 1 for name in self._records}
        self._lock = threading.Lock()

    def read(self, name: str, default: T) -> T:
        with self._lock:
            if name not in self._records:
                return copy.deepcopy(default)
            return copy.deepcopy(self._records[name])

    def version(self, name: str) -> int:
        with self._lock:
            return self._versions.get(name, 0)

    def update(self, name: str, fn: Callable[[T], T], default: T) -> T:
        with self._lock:
            current = copy.deepcopy(self._records.get(name, default))
            data = fn(current)
            self._records[name] = copy.deepcopy(data)
            self._versions[name] = self._versions.get(name, 0) + 1
            return data
