"""
Entry Store - JSON persistence for the working set of entries

WHAT: Loads, mutates and persists the free-text entry collection
WHERE: aham/runtime/entry_store.py - storage collaborator for clustering and the guard
WHO: CLI note commands, reorganize_entries, MutationGuard (snapshot/restore)
TIME: Every mutation rewrites the whole file; fine for thousands of entries

Writes go to a temporary file first and are moved into place with
``os.replace`` so a crash mid-write leaves the previous file intact.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence

from .models import UNCATEGORIZED_TAG, Entry

logger = logging.getLogger(__name__)


class EntryStore(Protocol):
    """Primitives the clustering flow and the mutation guard rely on."""

    def list(self) -> List[Entry]:
        """Return a copy of the current entries in insertion order."""

    def append_batch(self, category: str, entries: Sequence[Entry]) -> List[Entry]:
        """Append entries under one category tag; returns the stored entries."""

    def replace_all(self, entries: Sequence[Entry]) -> None:
        """Replace the whole working set, in memory and on disk."""


def write_json_atomic(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, ensure_ascii=False, indent=2)
        fh.flush()
        os.fsync(fh.fileno())
    os.replace(tmp, path)


@dataclass
class JsonEntryStore:
    """Entry working set persisted as one JSON array of records."""

    path: Path
    _entries: List[Entry] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        self.path = Path(self.path).expanduser()

    # ------------------ lifecycle ------------------
    def load(self) -> int:
        """Read entries from disk; a missing or unreadable file yields an empty set."""

        if not self.path.exists():
            logger.info(f"No stored entries at {self.path}, starting fresh")
            self._entries = []
            return 0
        try:
            records = json.loads(self.path.read_text(encoding="utf-8"))
            self._entries = [Entry.from_record(record) for record in records]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.error(f"Error loading entries from {self.path}: {exc}")
            self._entries = []
        logger.info(f"Loaded {len(self._entries)} entries from {self.path}")
        return len(self._entries)

    def _persist(self) -> None:
        write_json_atomic(self.path, [entry.to_record() for entry in self._entries])

    # ------------------ reads ------------------
    def list(self) -> List[Entry]:
        return [entry.model_copy(deep=True) for entry in self._entries]

    def get(self, entry_id: str) -> Entry:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry.model_copy(deep=True)
        raise KeyError(f"Entry with id {entry_id} not found")

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------ writes ------------------
    def add(self, text: str, tags: Optional[Iterable[str]] = None) -> Entry:
        entry = Entry(text=text, tags=list(tags or []) or [UNCATEGORIZED_TAG])
        self._entries.append(entry)
        self._persist()
        return entry.model_copy(deep=True)

    def update(self, entry_id: str, text: str, tags: Optional[Iterable[str]] = None) -> Entry:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                updated = entry.model_copy(
                    update={"text": text, "tags": list(tags or []) or [UNCATEGORIZED_TAG]}
                )
                self._entries[index] = updated
                self._persist()
                logger.info(f"Updated entry {entry_id}")
                return updated.model_copy(deep=True)
        raise KeyError(f"Entry with id {entry_id} not found")

    def delete(self, entry_id: str) -> None:
        self._entries = [entry for entry in self._entries if entry.id != entry_id]
        self._persist()

    def clear(self) -> None:
        self._entries = []
        self._persist()

    def append_batch(self, category: str, entries: Sequence[Entry]) -> List[Entry]:
        stored: List[Entry] = []
        for entry in entries:
            tags = [category] + [tag for tag in entry.tags if tag != category]
            stored.append(entry.model_copy(update={"tags": tags}, deep=True))
        self._entries.extend(stored)
        self._persist()
        return [entry.model_copy(deep=True) for entry in stored]

    def replace_all(self, entries: Sequence[Entry]) -> None:
        self._entries = [entry.model_copy(deep=True) for entry in entries]
        self._persist()

    # ------------------ export ------------------
    def export_text_backup(self, path: Path) -> Path:
        """Write a human-readable copy of the working set; not used for restore."""

        path = Path(path).expanduser()
        body = "\n\n---\n\n".join(
            f"[{index}] {entry.timestamp.isoformat(timespec='seconds')}\n{entry.text}"
            for index, entry in enumerate(self._entries, start=1)
        )
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")
        logger.info(f"Entries exported to {path}")
        return path


__all__ = ["EntryStore", "JsonEntryStore", "write_json_atomic"]
