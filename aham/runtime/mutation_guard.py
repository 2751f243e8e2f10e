"""
Mutation Guard - Snapshot / commit / rollback around risky working-set changes

WHAT: Captures a full copy of the entries before a mutation and restores it on failure
WHERE: aham/runtime/mutation_guard.py - safety net between callers and the entry store
WHO: reorganize_entries today; any future bulk mutation of the working set
TIME: One full JSON write per snapshot, one full read + write per rollback

Protocol:
- before_mutation(): snapshot -> side-channel file (never the primary store file)
- commit():          mutation succeeded; snapshot kept on disk as last known good
- rollback():        mutation failed; working set reloaded strictly from the snapshot

A failed rollback raises MutationRollbackError so "lost the change" is never
confused with "lost the change and the backup". Callers serialize mutations;
the guard only refuses to start a new one while a snapshot is unresolved.
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .entry_store import EntryStore, write_json_atomic
from .models import Entry

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class MutationRollbackError(RuntimeError):
    """Restoring the working set from its snapshot failed."""

    def __init__(self, message: str, *, original_error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.original_error = original_error


class MutationInProgressError(RuntimeError):
    """A new mutation was started while a snapshot is still unresolved."""


@dataclass(frozen=True, slots=True)
class WorkingSetSnapshot:
    entries: Tuple[Entry, ...]
    taken_at: datetime
    path: Path

    def __len__(self) -> int:
        return len(self.entries)


class MutationGuard:
    """Snapshot-backed transaction wrapper for an EntryStore."""

    def __init__(self, store: EntryStore, snapshot_path: Path) -> None:
        self._store = store
        self._snapshot_path = Path(snapshot_path).expanduser()
        primary = getattr(store, "path", None)
        if primary is not None and Path(primary).expanduser().resolve() == self._snapshot_path.resolve():
            raise ValueError("snapshot path must differ from the primary entry store file")
        self._pending: Optional[WorkingSetSnapshot] = None
        self._lock = threading.Lock()

    @property
    def snapshot_path(self) -> Path:
        return self._snapshot_path

    @property
    def pending(self) -> Optional[WorkingSetSnapshot]:
        return self._pending

    # ---------------------- protocol ----------------------
    def before_mutation(self) -> WorkingSetSnapshot:
        with self._lock:
            if self._pending is not None:
                raise MutationInProgressError(
                    f"Snapshot taken at {self._pending.taken_at.isoformat()} has not been committed or rolled back"
                )
            entries = tuple(entry.model_copy(deep=True) for entry in self._store.list())
            snapshot = WorkingSetSnapshot(
                entries=entries,
                taken_at=datetime.now(timezone.utc),
                path=self._snapshot_path,
            )
            write_json_atomic(
                self._snapshot_path,
                {
                    "version": SNAPSHOT_VERSION,
                    "taken_at": snapshot.taken_at.isoformat(),
                    "entries": [entry.to_record() for entry in entries],
                },
            )
            self._pending = snapshot
        logger.info(f"Snapshot of {len(snapshot)} entries written to {self._snapshot_path}")
        return snapshot

    def commit(self) -> None:
        with self._lock:
            if self._pending is None:
                raise RuntimeError("commit() called without a pending snapshot")
            self._pending = None
        logger.info(f"Mutation committed; last known good kept at {self._snapshot_path}")

    def rollback(self, original_error: Optional[BaseException] = None) -> List[Entry]:
        """Restore the working set from the snapshot file, memory and disk."""

        with self._lock:
            if self._pending is None:
                raise MutationRollbackError(
                    "rollback() called without a pending snapshot", original_error=original_error
                )
            try:
                entries = self._read_snapshot(self._snapshot_path)
                self._store.replace_all(entries)
            except Exception as exc:
                logger.error(f"Rollback from {self._snapshot_path} failed: {exc}")
                raise MutationRollbackError(
                    f"Could not restore entries from snapshot {self._snapshot_path}: {exc}",
                    original_error=original_error,
                ) from exc
            self._pending = None
        logger.info(f"Working set restored to {len(entries)} entries from snapshot")
        return entries

    @contextmanager
    def transaction(self) -> Iterator[WorkingSetSnapshot]:
        snapshot = self.before_mutation()
        try:
            yield snapshot
        except BaseException as exc:
            logger.warning(f"Mutation failed, rolling back: {exc}")
            self.rollback(original_error=exc)
            raise
        self.commit()

    # ---------------------- recovery ----------------------
    @staticmethod
    def _read_snapshot(path: Path) -> List[Entry]:
        payload = json.loads(path.read_text(encoding="utf-8"))
        return [Entry.from_record(record) for record in payload["entries"]]

    def last_known_good(self) -> List[Entry]:
        """Entries from the retained snapshot, for manual recovery after a commit."""

        if not self._snapshot_path.exists():
            return []
        return self._read_snapshot(self._snapshot_path)


__all__ = [
    "MutationGuard",
    "MutationInProgressError",
    "MutationRollbackError",
    "WorkingSetSnapshot",
]
