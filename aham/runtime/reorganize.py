"""
Module: aham/runtime/reorganize.py
Summary: "Group entries" action: snapshot, cluster, replace, or roll back.
Inputs: EntryStore working set, MutationGuard, ClusteringEngine
Outputs: ReorganizeOutcome; the store holds either the grouped set or the original set
Related: aham/runtime/clustering.py, aham/runtime/mutation_guard.py
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .clustering import ClusteringEngine, ContractViolation
from .entry_store import EntryStore
from .mutation_guard import MutationGuard

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReorganizeOutcome:
    changed: bool
    before: int
    after: int
    fallback_used: bool = False
    violation: Optional[ContractViolation] = None


def reorganize_entries(
    store: EntryStore,
    guard: MutationGuard,
    engine: ClusteringEngine,
    *,
    min_entries: int = 2,
    text_backup: Optional[Path] = None,
) -> ReorganizeOutcome:
    entries = store.list()
    if len(entries) < min_entries:
        logger.info(f"Skipping reorganization: {len(entries)} entries (< {min_entries})")
        return ReorganizeOutcome(changed=False, before=len(entries), after=len(entries))

    with guard.transaction():
        if text_backup is not None:
            export = getattr(store, "export_text_backup", None)
            if export is not None:
                export(text_backup)
        result = engine.group(entries)
        store.replace_all(result.entries)

    logger.info(f"Reorganized {len(entries)} entries into {len(result.entries)}")
    return ReorganizeOutcome(
        changed=True,
        before=len(entries),
        after=len(result.entries),
        fallback_used=result.fallback_used,
        violation=result.violation,
    )


__all__ = ["ReorganizeOutcome", "reorganize_entries"]
