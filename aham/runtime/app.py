"""
Runtime Composition - The one place that wires the runtime together

WHAT: Builds the session manager, stores, assembler, orchestrator and clustering engine
WHERE: aham/runtime/app.py - composition root, owned by the application layer
WHO: scripts/aham_chat.py and any embedding application

There are no module-level singletons: the application constructs one
AhamRuntime and that instance owns the only InferenceSessionManager.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .answer import AnswerOrchestrator
from .clustering import ClusteringEngine
from .config import RuntimeConfig
from .context import ContextAssembler
from .entry_store import JsonEntryStore
from .knowledge_store import DirectoryKnowledgeStore
from .mutation_guard import MutationGuard
from .reorganize import ReorganizeOutcome, reorganize_entries
from .session import EngineFactory, InferenceSessionManager
from .telemetry import TelemetryClient


@dataclass(slots=True)
class AhamRuntime:
    config: RuntimeConfig
    session: InferenceSessionManager
    sources: DirectoryKnowledgeStore
    assembler: ContextAssembler
    answers: AnswerOrchestrator
    entries: JsonEntryStore
    guard: MutationGuard
    clustering: ClusteringEngine

    @classmethod
    def from_config(
        cls,
        config: RuntimeConfig,
        *,
        engine_factory: Optional[EngineFactory] = None,
        telemetry: Optional[TelemetryClient] = None,
    ) -> "AhamRuntime":
        session = InferenceSessionManager(config.model, engine_factory=engine_factory, telemetry=telemetry)
        sources = DirectoryKnowledgeStore(builtin_dir=config.sources_dir, user_dir=config.user_sources_dir)
        assembler = ContextAssembler(sources, max_context_chars=config.max_context_chars)
        entries = JsonEntryStore(config.entries_path)
        entries.load()
        return cls(
            config=config,
            session=session,
            sources=sources,
            assembler=assembler,
            answers=AnswerOrchestrator(session, assembler),
            entries=entries,
            guard=MutationGuard(entries, config.snapshot_path),
            clustering=ClusteringEngine(session),
        )

    def reorganize(self) -> ReorganizeOutcome:
        return reorganize_entries(
            self.entries,
            self.guard,
            self.clustering,
            text_backup=self.config.text_backup_path,
        )

    def close(self) -> None:
        self.session.close()


__all__ = ["AhamRuntime"]
