"""
On-device Oracle Runtime - Session, Retrieval and Reorganization

WHAT: Local library around one long-lived on-device model session
WHERE: aham/runtime/ - everything below the UI layer
WHO: Chat/query front ends and the entry reorganization action
TIME: Model load tens of seconds (once); queries seconds to tens of seconds

Components:
- InferenceSessionManager: init / health probe / single reinit / query
- ContextAssembler + AnswerOrchestrator: bounded multi-source context, answers with sources
- ClusteringEngine: tag routing plus contract-validated semantic clustering
- MutationGuard: snapshot / commit / rollback around working-set mutations

Failure Notes:
- Contained (logged, degraded): PartialContextError, ClusterContractError
- Propagated: ModelLoadError, SessionLostError, MutationRollbackError
"""

from .answer import AnswerOrchestrator, AnswerResult  # noqa: F401
from .app import AhamRuntime  # noqa: F401
from .clustering import (  # noqa: F401
    ClusterContractError,
    ClusteringEngine,
    ContractViolation,
    GroupingResult,
    ParsedGroups,
)
from .config import RuntimeConfig  # noqa: F401
from .context import ContextAssembler, LoadedContext, PartialContextError  # noqa: F401
from .entry_store import JsonEntryStore  # noqa: F401
from .knowledge_store import DirectoryKnowledgeStore, SourceNotFoundError  # noqa: F401
from .model_engine import (  # noqa: F401
    LlamaModelConfig,
    LlamaModelEngine,
    MissingDependencyError,
    ModelLoadError,
    ModelNotLoadedError,
)
from .models import UNCATEGORIZED_TAG, Entry, KnowledgeSource, SourceTag  # noqa: F401
from .mutation_guard import (  # noqa: F401
    MutationGuard,
    MutationInProgressError,
    MutationRollbackError,
    WorkingSetSnapshot,
)
from .reorganize import ReorganizeOutcome, reorganize_entries  # noqa: F401
from .session import InferenceSessionManager, QueryResult, SessionLostError, SessionState  # noqa: F401
from .telemetry import (  # noqa: F401
    CaptureTelemetryClient,
    LoggingTelemetryClient,
    NoOpTelemetryClient,
    TelemetryClient,
    ModelCallRecord,
)

__all__ = [
    "AhamRuntime",
    "AnswerOrchestrator",
    "AnswerResult",
    "CaptureTelemetryClient",
    "ClusterContractError",
    "ClusteringEngine",
    "ContextAssembler",
    "ContractViolation",
    "DirectoryKnowledgeStore",
    "Entry",
    "GroupingResult",
    "InferenceSessionManager",
    "JsonEntryStore",
    "KnowledgeSource",
    "LlamaModelConfig",
    "LlamaModelEngine",
    "LoadedContext",
    "LoggingTelemetryClient",
    "MissingDependencyError",
    "ModelLoadError",
    "ModelCallRecord",
    "ModelNotLoadedError",
    "MutationGuard",
    "MutationInProgressError",
    "MutationRollbackError",
    "NoOpTelemetryClient",
    "ParsedGroups",
    "PartialContextError",
    "QueryResult",
    "ReorganizeOutcome",
    "RuntimeConfig",
    "SessionLostError",
    "SessionState",
    "SourceNotFoundError",
    "SourceTag",
    "TelemetryClient",
    "UNCATEGORIZED_TAG",
    "WorkingSetSnapshot",
    "reorganize_entries",
]
