"""
Session Manager - Inference Session Lifecycle

WHAT: Owns the single long-lived inference session: load, health-check, recover, query
WHERE: aham/runtime/session.py - sits between the engine and every model caller
WHO: AnswerOrchestrator, ClusteringEngine, the chat CLI
TIME: Load tens of seconds (once); probe <10ms; query seconds to tens of seconds

The session is an explicit state machine:

    UNINITIALIZED --initialize--> INITIALIZING --ok--> READY
    INITIALIZING  --fail--------> UNINITIALIZED            (ModelLoadError, retryable)
    READY         --probe fail--> INVALID
    INVALID       --one reinit--> READY | INVALID+exhausted (SessionLostError)

Concurrent initialize() calls share one Future, so the engine is loaded once.
An INVALID session gets exactly one automatic reinit per invalidation; once
that fails the manager stays exhausted and raises SessionLostError without
touching the engine until a caller runs initialize() successfully. A failed
explicit initialize() from that state leaves it exhausted.

Failure Notes:
- The engine is not safe for concurrent completions; generation is serialized
- Probe, invalidation, reinit and close share the generation lock, so the
  engine is never released under an in-flight completion
- Engines are never patched in place; every (re)init builds a fresh instance
"""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from .model_engine import InferenceEngine, LlamaModelConfig, LlamaModelEngine, ModelLoadError
from .prompting import compose_chat_prompt
from .telemetry import NoOpTelemetryClient, TelemetryClient

logger = logging.getLogger(__name__)

EngineFactory = Callable[[LlamaModelConfig], InferenceEngine]

PROBE_TEXT = "ping"


class SessionLostError(RuntimeError):
    """Raised when the health probe and the single reinit both failed."""


class SessionState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    INVALID = "invalid"


@dataclass(slots=True)
class QueryResult:
    """Generated text plus a rough token usage estimate (4 chars per token)."""

    text: str
    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def estimate_tokens(text: str) -> int:
    return -(-len(text) // 4)


class InferenceSessionManager:
    """Lifecycle owner for one inference session. Construct one per application."""

    def __init__(
        self,
        config: LlamaModelConfig | None = None,
        *,
        engine_factory: EngineFactory | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._config = config or LlamaModelConfig()
        self._engine_factory: EngineFactory = engine_factory or LlamaModelEngine
        self._telemetry = telemetry or NoOpTelemetryClient()
        self._engine: Optional[InferenceEngine] = None
        self._state = SessionState.UNINITIALIZED
        self._pending: Optional[Future] = None
        self._exhausted = False
        self._load_attempts = 0
        self._state_lock = threading.Lock()
        # Reentrant: a query holds it across ensure_valid() and generate().
        self._generate_lock = threading.RLock()

    # ---------------------- introspection ----------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def config(self) -> LlamaModelConfig:
        return self._config

    @property
    def model_path(self) -> str:
        return str(self._config.model_path)

    @property
    def load_attempts(self) -> int:
        return self._load_attempts

    @property
    def telemetry(self) -> TelemetryClient:
        return self._telemetry

    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    def describe(self) -> str:
        if self._state is SessionState.READY:
            return f"Model loaded and ready ({self.model_path})"
        return f"Model not ready (state={self._state.value}, path={self.model_path})"

    # ---------------------- transitions ----------------------
    def _begin_initialization(self, config: LlamaModelConfig) -> Future:
        # Caller holds _state_lock.
        self._config = config
        self._state = SessionState.INITIALIZING
        self._pending = Future()
        return self._pending

    def _mark_ready(self, engine: InferenceEngine) -> None:
        with self._state_lock:
            self._engine = engine
            self._state = SessionState.READY
            self._exhausted = False
            self._pending = None

    def _mark_failed(self) -> None:
        with self._state_lock:
            self._engine = None
            # A lost session stays lost until a load actually succeeds.
            self._state = SessionState.INVALID if self._exhausted else SessionState.UNINITIALIZED
            self._pending = None

    def mark_invalid(self, reason: str = "marked invalid") -> None:
        """Drop the live engine; the next query performs exactly one reinit."""

        with self._generate_lock:
            with self._state_lock:
                if self._state is SessionState.INITIALIZING:
                    return
                engine, self._engine = self._engine, None
                self._state = SessionState.INVALID
                self._exhausted = False
            logger.warning(f"Inference session invalidated: {reason}")
            self._release(engine)

    def _mark_lost(self) -> None:
        with self._state_lock:
            self._engine = None
            self._state = SessionState.INVALID
            self._exhausted = True

    # ---------------------- lifecycle ----------------------
    def initialize(self, model_path: str | None = None, config: LlamaModelConfig | None = None) -> None:
        """Load the model unless already READY; concurrent callers share one load."""

        with self._state_lock:
            if self._state is SessionState.READY:
                return
            pending = self._pending
            owner = pending is None
            if owner:
                target = config or self._config
                if model_path is not None:
                    target = replace(target, model_path=model_path)
                pending = self._begin_initialization(target)

        if owner:
            self._run_load(pending, self._config)
        pending.result()

    def _run_load(self, pending: Future, config: LlamaModelConfig) -> None:
        self._load_attempts += 1
        attributes = {"model_path": str(config.model_path), "attempt": self._load_attempts}
        try:
            with self._telemetry.span("aham.model_load", attributes=attributes):
                engine = self._engine_factory(config)
                engine.load()
        except ModelLoadError as exc:
            logger.error(f"Model load failed: {exc}")
            self._mark_failed()
            pending.set_exception(exc)
            return
        except Exception as exc:
            logger.error(f"Model load failed unexpectedly: {exc}")
            self._mark_failed()
            error = ModelLoadError(
                f"Failed to initialize model at {config.model_path}: {exc}",
                model_path=str(config.model_path),
            )
            error.__cause__ = exc
            pending.set_exception(error)
            return

        logger.info(f"Model loaded from {config.model_path}")
        self._mark_ready(engine)
        pending.set_result(None)

    def _probe(self) -> bool:
        engine = self._engine
        if engine is None:
            return False
        try:
            engine.tokenize(PROBE_TEXT)
        except Exception as exc:
            logger.warning(f"Health probe failed: {exc}")
            return False
        return True

    def ensure_valid(self) -> None:
        """Make sure a usable session exists before a query runs."""

        with self._generate_lock:
            state = self._state
            if state in (SessionState.UNINITIALIZED, SessionState.INITIALIZING):
                self.initialize()
                return

            if state is SessionState.READY:
                if self._probe():
                    return
                self.mark_invalid("health probe failed")

            if self._exhausted:
                raise SessionLostError(
                    f"Inference session lost (model={self.model_path}); call initialize() to recover"
                )

            logger.info(f"Reinitializing inference session from {self.model_path}")
            try:
                self.initialize(self.model_path)
            except ModelLoadError as exc:
                self._mark_lost()
                raise SessionLostError(
                    f"Inference session lost: reinit from {self.model_path} failed: {exc}"
                ) from exc

    def close(self) -> None:
        with self._generate_lock:
            with self._state_lock:
                engine, self._engine = self._engine, None
                self._state = SessionState.UNINITIALIZED
                self._exhausted = False
            self._release(engine)

    @staticmethod
    def _release(engine: Optional[InferenceEngine]) -> None:
        if engine is None:
            return
        try:
            engine.close()
        except Exception as exc:  # pragma: no cover - best effort unload
            logger.warning(f"Error releasing inference engine: {exc}")

    # ---------------------- querying ----------------------
    def query_with_usage(self, prompt: str, context: str | None = None, **overrides: Any) -> QueryResult:
        full_prompt = compose_chat_prompt(prompt, context=context)

        with self._generate_lock:
            self.ensure_valid()
            engine = self._engine
            if engine is None:
                raise SessionLostError("Inference session was released during the query")
            attributes = {
                "prompt_chars": len(full_prompt),
                "has_context": bool(context),
                "override_keys": sorted(overrides.keys()),
            }
            with self._telemetry.span("aham.model_generate", attributes=attributes) as record:
                text = engine.generate(full_prompt, **overrides).strip()
                record.set_attribute("response_chars", len(text))

        return QueryResult(
            text=text,
            prompt_tokens=estimate_tokens(full_prompt),
            completion_tokens=estimate_tokens(text),
        )

    def query(self, prompt: str, context: str | None = None, **overrides: Any) -> str:
        """Generate a reply to ``prompt`` with optional context; returns trimmed text."""

        return self.query_with_usage(prompt, context, **overrides).text


__all__ = [
    "EngineFactory",
    "InferenceSessionManager",
    "QueryResult",
    "SessionLostError",
    "SessionState",
    "estimate_tokens",
]
