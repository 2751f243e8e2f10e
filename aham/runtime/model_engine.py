"""
Model Engine - On-device GGUF Inference Interface

WHAT: Model loading and generation wrapper around llama.cpp (llama-cpp-python)
WHERE: aham/runtime/model_engine.py - lowest layer of the runtime stack
WHO: InferenceSessionManager, which owns exactly one live engine at a time
TIME: Model load takes tens of seconds; a single completion seconds to tens of seconds

Loads a quantized chat model (TinyLlama 1.1B Q4_K_M by default) from a local
GGUF file with a small, CPU-only footprint suitable for phones and laptops.
The engine is an opaque capability: callers hand it a prompt string and get
text back. Tokenization, weight format and quantization stay inside llama.cpp.

Failure Notes:
- Load failures raise ModelLoadError with the expected path and a free-space hint
- tokenize() doubles as the cheap liveness probe used by the session manager
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

DEFAULT_MODEL_FILE = "tinyllama-1.1b-chat-v1.0.Q4_K_M.gguf"
REQUIRED_PACKAGES = ("llama_cpp",)
ROLE_STOP_SEQUENCES = ("<|user|>", "<|system|>", "</s>")


class ModelLoadError(RuntimeError):
    """Raised when the model cannot be loaded; the caller may retry."""

    def __init__(self, message: str, *, model_path: str | None = None) -> None:
        super().__init__(message)
        self.model_path = model_path


class MissingDependencyError(ModelLoadError):
    """Raised when llama-cpp-python is unavailable in the environment."""


class ModelNotLoadedError(RuntimeError):
    """Raised when generation is attempted before the model is loaded."""


@dataclass(slots=True)
class LlamaModelConfig:
    """Init-time and decode-time parameters for the on-device model."""

    model_path: str = DEFAULT_MODEL_FILE
    context_window: int = 2048
    batch_size: int = 64
    thread_count: int = 2
    gpu_layers: int = 0
    use_mlock: bool = False
    max_new_tokens: int = 256
    temperature: float = 0.7
    top_p: float = 0.9
    repeat_penalty: float = 1.1
    stop_sequences: tuple[str, ...] = ROLE_STOP_SEQUENCES
    min_free_bytes: int = 1024 * 1024 * 1024
    extra_init_kwargs: Dict[str, Any] = field(default_factory=dict)

    def init_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model_path": str(self.model_path),
            "n_ctx": self.context_window,
            "n_batch": self.batch_size,
            "n_threads": self.thread_count,
            "n_gpu_layers": self.gpu_layers,
            "use_mlock": self.use_mlock,
            "verbose": False,
        }
        kwargs.update(self.extra_init_kwargs)
        return kwargs

    def generation_kwargs(self) -> Dict[str, Any]:
        return {
            "max_tokens": self.max_new_tokens,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "repeat_penalty": self.repeat_penalty,
            "stop": list(self.stop_sequences),
        }


class InferenceEngine(Protocol):
    """Contract the session manager relies on; llama.cpp or a test double."""

    def load(self) -> None:
        """Load the model; raise ModelLoadError on failure."""

    def is_loaded(self) -> bool:
        """True once load() succeeded and close() has not been called."""

    def tokenize(self, text: str) -> list[int]:
        """Tokenize text; used as the liveness probe."""

    def generate(self, prompt: str, **overrides: Any) -> str:
        """Run one completion and return the generated text."""

    def close(self) -> None:
        """Release native resources."""


def describe_load_failure(model_path: str, min_free_bytes: int, cause: object) -> str:
    """Build an actionable diagnostic for a failed model load."""

    path = Path(model_path).expanduser()
    lines = [f"Failed to load model from {path}: {cause}"]
    if not path.exists():
        lines.append(f"Expected a GGUF model file at {path}; copy or download it there and retry.")
    probe_dir = path.parent if path.parent.exists() else Path.cwd()
    try:
        free = shutil.disk_usage(probe_dir).free
        lines.append(
            f"Free space at {probe_dir}: {free / 1024 ** 2:.0f}MB "
            f"(at least {min_free_bytes / 1024 ** 2:.0f}MB recommended)."
        )
    except OSError:
        lines.append(f"At least {min_free_bytes / 1024 ** 2:.0f}MB of free space is recommended.")
    return " ".join(lines)


class LlamaModelEngine:
    """Handles loading and generation for a local GGUF model via llama.cpp."""

    def __init__(self, config: LlamaModelConfig | None = None) -> None:
        self.config = config or LlamaModelConfig()
        self._model = None
        self._modules: Dict[str, Any] = {}

    @staticmethod
    def dependencies_available() -> bool:
        import importlib

        for package in REQUIRED_PACKAGES:
            try:
                importlib.import_module(package)
            except ImportError:
                return False
        return True

    def _ensure_dependencies(self) -> None:
        import importlib

        missing: list[str] = []
        modules = {}
        for package in REQUIRED_PACKAGES:
            try:
                modules[package] = importlib.import_module(package)
            except ImportError:
                missing.append(package)

        if missing:
            raise MissingDependencyError(
                "Missing model dependencies: "
                + ", ".join(missing)
                + ". Install with `pip install 'aham[llama]'`.",
                model_path=str(self.config.model_path),
            )
        self._modules = modules

    def load(self) -> None:
        """Load the GGUF model into memory."""

        self._ensure_dependencies()
        model_path = str(Path(self.config.model_path).expanduser())
        if not Path(model_path).is_file():
            raise ModelLoadError(
                describe_load_failure(model_path, self.config.min_free_bytes, "file not found"),
                model_path=model_path,
            )

        Llama = self._modules["llama_cpp"].Llama
        kwargs = self.config.init_kwargs()
        kwargs["model_path"] = model_path
        try:
            self._model = Llama(**kwargs)
        except (ValueError, RuntimeError, OSError) as exc:
            self._model = None
            raise ModelLoadError(
                describe_load_failure(model_path, self.config.min_free_bytes, exc),
                model_path=model_path,
            ) from exc
        if self._model is None:
            raise ModelLoadError(
                describe_load_failure(model_path, self.config.min_free_bytes, "engine returned no context"),
                model_path=model_path,
            )

    def is_loaded(self) -> bool:
        return self._model is not None

    def tokenize(self, text: str) -> list[int]:
        if not self.is_loaded():
            raise ModelNotLoadedError("Model is not loaded; call load() first")
        return list(self._model.tokenize(text.encode("utf-8"), add_bos=False))  # type: ignore[union-attr]

    def generate(self, prompt: str, **overrides: Any) -> str:
        if not self.is_loaded():
            raise ModelNotLoadedError("Model is not loaded; call load() first")

        kwargs = self.config.generation_kwargs()
        kwargs.update(overrides)
        result = self._model(prompt, **kwargs)  # type: ignore[misc]
        choices = result.get("choices") or []
        if not choices:
            return ""
        return str(choices[0].get("text") or "").strip()

    def close(self) -> None:
        model, self._model = self._model, None
        if model is not None and hasattr(model, "close"):
            model.close()


__all__ = [
    "DEFAULT_MODEL_FILE",
    "ROLE_STOP_SEQUENCES",
    "InferenceEngine",
    "LlamaModelConfig",
    "LlamaModelEngine",
    "MissingDependencyError",
    "ModelLoadError",
    "ModelNotLoadedError",
    "describe_load_failure",
]
