"""
Runtime Configuration - Environment-driven settings

WHAT: Paths and model parameters for composing the runtime
WHERE: aham/runtime/config.py - configuration layer
WHO: AhamRuntime.from_config, scripts/aham_chat.py

Environment:
  - AHAM_MODEL_PATH, AHAM_CONTEXT_WINDOW, AHAM_BATCH_SIZE, AHAM_THREADS, AHAM_GPU_LAYERS
  - AHAM_MAX_NEW_TOKENS, AHAM_TEMPERATURE, AHAM_TOP_P
  - AHAM_DATA_DIR, AHAM_SOURCES_DIR, AHAM_MAX_CONTEXT_CHARS
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .model_engine import DEFAULT_MODEL_FILE, LlamaModelConfig

DEFAULT_DATA_DIR = "~/.aham"


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    return int(raw) if raw else default


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = (env.get(key) or "").strip()
    return float(raw) if raw else default


@dataclass(slots=True)
class RuntimeConfig:
    model: LlamaModelConfig = field(default_factory=LlamaModelConfig)
    data_dir: Path = field(default_factory=lambda: Path(DEFAULT_DATA_DIR).expanduser())
    sources_dir: Optional[Path] = None
    max_context_chars: Optional[int] = 6000

    @property
    def entries_path(self) -> Path:
        return self.data_dir / "entries.json"

    @property
    def snapshot_path(self) -> Path:
        return self.data_dir / "entries.snapshot.json"

    @property
    def text_backup_path(self) -> Path:
        return self.data_dir / "entries_backup.txt"

    @property
    def user_sources_dir(self) -> Path:
        return self.data_dir / "sources"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "RuntimeConfig":
        env = os.environ if env is None else env
        defaults = LlamaModelConfig()
        data_dir = Path(env.get("AHAM_DATA_DIR") or DEFAULT_DATA_DIR).expanduser()
        model = LlamaModelConfig(
            model_path=env.get("AHAM_MODEL_PATH") or str(data_dir / DEFAULT_MODEL_FILE),
            context_window=_env_int(env, "AHAM_CONTEXT_WINDOW", defaults.context_window),
            batch_size=_env_int(env, "AHAM_BATCH_SIZE", defaults.batch_size),
            thread_count=_env_int(env, "AHAM_THREADS", defaults.thread_count),
            gpu_layers=_env_int(env, "AHAM_GPU_LAYERS", defaults.gpu_layers),
            max_new_tokens=_env_int(env, "AHAM_MAX_NEW_TOKENS", defaults.max_new_tokens),
            temperature=_env_float(env, "AHAM_TEMPERATURE", defaults.temperature),
            top_p=_env_float(env, "AHAM_TOP_P", defaults.top_p),
        )
        sources = env.get("AHAM_SOURCES_DIR")
        max_chars = _env_int(env, "AHAM_MAX_CONTEXT_CHARS", 6000)
        return cls(
            model=model,
            data_dir=data_dir,
            sources_dir=Path(sources).expanduser() if sources else None,
            max_context_chars=max_chars if max_chars > 0 else None,
        )


__all__ = ["DEFAULT_DATA_DIR", "RuntimeConfig"]
