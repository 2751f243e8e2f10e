import importlib
import sys

import pytest

from aham.runtime.model_engine import (
    LlamaModelConfig,
    LlamaModelEngine,
    MissingDependencyError,
    ModelLoadError,
    ModelNotLoadedError,
    describe_load_failure,
)


class FakeLlama:
    def __init__(self, **kwargs):
        self.init_kwargs = kwargs
        self.calls = []
        self.closed = False

    def tokenize(self, data, add_bos=True):
        return list(range(len(data.split())))

    def __call__(self, prompt, **kwargs):
        self.calls.append((prompt, kwargs))
        return {"choices": [{"text": "  first paragraph.\n\nsecond paragraph.  "}]}

    def close(self):
        self.closed = True


class FakeLlamaModule:
    Llama = FakeLlama


def test_engine_instantiation_without_loading():
    engine = LlamaModelEngine()
    assert not engine.is_loaded()
    with pytest.raises(ModelNotLoadedError):
        engine.generate("Hello")
    with pytest.raises(ModelNotLoadedError):
        engine.tokenize("Hello")


def test_engine_reports_missing_dependencies(monkeypatch):
    monkeypatch.setitem(sys.modules, "llama_cpp", None)

    engine = LlamaModelEngine(LlamaModelConfig(model_path="/nowhere/model.gguf"))
    with pytest.raises(MissingDependencyError) as info:
        engine.load()
    assert isinstance(info.value, ModelLoadError)
    assert "llama_cpp" in str(info.value)


def test_dependencies_available_handles_missing(monkeypatch):
    monkeypatch.setitem(sys.modules, "llama_cpp", None)
    assert LlamaModelEngine.dependencies_available() is False


def test_missing_model_file_carries_diagnostics(monkeypatch, tmp_path):
    monkeypatch.setitem(sys.modules, "llama_cpp", FakeLlamaModule)
    missing = tmp_path / "models" / "tiny.gguf"

    engine = LlamaModelEngine(LlamaModelConfig(model_path=str(missing)))
    with pytest.raises(ModelLoadError) as info:
        engine.load()

    message = str(info.value)
    assert str(missing) in message
    assert "recommended" in message
    assert info.value.model_path == str(missing)
    assert not engine.is_loaded()


def test_load_passes_init_parameters_and_generates(monkeypatch, tmp_path):
    monkeypatch.setitem(sys.modules, "llama_cpp", FakeLlamaModule)
    model_file = tmp_path / "tiny.gguf"
    model_file.write_bytes(b"GGUF")

    config = LlamaModelConfig(model_path=str(model_file), context_window=512, batch_size=32, thread_count=1)
    engine = LlamaModelEngine(config)
    engine.load()
    assert engine.is_loaded()

    llama = engine._model
    assert llama.init_kwargs["n_ctx"] == 512
    assert llama.init_kwargs["n_batch"] == 32
    assert llama.init_kwargs["n_threads"] == 1
    assert llama.init_kwargs["n_gpu_layers"] == 0

    text = engine.generate("<|user|>\nhi\n<|assistant|>\n")
    assert text == "first paragraph.\n\nsecond paragraph."
    _, kwargs = llama.calls[-1]
    assert kwargs["max_tokens"] == config.max_new_tokens
    assert "\n\n" not in kwargs["stop"]
    assert "<|user|>" in kwargs["stop"]

    assert engine.tokenize("one two") == [0, 1]
    engine.close()
    assert llama.closed
    assert not engine.is_loaded()


def test_engine_wraps_native_load_failure(monkeypatch, tmp_path):
    class ExplodingLlama:
        def __init__(self, **kwargs):
            raise ValueError("Failed to load model from file")

    class ExplodingModule:
        Llama = ExplodingLlama

    monkeypatch.setitem(sys.modules, "llama_cpp", ExplodingModule)
    model_file = tmp_path / "broken.gguf"
    model_file.write_bytes(b"nope")

    engine = LlamaModelEngine(LlamaModelConfig(model_path=str(model_file)))
    with pytest.raises(ModelLoadError) as info:
        engine.load()
    assert isinstance(info.value.__cause__, ValueError)


def test_describe_load_failure_mentions_expected_path(tmp_path):
    message = describe_load_failure(str(tmp_path / "absent.gguf"), 2 * 1024 ** 3, "boom")
    assert "absent.gguf" in message
    assert "2048MB" in message
    assert "boom" in message


def test_dependency_probe_uses_importlib(monkeypatch):
    real_import = importlib.import_module

    def fake_import(name, *args, **kwargs):
        if name == "llama_cpp":
            raise ImportError
        return real_import(name, *args, **kwargs)

    monkeypatch.setattr(importlib, "import_module", fake_import)
    engine = LlamaModelEngine()
    with pytest.raises(MissingDependencyError):
        engine._ensure_dependencies()
