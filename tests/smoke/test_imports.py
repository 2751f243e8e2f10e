def test_import_runtime_package():
    from aham.runtime import (  # noqa: F401
        AhamRuntime,
        AnswerOrchestrator,
        ClusteringEngine,
        InferenceSessionManager,
        MutationGuard,
    )


def test_import_engine_without_llama_cpp():
    from aham.runtime.model_engine import LlamaModelEngine  # noqa: F401
