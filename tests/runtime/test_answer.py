import pytest

from aham.runtime.answer import AnswerOrchestrator
from aham.runtime.context import ContextAssembler
from aham.runtime.knowledge_store import DirectoryKnowledgeStore
from aham.runtime.model_engine import LlamaModelConfig
from aham.runtime.session import InferenceSessionManager


class DummyEngine:
    def __init__(self, config):
        self.prompts = []

    def load(self):
        pass

    def is_loaded(self):
        return True

    def tokenize(self, text):
        return [1]

    def generate(self, prompt, **overrides):
        self.prompts.append(prompt)
        return "The report is due Friday."

    def close(self):
        pass


@pytest.fixture
def setup(tmp_path):
    builtin = tmp_path / "assets"
    builtin.mkdir()
    (builtin / "work.md").write_text("Quarterly report due Friday.", encoding="utf-8")
    (builtin / "gig.md").write_text("Gig on Saturday.", encoding="utf-8")

    engines = []

    def factory(config):
        engine = DummyEngine(config)
        engines.append(engine)
        return engine

    session = InferenceSessionManager(LlamaModelConfig(model_path="tiny.gguf"), engine_factory=factory)
    store = DirectoryKnowledgeStore(builtin_dir=builtin, user_dir=tmp_path / "user")
    orchestrator = AnswerOrchestrator(session, ContextAssembler(store))
    return orchestrator, engines


def test_answer_reports_only_included_sources(setup):
    orchestrator, engines = setup

    result = orchestrator.answer("When is the report due?", selected_ids=["work"])

    assert result.sources_used == ["work"]
    assert result.answer == "The report is due Friday."
    prompt = engines[0].prompts[-1]
    assert "Source: work\nQuarterly report due Friday." in prompt
    assert "Gig on Saturday" not in prompt
    assert "When is the report due?" in prompt


def test_answer_without_selection_uses_all_sources(setup):
    orchestrator, engines = setup
    result = orchestrator.answer("Anything this week?")
    assert result.sources_used == ["gig", "work"]
    assert result.prompt_tokens > 0


def test_answer_with_only_unknown_sources_runs_without_context(setup):
    orchestrator, engines = setup
    result = orchestrator.answer("hello?", selected_ids=["nope"])
    assert result.sources_used == []
    assert "<|system|>" not in engines[0].prompts[-1]


def test_blank_question_rejected(setup):
    orchestrator, _ = setup
    with pytest.raises(ValueError):
        orchestrator.answer("   ")


def test_available_sources_and_readiness(setup):
    orchestrator, _ = setup
    assert orchestrator.available_sources() == ["gig", "work"]
    assert not orchestrator.is_ready()
    orchestrator.answer("warm up")
    assert orchestrator.is_ready()
