import pytest

from aham.runtime.context import ContextAssembler, PartialContextError
from aham.runtime.knowledge_store import SourceNotFoundError
from aham.runtime.models import KnowledgeSource


class FakeSourceStore:
    def __init__(self, sources, broken=()):
        self.sources = dict(sources)
        self.broken = set(broken)
        self.reads = []

    def list_identifiers(self):
        return list(self.sources)

    def read(self, identifier):
        self.reads.append(identifier)
        if identifier in self.broken:
            raise OSError("disk read error")
        if identifier not in self.sources:
            raise SourceNotFoundError(identifier)
        return KnowledgeSource.snapshot(identifier, self.sources[identifier])


def make_store(**extra):
    return FakeSourceStore({"a": "alpha text", "b": "beta text", "c": "gamma text"}, **extra)


def test_load_context_selects_subset():
    assembler = ContextAssembler(make_store())
    loaded = assembler.load_context(["a", "b"])
    assert loaded.identifiers == ["a", "b"]
    assert [s.content for s in loaded.sources] == ["alpha text", "beta text"]


def test_unknown_ids_are_ignored():
    store = make_store()
    assembler = ContextAssembler(store)
    loaded = assembler.load_context(["a", "z", "b"])
    assert loaded.identifiers == ["a", "b"]
    assert not loaded.errors
    assert "z" not in store.reads


@pytest.mark.parametrize("selector", [None, []])
def test_empty_selector_loads_everything(selector):
    loaded = ContextAssembler(make_store()).load_context(selector)
    assert loaded.identifiers == ["a", "b", "c"]


def test_selectors_are_normalized():
    loaded = ContextAssembler(make_store()).load_context(["#a", "<b>", "c.md"])
    assert loaded.identifiers == ["a", "b", "c"]


def test_unreadable_source_is_skipped_and_recorded(caplog):
    assembler = ContextAssembler(make_store(broken={"b"}))
    with caplog.at_level("WARNING"):
        loaded = assembler.load_context()

    assert loaded.identifiers == ["a", "c"]
    assert len(loaded.errors) == 1
    assert isinstance(loaded.errors[0], PartialContextError)
    assert loaded.errors[0].identifier == "b"
    assert "b could not be read" in caplog.text


def test_render_prefixes_each_source_with_identifier():
    loaded = ContextAssembler(make_store()).load_context(["a", "c"])
    assert loaded.render() == "Source: a\nalpha text\n\n---\n\nSource: c\ngamma text"


def test_empty_sources_are_not_included():
    store = FakeSourceStore({"a": "alpha", "blank": ""})
    loaded = ContextAssembler(store).load_context()
    assert loaded.identifiers == ["a"]


def test_budget_truncates_and_drops_later_sources():
    store = FakeSourceStore({"a": "x" * 40, "b": "y" * 200, "c": "z" * 10})
    assembler = ContextAssembler(store, max_context_chars=100)

    loaded = assembler.load_context()

    assert loaded.truncated
    assert loaded.identifiers == ["a", "b"]
    assert len(loaded.render()) <= 100
    assert loaded.sources[1].content.endswith("[...]")


def test_budget_too_small_for_any_source_yields_empty_context():
    store = FakeSourceStore({"a": "x" * 40})
    loaded = ContextAssembler(store, max_context_chars=5).load_context()
    assert loaded.is_empty
    assert loaded.truncated


def test_invalid_budget_rejected():
    with pytest.raises(ValueError):
        ContextAssembler(make_store(), max_context_chars=0)


def test_list_sources_deduplicates():
    store = FakeSourceStore({"a": "1", "b": "2"})
    store.list_identifiers = lambda: ["a", "b", "a"]
    assert ContextAssembler(store).list_sources() == ["a", "b"]
