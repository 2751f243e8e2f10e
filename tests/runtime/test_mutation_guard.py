import pytest

from aham.runtime.entry_store import JsonEntryStore
from aham.runtime.models import Entry
from aham.runtime.mutation_guard import MutationGuard, MutationInProgressError, MutationRollbackError


class Boom(RuntimeError):
    pass


@pytest.fixture
def store(tmp_path):
    store = JsonEntryStore(tmp_path / "entries.json")
    for index in range(5):
        store.add(f"entry {index}", ["work" if index % 2 else "home"])
    return store


def snapshot_view(entries):
    return [e.to_record() for e in entries]


def test_failed_mutation_restores_exact_working_set(store, tmp_path):
    guard = MutationGuard(store, tmp_path / "entries.snapshot.json")
    before = snapshot_view(store.list())

    with pytest.raises(Boom):
        with guard.transaction():
            store.replace_all([Entry(text="partial 1"), Entry(text="partial 2")])
            raise Boom("clustering crashed")

    assert len(store) == 5
    assert snapshot_view(store.list()) == before
    reloaded = JsonEntryStore(store.path)
    reloaded.load()
    assert snapshot_view(reloaded.list()) == before
    assert guard.pending is None


def test_commit_keeps_last_known_good(store, tmp_path):
    guard = MutationGuard(store, tmp_path / "entries.snapshot.json")
    before = snapshot_view(store.list())

    with guard.transaction() as snapshot:
        assert len(snapshot) == 5
        store.replace_all([Entry(text="grouped")])

    assert len(store) == 1
    assert guard.snapshot_path.exists()
    assert snapshot_view(guard.last_known_good()) == before


def test_rollback_failure_raises_with_original_error(store, tmp_path):
    snapshot_path = tmp_path / "entries.snapshot.json"
    guard = MutationGuard(store, snapshot_path)
    original = Boom("mutation failed")

    guard.before_mutation()
    snapshot_path.write_text("{corrupted", encoding="utf-8")

    with pytest.raises(MutationRollbackError) as info:
        guard.rollback(original_error=original)
    assert info.value.original_error is original
    assert info.value.__cause__ is not None


def test_transaction_surfaces_rollback_failure(store, tmp_path):
    snapshot_path = tmp_path / "entries.snapshot.json"
    guard = MutationGuard(store, snapshot_path)

    with pytest.raises(MutationRollbackError) as info:
        with guard.transaction():
            snapshot_path.unlink()
            raise Boom("mutation failed")
    assert isinstance(info.value.original_error, Boom)


def test_second_snapshot_while_pending_is_rejected(store, tmp_path):
    guard = MutationGuard(store, tmp_path / "entries.snapshot.json")
    guard.before_mutation()
    with pytest.raises(MutationInProgressError):
        guard.before_mutation()
    guard.commit()
    guard.before_mutation()


def test_rollback_without_snapshot_is_an_error(store, tmp_path):
    guard = MutationGuard(store, tmp_path / "entries.snapshot.json")
    with pytest.raises(MutationRollbackError):
        guard.rollback()


def test_snapshot_path_must_differ_from_store(store):
    with pytest.raises(ValueError):
        MutationGuard(store, store.path)


def test_last_known_good_empty_without_snapshot(store, tmp_path):
    guard = MutationGuard(store, tmp_path / "never.json")
    assert guard.last_known_good() == []
