import json

import pytest

from aham.runtime.entry_store import JsonEntryStore
from aham.runtime.models import UNCATEGORIZED_TAG, Entry


def test_add_persists_and_reloads(tmp_path):
    path = tmp_path / "entries.json"
    store = JsonEntryStore(path)
    store.load()

    first = store.add("buy milk", ["errands"])
    store.add("random thought")

    reloaded = JsonEntryStore(path)
    assert reloaded.load() == 2
    items = reloaded.list()
    assert items[0].id == first.id
    assert items[0].tags == ["errands"]
    assert items[1].tags == [UNCATEGORIZED_TAG]
    assert items[0].timestamp == first.timestamp


def test_missing_file_starts_empty(tmp_path):
    store = JsonEntryStore(tmp_path / "absent.json")
    assert store.load() == 0
    assert store.list() == []


def test_corrupt_file_starts_empty(tmp_path, caplog):
    path = tmp_path / "entries.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonEntryStore(path)
    with caplog.at_level("ERROR"):
        assert store.load() == 0
    assert "Error loading entries" in caplog.text


def test_list_returns_copies(tmp_path):
    store = JsonEntryStore(tmp_path / "entries.json")
    store.add("original")
    copy = store.list()[0]
    copy.text = "mutated"
    assert store.list()[0].text == "original"


def test_update_and_delete(tmp_path):
    store = JsonEntryStore(tmp_path / "entries.json")
    item = store.add("draft")

    updated = store.update(item.id, "final", ["work"])
    assert updated.text == "final"
    assert store.get(item.id).tags == ["work"]

    store.delete(item.id)
    assert len(store) == 0
    with pytest.raises(KeyError):
        store.update(item.id, "gone")


def test_append_batch_puts_category_first(tmp_path):
    store = JsonEntryStore(tmp_path / "entries.json")
    stored = store.append_batch("errands", [Entry(text="a", tags=["home", "errands"]), Entry(text="b")])
    assert [e.tags for e in stored] == [["errands", "home"], ["errands"]]
    assert len(store) == 2


def test_replace_all_writes_whole_set(tmp_path):
    path = tmp_path / "entries.json"
    store = JsonEntryStore(path)
    store.add("old")
    store.replace_all([Entry(text="new one"), Entry(text="new two")])

    records = json.loads(path.read_text(encoding="utf-8"))
    assert [r["text"] for r in records] == ["new one", "new two"]
    assert not (tmp_path / "entries.json.tmp").exists()


def test_export_text_backup(tmp_path):
    store = JsonEntryStore(tmp_path / "entries.json")
    store.add("first")
    store.add("second")

    target = store.export_text_backup(tmp_path / "backup.txt")

    body = target.read_text(encoding="utf-8")
    blocks = body.split("\n\n---\n\n")
    assert len(blocks) == 2
    assert blocks[0].startswith("[1] ") and blocks[0].endswith("\nfirst")
    assert blocks[1].endswith("\nsecond")
