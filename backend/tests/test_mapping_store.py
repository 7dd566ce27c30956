from __future__ import annotations

import json
import logging
from pathlib import Path

from kb_sync.mapping_store import DEFAULT_KB_KEY, DEFAULT_SLUG_KEY, MappingStore


def test_missing_file_loads_empty(tmp_path: Path) -> None:
    store = MappingStore(tmp_path / "absent.json")
    assert store.load() == {}
    assert store.get(DEFAULT_KB_KEY) is None


def test_invalid_json_loads_empty(tmp_path: Path, caplog) -> None:
    path = tmp_path / "kb-mapping.json"
    path.write_text("{not json", encoding="utf-8")
    with caplog.at_level(logging.WARNING, logger="kb_sync.mapping_store"):
        assert MappingStore(path).load() == {}
    assert "unreadable" in caplog.text


def test_non_object_document_loads_empty(tmp_path: Path) -> None:
    path = tmp_path / "kb-mapping.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")
    assert MappingStore(path).load() == {}


def test_set_many_and_delete_rewrite_whole_file(mapping_store: MappingStore) -> None:
    mapping_store.set_many({DEFAULT_KB_KEY: "kb-1", DEFAULT_SLUG_KEY: "edubox-default"})
    mapping_store.set_many({"edubox-user-u1": "kb-1"})

    on_disk = json.loads(mapping_store.path.read_text(encoding="utf-8"))
    assert on_disk == {
        DEFAULT_KB_KEY: "kb-1",
        DEFAULT_SLUG_KEY: "edubox-default",
        "edubox-user-u1": "kb-1",
    }

    remaining = mapping_store.delete(DEFAULT_KB_KEY, "not-there")
    assert DEFAULT_KB_KEY not in remaining
    assert mapping_store.load() == {DEFAULT_SLUG_KEY: "edubox-default", "edubox-user-u1": "kb-1"}


def test_save_creates_parent_directories(tmp_path: Path) -> None:
    store = MappingStore(tmp_path / "nested" / "dir" / "map.json")
    store.save({"k": "v"})
    assert store.load() == {"k": "v"}


def test_save_failure_is_logged_not_raised(tmp_path: Path, caplog) -> None:
    store = MappingStore(tmp_path)
    with caplog.at_level(logging.WARNING, logger="kb_sync.mapping_store"):
        store.save({"k": "v"})
    assert "Failed to save" in caplog.text


def test_unserializable_value_is_logged_not_raised(mapping_store: MappingStore, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="kb_sync.mapping_store"):
        mapping_store.save({"k": object()})
    assert "Failed to save" in caplog.text
