"""Tests for the key-value stores and their quiet wrappers."""

import pytest

from sceneflow.config import Settings
from sceneflow.errors import PersistenceError
from sceneflow.store import (
    FileKeyValueStore,
    MemoryKeyValueStore,
    get_store,
    load_or_default,
    save_quietly,
)


class BrokenStore:
    def get(self, key, default=None):
        raise PersistenceError("disk gone")

    def set(self, key, value):
        raise PersistenceError("disk gone")

    def delete(self, key):
        raise PersistenceError("disk gone")


def test_file_store_persists_between_instances(tmp_path):
    FileKeyValueStore(tmp_path).set("queue_snapshot", {"tasks": [1, 2]})
    assert FileKeyValueStore(tmp_path).get("queue_snapshot") == {"tasks": [1, 2]}
    assert not list(tmp_path.glob("*.tmp"))


def test_file_store_delete_and_default(tmp_path):
    store = FileKeyValueStore(tmp_path)
    store.set("settings", {"a": 1})
    store.delete("settings")
    assert store.get("settings", "missing") == "missing"


def test_file_store_corrupt_document_raises(tmp_path):
    (tmp_path / "settings.json").write_text("{oops", encoding="utf-8")
    with pytest.raises(PersistenceError):
        FileKeyValueStore(tmp_path).get("settings")


def test_invalid_key_rejected(tmp_path):
    with pytest.raises(ValueError):
        FileKeyValueStore(tmp_path).set("../escape", 1)


def test_memory_store_copies_values():
    store = MemoryKeyValueStore()
    value = {"items": [1]}
    store.set("k", value)
    value["items"].append(2)
    assert store.get("k") == {"items": [1]}


def test_quiet_wrappers_swallow_persistence_errors():
    assert load_or_default(BrokenStore(), "settings", {"fallback": True}) == {"fallback": True}
    assert save_quietly(BrokenStore(), "settings", {}) is False
    assert save_quietly(MemoryKeyValueStore(), "settings", {}) is True


def test_get_store_defaults_to_files(tmp_path):
    settings = Settings(sceneflow_data_dir=str(tmp_path), sceneflow_store_backend="file")
    assert isinstance(get_store(settings), FileKeyValueStore)


def test_get_store_falls_back_when_postgres_unreachable(tmp_path):
    settings = Settings(
        sceneflow_data_dir=str(tmp_path),
        sceneflow_store_backend="postgres",
        sceneflow_database_url="postgresql://nobody@127.0.0.1:1/none",
    )
    assert isinstance(get_store(settings), FileKeyValueStore)
