"""Unit tests for key/value storage, the preference store and hashing."""

import json
from pathlib import Path

import pytest


class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_basic_operations(self):
        from horizen.storage.kv import MemoryStore

        store = MemoryStore({"a": "1"})
        store.set("b", "2")
        store.delete("a")
        store.delete("missing")

        assert store.get("a") is None
        assert store.get("b") == "2"
        assert "b" in store
        assert store.keys() == ["b"]


class TestJsonFileStore:
    """Tests for JsonFileStore."""

    def test_persists_across_instances(self, tmp_path: Path):
        from horizen.storage.kv import JsonFileStore

        path = tmp_path / "nested" / "storage.json"
        JsonFileStore(path).set("key", "value")

        assert JsonFileStore(path).get("key") == "value"
        assert json.loads(path.read_text()) == {"key": "value"}

    def test_missing_file_is_empty(self, tmp_path: Path):
        from horizen.storage.kv import JsonFileStore

        store = JsonFileStore(tmp_path / "none.json")

        assert store.keys() == []
        assert store.get("key") is None

    def test_no_temp_files_left(self, tmp_path: Path):
        from horizen.storage.kv import JsonFileStore

        store = JsonFileStore(tmp_path / "storage.json")
        store.set("a", "1")
        store.set("b", "2")
        store.delete("a")

        assert [p.name for p in tmp_path.iterdir()] == ["storage.json"]

    def test_apply_batch(self, tmp_path: Path):
        from horizen.storage.kv import JsonFileStore

        store = JsonFileStore(tmp_path / "storage.json")
        store.set("old", "x")

        store.apply({"a": "1", "b": "2", "old": None})

        assert json.loads((tmp_path / "storage.json").read_text()) == {"a": "1", "b": "2"}
        assert [p.name for p in tmp_path.iterdir()] == ["storage.json"]

    def test_invalid_file(self, tmp_path: Path):
        from horizen.storage.kv import JsonFileStore

        path = tmp_path / "storage.json"
        path.write_text("[1, 2]")

        with pytest.raises(ValueError):
            JsonFileStore(path).get("key")


class TestStagedStore:
    """Tests for buffered writes."""

    def test_reads_see_pending_writes(self):
        from horizen.storage.kv import MemoryStore, StagedStore

        base = MemoryStore({"a": "1", "b": "2"})
        staged = StagedStore(base)

        staged.set("c", "3")
        staged.delete("a")

        assert staged.get("c") == "3"
        assert staged.get("a") is None
        assert sorted(staged.keys()) == ["b", "c"]
        assert base.get("a") == "1"
        assert "c" not in base

    def test_commit(self):
        from horizen.storage.kv import MemoryStore, StagedStore

        base = MemoryStore({"a": "1"})
        staged = StagedStore(base)
        staged.set("b", "2")
        staged.delete("a")

        staged.commit()

        assert base.keys() == ["b"]
        staged.commit()
        assert base.keys() == ["b"]


class TestPreferencesStore:
    """Tests for the YAML-backed preference store."""

    def test_defaults_when_missing(self, tmp_path: Path):
        from horizen.storage.prefs_store import PreferencesStore

        prefs = PreferencesStore(tmp_path / "prefs.yaml").prefs

        assert prefs.search_engine_id == "duckduckgo"
        assert len(prefs.shortcuts) == 5
        assert prefs.conversations == []

    def test_round_trip(self, tmp_path: Path, sample_prefs):
        from horizen.storage.prefs_store import PreferencesStore

        path = tmp_path / "prefs.yaml"
        PreferencesStore(path, initial=sample_prefs).save()

        assert PreferencesStore(path).prefs == sample_prefs

    def test_set_prefs(self, tmp_path: Path):
        from horizen.storage.prefs_store import PreferencesStore

        path = tmp_path / "prefs.yaml"
        store = PreferencesStore(path)

        updated = store.set_prefs(lambda p: p.copy(show_chat=False))

        assert updated.show_chat is False
        assert PreferencesStore(path).prefs.show_chat is False

    def test_memory_only(self, sample_prefs):
        from horizen.storage.prefs_store import PreferencesStore

        store = PreferencesStore(initial=sample_prefs)
        store.set_prefs(lambda p: p.copy(links=[]))

        assert store.prefs.links == []


class TestPrefsModel:
    """Tests for Prefs serialization."""

    def test_from_empty_dict(self):
        from horizen.models.prefs import Prefs

        prefs = Prefs.from_dict({})

        assert prefs.show_chat is True
        assert prefs.chat_model.provider == "openai"
        assert prefs.weather_location is None

    def test_explicit_empty_shortcuts_kept(self):
        from horizen.models.prefs import Prefs

        assert Prefs.from_dict({"shortcuts": []}).shortcuts == []

    def test_conversation_camel_case(self, sample_prefs):
        data = sample_prefs.conversations[1].to_dict()

        assert data["isGhostMode"] is True
        assert "createdAt" in data

    def test_find_widget(self, sample_prefs):
        assert sample_prefs.find_widget("ticker-1").type == "ticker"
        assert sample_prefs.find_widget("missing") is None


class TestHash:
    """Tests for canonical document hashing."""

    def test_key_order_irrelevant(self):
        from horizen.utils.hash import hash_document

        assert hash_document({"a": 1, "b": [1, 2]}) == hash_document({"b": [1, 2], "a": 1})

    def test_prefix(self):
        from horizen.utils.hash import hash_document

        digest = hash_document({})

        assert digest.startswith("sha256:")
        assert len(digest) == len("sha256:") + 64

    def test_verify(self):
        from horizen.utils.hash import hash_document, verify_document_hash

        digest = hash_document({"x": "y"})

        assert verify_document_hash({"x": "y"}, digest)
        assert verify_document_hash({"x": "y"}, digest.upper())
        assert not verify_document_hash({"x": "z"}, digest)
        assert not verify_document_hash({"x": "y"}, None)

    def test_hash_string(self):
        from horizen.utils.hash import hash_string

        assert hash_string("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
