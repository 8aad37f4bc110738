"""Tests for key-value stores, the session record and credentials."""

import json
from unittest.mock import patch

import pytest

from bulkmark.exceptions import ConfigError, StorageError
from bulkmark.models import (
    REVIEWING_PLAN,
    BookmarkAssignment,
    CompactBookmark,
    FolderPlan,
    OrganizeSession,
    ProposedFolder,
)
from bulkmark.storage import (
    ORGANIZE_SESSION_STORAGE_KEY,
    CredentialStore,
    JsonFileStore,
    MemoryStore,
    SessionStore,
)


class TestMemoryStore:
    def test_values_are_copied(self):
        store = MemoryStore()
        value = {"ids": ["1"]}
        store.set("k", value)
        value["ids"].append("2")

        loaded = store.get("k")
        assert loaded == {"ids": ["1"]}
        loaded["ids"].append("3")
        assert store.get("k") == {"ids": ["1"]}

    def test_remove_missing_key(self):
        store = MemoryStore()
        store.remove("nothing")
        assert store.get("nothing") is None


class TestJsonFileStore:
    def test_set_get_remove(self, tmp_path):
        store = JsonFileStore(tmp_path / "data")
        store.set("selectedService", "openai")

        assert (tmp_path / "data" / "selectedService.json").exists()
        assert store.get("selectedService") == "openai"
        store.remove("selectedService")
        assert store.get("selectedService") is None

    def test_missing_key(self, tmp_path):
        assert JsonFileStore(tmp_path).get("nope") is None

    def test_corrupt_file(self, tmp_path):
        (tmp_path / "organizeSession.json").write_text("{broken", encoding="utf-8")
        with pytest.raises(StorageError):
            JsonFileStore(tmp_path).get("organizeSession")

    def test_no_temp_files_left(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.set("a", {"x": 1})
        store.set("a", {"x": 2})
        assert [p.name for p in tmp_path.iterdir()] == ["a.json"]

    def test_unserializable_value(self, tmp_path):
        with pytest.raises(StorageError):
            JsonFileStore(tmp_path).set("a", object())

    def test_failed_replace_removes_temp_file(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.set("a", {"x": 1})

        with patch("bulkmark.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError, match="disk full"):
                store.set("a", {"x": 2})

        assert [p.name for p in tmp_path.iterdir()] == ["a.json"]
        assert store.get("a") == {"x": 1}


class TestSessionStore:
    def _session(self):
        bookmark = CompactBookmark("6", "Python docs", "https://docs.python.org/", "Bookmarks bar/A", "4")
        return OrganizeSession(
            status=REVIEWING_PLAN,
            all_bookmarks=[bookmark],
            selected_folder_ids=["4"],
            bookmarks_to_organize=[bookmark],
            folder_plan=FolderPlan(
                folders=[ProposedFolder("C", "New", is_new=True, is_excluded=True)],
                summary="s",
            ),
            assignments=[BookmarkAssignment("6", "Python docs", "https://docs.python.org/",
                                            "Bookmarks bar/A", "C", None, True, False)],
            service_id="google",
            path_to_id_map={"Bookmarks bar": "1"},
            default_parent_id="1",
        )

    def test_save_and_load(self, tmp_path):
        sessions = SessionStore(JsonFileStore(tmp_path))
        sessions.save(self._session())

        loaded = sessions.load()
        assert loaded == self._session()
        raw = json.loads((tmp_path / f"{ORGANIZE_SESSION_STORAGE_KEY}.json").read_text())
        assert raw["status"] == "reviewing_plan"
        assert raw["folderPlan"]["folders"][0]["isExcluded"] is True
        assert raw["assignments"][0]["isNewFolder"] is True

    def test_missing_fields_filled_with_defaults(self, kv):
        kv.set(ORGANIZE_SESSION_STORAGE_KEY, {"status": "selecting", "someFutureField": 1})

        loaded = SessionStore(kv).load()
        assert loaded.status == "selecting"
        assert loaded.all_bookmarks == []
        assert loaded.selected_folder_ids is None
        assert loaded.applied_count == 0

    def test_clear(self, sessions):
        sessions.save(OrganizeSession.initial())
        sessions.clear()
        assert sessions.load() is None

    def test_non_object_record(self, kv):
        kv.set(ORGANIZE_SESSION_STORAGE_KEY, ["not", "a", "session"])
        with pytest.raises(StorageError):
            SessionStore(kv).load()


class TestCredentialStore:
    def test_stored_key_wins_over_environment(self, kv):
        credentials = CredentialStore(kv, {"openaiApiKey": "sk-env"})
        assert credentials.get_api_key("openai") == "sk-env"

        credentials.set_api_key("openai", "sk-stored")
        assert credentials.get_api_key("openai") == "sk-stored"

    def test_missing_key(self, kv):
        with pytest.raises(ConfigError, match="No API key found for Anthropic"):
            CredentialStore(kv).get_api_key("anthropic")

    def test_unknown_service(self, kv):
        with pytest.raises(ConfigError, match="Unknown service"):
            CredentialStore(kv).get_api_key("cohere")

    def test_selected_service(self, kv):
        credentials = CredentialStore(kv)
        assert credentials.selected_service() == ""

        credentials.select_service("openrouter")
        assert credentials.selected_service() == "openrouter"
        with pytest.raises(ConfigError):
            credentials.select_service("nope")
