"""Tests for services/lib/session_store.py — atomic persisted session."""

import json

import pytest

from lib.session_store import (
    KEY_ACCESS_TOKEN,
    KEY_CONNECTED,
    KEY_USER,
    KEY_USER_ID,
    CorruptedSessionError,
    SessionStore,
)

PROFILE = {"id": "u1", "display_name": "Test User", "product": "premium",
           "images": [{"url": "https://i.example/a.jpg"}]}


class TestSaveLoad:
    def test_round_trip(self, store):
        store.save("tok", PROFILE, "u1")
        loaded = store.load()

        assert loaded.access_token == "tok"
        assert loaded.user() == PROFILE
        assert loaded.spotify_user_id == "u1"
        assert loaded.connected is True

    def test_writes_all_keys_in_one_document(self, store):
        store.save("tok", PROFILE, "u1")
        with open(store.path) as f:
            data = json.load(f)

        assert data[KEY_ACCESS_TOKEN] == "tok"
        assert json.loads(data[KEY_USER]) == PROFILE
        assert data[KEY_CONNECTED] == "true"
        assert data[KEY_USER_ID] == "u1"

    def test_overwrite_replaces_whole_tuple(self, store):
        store.save("tok1", {"id": "a"}, "a")
        store.save("tok2", {"id": "b"}, "b")
        loaded = store.load()

        assert (loaded.access_token, loaded.user()["id"], loaded.spotify_user_id) == \
            ("tok2", "b", "b")

    def test_no_temp_files_left_behind(self, store, tmp_path):
        store.save("tok", PROFILE, "u1")
        assert [p.name for p in tmp_path.iterdir()] == ["spotify_session.json"]

    def test_missing_file_loads_none(self, store):
        assert store.load() is None

    def test_token_without_profile_loads_none(self, store):
        with open(store.path, "w") as f:
            json.dump({KEY_ACCESS_TOKEN: "tok"}, f)
        assert store.load() is None


class TestCorruption:
    def test_invalid_file_raises(self, store):
        with open(store.path, "w") as f:
            f.write("{not json")
        with pytest.raises(CorruptedSessionError):
            store.load()

    def test_invalid_profile_raises(self, store):
        with open(store.path, "w") as f:
            json.dump({KEY_ACCESS_TOKEN: "tok", KEY_USER: "{broken"}, f)
        with pytest.raises(CorruptedSessionError):
            store.load()

    def test_profile_must_be_object(self, store):
        with open(store.path, "w") as f:
            json.dump({KEY_ACCESS_TOKEN: "tok", KEY_USER: "[1, 2]"}, f)
        with pytest.raises(CorruptedSessionError):
            store.load()

    def test_is_connected_false_when_corrupted(self, store):
        with open(store.path, "w") as f:
            f.write("garbage")
        assert store.is_connected() is False


class TestClear:
    def test_clear_removes_file(self, store):
        store.save("tok", PROFILE, "u1")
        assert store.clear() == store.path
        assert store.load() is None
        assert store.is_connected() is False

    def test_clear_when_empty(self, store):
        assert store.clear() is None
