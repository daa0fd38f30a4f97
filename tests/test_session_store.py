"""Tests for chat_sync.session_store -- persisted login session."""

import json
import os
from unittest.mock import patch

import pytest

from chat_sync.session_store import SessionStore
from chat_sync.sync.models import AuthInfo


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "state")


@pytest.fixture
def auth():
    return AuthInfo(
        uid="u1",
        email="alice@example.com",
        id_token="short-lived",
        refresh_token="r1",
        expires_in=3600,
    )


class TestLoad:
    def test_missing_file(self, store):
        assert store.load() is None

    def test_corrupt_file(self, store, caplog):
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{not json", encoding="utf-8")
        assert store.load() is None
        assert "unreadable" in caplog.text

    def test_missing_refresh_token(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text(json.dumps({"email": "a@x.com"}), encoding="utf-8")
        assert store.load() is None


class TestSave:
    def test_round_trip_fields(self, store, auth):
        store.save(auth)
        data = store.load()
        assert data["version"] == 1
        assert data["uid"] == "u1"
        assert data["email"] == "alice@example.com"
        assert data["refresh_token"] == "r1"
        assert "saved_at" in data

    def test_id_token_not_written(self, store, auth):
        store.save(auth)
        assert "short-lived" not in store.path.read_text(encoding="utf-8")

    def test_creates_state_dir(self, store, auth):
        assert not store.path.parent.exists()
        store.save(auth)
        assert store.path.exists()

    def test_without_refresh_token_is_noop(self, store):
        store.save(AuthInfo(uid="u1", email="a@x.com"))
        assert not store.path.exists()

    def test_no_temp_files_left(self, store, auth):
        store.save(auth)
        store.save(auth)
        assert [p.name for p in store.path.parent.iterdir()] == ["session.json"]

    def test_failed_write_keeps_previous(self, store, auth):
        store.save(auth)
        newer = auth.model_copy(update={"refresh_token": "r2"})
        with patch("chat_sync.session_store.os.replace", side_effect=OSError("disk")):
            with pytest.raises(OSError):
                store.save(newer)
        assert store.load()["refresh_token"] == "r1"
        assert len(os.listdir(store.path.parent)) == 1


class TestClear:
    def test_clear(self, store, auth):
        store.save(auth)
        store.clear()
        assert store.load() is None

    def test_clear_missing_is_noop(self, store):
        store.clear()
