"""Tests for the users-list stream and user registration."""

import pytest

from chat_sync.sync.directory import USERS_SLOT


class TestUsersStream:
    def test_existing_users_in_order(self, backend, session):
        backend.set("users/carol", {"identifier": "carol"})
        backend.set("users/dave", {"identifier": "dave"})
        seen = []

        session.on_user_added(seen.append)

        assert seen == ["carol", "dave"]
        assert session.users == ["carol", "dave"]

    def test_live_additions(self, backend, session):
        seen = []
        session.on_user_added(seen.append)
        session.directory.add_user("erin")
        assert seen == ["erin"]

    def test_upsert_does_not_duplicate(self, backend, session):
        seen = []
        session.on_user_added(seen.append)
        session.directory.add_user("erin")
        session.directory.add_user("erin")
        assert seen == ["erin"]

    def test_late_callback_gets_replay(self, backend, session):
        backend.set("users/carol", {"identifier": "carol"})
        first, second = [], []
        session.on_user_added(first.append)
        session.on_user_added(second.append)

        assert second == ["carol"]
        assert backend.listener_count("users") == 1

    def test_malformed_user_skipped(self, backend, session):
        backend.set("users/x", {"name": "no identifier"})
        backend.set("users/carol", {"identifier": "carol"})
        seen = []
        session.on_user_added(seen.append)
        assert seen == ["carol"]

    def test_independent_of_conversation(self, backend, session):
        session.watch_users()
        session.set_current_user("alice")
        session.set_current_peer("bob")
        session.set_current_peer(None)

        assert session.directory.watching
        assert backend.listener_count("users") == 1

    def test_unwatch(self, backend, session):
        session.watch_users()
        session.unwatch_users()
        assert session.registry.active(USERS_SLOT) is None
        assert backend.listener_count("users") == 0

    def test_rewatch_resets_list(self, backend, session):
        backend.set("users/carol", {"identifier": "carol"})
        session.watch_users()
        session.unwatch_users()
        session.watch_users()
        assert session.users == ["carol"]


class TestAddUser:
    def test_writes_record(self, backend, session):
        session.directory.add_user("bob@example.com")
        assert backend.get("users/bob%40example%2Ecom") == {
            "identifier": "bob@example.com"
        }

    def test_empty_identifier_rejected(self, session):
        with pytest.raises(ValueError):
            session.directory.add_user("")
