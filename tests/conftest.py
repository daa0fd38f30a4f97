"""Shared pytest fixtures for chat-sync tests."""

import pytest

from chat_sync.backend.memory import InMemoryBackend
from chat_sync.config import Config
from chat_sync.sync.session import SyncSession


class RecordingBackend(InMemoryBackend):
    """In-memory backend that records subscription calls in order."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls: list[tuple[str, str]] = []

    def subscribe_child_added(self, path, callback):
        self.calls.append(("subscribe", path))
        return super().subscribe_child_added(path, callback)

    def unsubscribe_child_added(self, path, handle=None):
        self.calls.append(("unsubscribe", path))
        super().unsubscribe_child_added(path, handle)


@pytest.fixture
def backend():
    """Empty in-memory backend with two accounts."""
    return InMemoryBackend(
        accounts={"alice@example.com": "alice-pw", "bob@example.com": "bob-pw"}
    )


@pytest.fixture
def recording_backend():
    return RecordingBackend()


@pytest.fixture
def session(backend):
    """SyncSession over the in-memory backend, closed after the test."""
    s = SyncSession(backend)
    yield s
    s.close()


@pytest.fixture
def received():
    """Collects (sender, text, is_echo) tuples from on_message."""
    events: list[tuple[str, str, bool]] = []

    def _callback(sender, text, is_echo):
        events.append((sender, text, is_echo))

    _callback.events = events
    return _callback


@pytest.fixture
def mock_config(tmp_path):
    """A Config pointing at a fake database."""
    return Config(
        backend_url="https://chat.example.com",
        api_key="test-key",
        email="alice@example.com",
        password="alice-pw",
        state_dir=str(tmp_path / ".chat_sync"),
        timeout=5.0,
    )
