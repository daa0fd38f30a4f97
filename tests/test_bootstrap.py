"""Tests for chat_sync.bootstrap -- config resolution and client wiring."""

import textwrap
from unittest.mock import patch

import pytest

from chat_sync.backend.rest import RestBackend
from chat_sync.bootstrap import open_client, resolve_config


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    for name in (
        "CHAT_SYNC_URL",
        "CHAT_SYNC_API_KEY",
        "CHAT_SYNC_EMAIL",
        "CHAT_SYNC_PASSWORD",
        "CHAT_SYNC_STATE_DIR",
        "CHAT_SYNC_TIMEOUT",
        "CHAT_SYNC_DEBUG",
        "CHAT_SYNC_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    with patch("chat_sync.bootstrap.load_dotenv"):
        yield tmp_path


def _write_project_config(root, text):
    path = root / ".chat_sync" / "config.yml"
    path.parent.mkdir(parents=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")


def test_resolve_config_from_overrides():
    config, settings = resolve_config({"url": "https://chat.example.com"})
    assert config.backend_url == "https://chat.example.com"
    assert settings.chat.separator == "AND"


def test_resolve_config_yaml_fallback(isolated):
    _write_project_config(
        isolated,
        """\
        backend:
          url: https://yaml.example.com
          timeout: 7
        """,
    )
    config, _ = resolve_config()
    assert config.backend_url == "https://yaml.example.com"
    assert config.timeout == 7.0


def test_resolve_config_missing_url():
    with pytest.raises(RuntimeError, match="CHAT_SYNC_URL"):
        resolve_config()


def test_resolve_config_invalid_yaml_section(isolated):
    _write_project_config(isolated, "backend:\n  timeout: 0\n")
    with pytest.raises(RuntimeError, match="Configuration error"):
        resolve_config({"url": "https://chat.example.com"})


def test_open_client_wires_components(isolated):
    with open_client({"url": "https://chat.example.com"}) as client:
        assert isinstance(client.backend, RestBackend)
        assert client.session.resolver.general_path == "chats/general"
        assert client.config.state_dir == ".chat_sync"
    assert client.session._closed


def test_open_client_uses_chat_layout(isolated):
    _write_project_config(
        isolated,
        """\
        chat:
          chats_root: rooms
          separator: WITH
        """,
    )
    with open_client({"url": "https://chat.example.com"}) as client:
        assert client.session.resolver.resolve("b", "a") == "rooms/aWITHb"


def test_open_client_closes_backend_on_error():
    with patch.object(RestBackend, "close") as close:
        with pytest.raises(KeyError):
            with open_client({"url": "https://chat.example.com"}):
                raise KeyError("boom")
    close.assert_called_once()


def test_resolve_config_broken_yaml(isolated):
    _write_project_config(isolated, "backend: [unclosed\n")
    with pytest.raises(RuntimeError, match="Configuration error"):
        resolve_config({"url": "https://chat.example.com"})
