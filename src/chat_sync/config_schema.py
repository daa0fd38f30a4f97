"""Unified configuration schema for chat_sync.

Defines Pydantic models for the YAML config file with dedicated sections
for the backend connection, chat path layout, and logging. The backend
section feeds ``load_config`` as YAML fallbacks.

Usage:
    from chat_sync.config_schema import build_config

    unified = build_config(load_hierarchical_config())
    roots = unified.chat
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class BackendConfig(BaseModel):
    """Realtime backend connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(
        default=None, description="Realtime database base URL"
    )
    api_key: str | None = Field(
        default=None, description="API key for the password auth endpoint"
    )
    email: str | None = Field(default=None, description="Account email")
    password: str | None = Field(default=None, description="Account password")
    state_dir: str = Field(
        default=".chat_sync",
        description="Directory holding the persisted login session",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="HTTP timeout in seconds",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class ChatConfig(BaseModel):
    """Layout of chat data in the remote tree.

    Attributes:
        chats_root: Collection holding every conversation.
        general_room: Key of the public room under ``chats_root``.
        users_root: Collection holding one record per known user.
        separator: Joins the two ordered identifiers of a private room.
    """

    chats_root: str = Field(default="chats", min_length=1)
    general_room: str = Field(default="general", min_length=1)
    users_root: str = Field(default="users", min_length=1)
    separator: str = Field(default="AND", min_length=1)

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()`` is valid.
    """

    backend: BackendConfig = Field(default_factory=BackendConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the merged YAML dict.

    Missing sections get defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
