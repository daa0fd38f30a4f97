"""Build a ready-to-use client from configuration."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import yaml
from dotenv import load_dotenv

from .auth import AuthFlow
from .backend.rest import RestBackend
from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config
from .sync.paths import PathResolver
from .sync.session import SyncSession

logger = logging.getLogger(__name__)


@dataclass
class ChatClient:
    """Everything a front end needs, wired together."""

    config: Config
    settings: UnifiedConfig
    backend: RestBackend
    session: SyncSession
    auth: AuthFlow


def resolve_config(
    config_overrides: dict[str, Any] | None = None,
) -> tuple[Config, UnifiedConfig]:
    """Merge CLI overrides, env vars (.env loaded first), and YAML files.

    Raises:
        RuntimeError: If the configuration is incomplete or invalid.
    """
    load_dotenv()

    try:
        settings = build_config(load_hierarchical_config())
        yaml_fallbacks = {
            k: v
            for k, v in settings.backend.model_dump().items()
            if v is not None
        }
        overrides = config_overrides or {}
        config = load_config(
            url=overrides.get("url"),
            api_key=overrides.get("api_key"),
            email=overrides.get("email"),
            password=overrides.get("password"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )
    except (ValueError, yaml.YAMLError) as e:
        logger.error("Configuration error: %s", e)
        raise RuntimeError(
            f"Configuration error: {e}. Ensure CHAT_SYNC_URL is set."
        ) from e

    config_files = discover_config_files()
    if config_files:
        logger.info("Configuration file: %s", config_files[0])
    logger.info("Backend URL: %s", config.backend_url)
    return config, settings


@contextmanager
def open_client(
    config_overrides: dict[str, Any] | None = None,
    dispatcher: Any = None,
) -> Iterator[ChatClient]:
    """Yield a ``ChatClient`` and close its streams on exit.

    Args:
        config_overrides: Values from the CLI (url, api_key, email,
            password, debug).
        dispatcher: Passed to ``SyncSession``.
    """
    config, settings = resolve_config(config_overrides)
    backend = RestBackend.from_config(config)
    session = SyncSession(
        backend,
        resolver=PathResolver.from_config(settings.chat),
        dispatcher=dispatcher,
    )
    client = ChatClient(
        config=config,
        settings=settings,
        backend=backend,
        session=session,
        auth=AuthFlow(backend, session),
    )
    try:
        yield client
    finally:
        session.close()
        backend.close()
        logger.debug("Client closed")
