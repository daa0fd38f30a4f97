"""Runtime configuration for the chat-sync client.

Reads backend connection settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    CHAT_SYNC_URL: Realtime database base URL (required)
    CHAT_SYNC_API_KEY: API key for the password auth endpoint (optional)
    CHAT_SYNC_EMAIL: Account email used by ``login`` (optional)
    CHAT_SYNC_PASSWORD: Account password used by ``login`` (optional)
    CHAT_SYNC_STATE_DIR: Directory for the persisted login session
        (optional, default: .chat_sync)
    CHAT_SYNC_TIMEOUT: HTTP timeout in seconds (optional, default: 30)
    CHAT_SYNC_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


@dataclass
class Config:
    backend_url: str
    api_key: str | None = None
    email: str | None = None
    password: str | None = None
    state_dir: str = ".chat_sync"
    timeout: float = 30.0
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the URL format is invalid or the timeout is out of range.
    """
    config.backend_url = config.backend_url.strip()

    if not config.backend_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid backend URL '{config.backend_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.backend_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid backend URL '{config.backend_url}': URL must include a hostname"
        )

    config.backend_url = config.backend_url.removesuffix("/")

    if not (0 < config.timeout <= 600):
        raise ValueError(
            f"Invalid timeout {config.timeout}: must be between 0 and 600 seconds"
        )

    if config.backend_url.startswith("http://"):
        logger.warning(
            "WARNING: backend URL is not HTTPS; credentials travel in clear text."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    url: str | None = None,
    api_key: str | None = None,
    email: str | None = None,
    password: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override backend URL.
        api_key: Override auth API key.
        email: Override account email.
        password: Override account password.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML ``backend`` section.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the backend URL is missing after checking all
            sources, or a numeric value is malformed.
    """
    fb = yaml_fallbacks or {}

    backend_url = url or os.getenv("CHAT_SYNC_URL") or fb.get("url")
    if not backend_url:
        raise ValueError(
            "Backend URL not found. Set CHAT_SYNC_URL environment variable, "
            "pass --url CLI argument, or add 'url' to config.yml."
        )

    final_api_key = api_key or os.getenv("CHAT_SYNC_API_KEY") or fb.get("api_key")
    final_email = email or os.getenv("CHAT_SYNC_EMAIL") or fb.get("email")
    final_password = (
        password or os.getenv("CHAT_SYNC_PASSWORD") or fb.get("password")
    )
    state_dir = (
        os.getenv("CHAT_SYNC_STATE_DIR") or fb.get("state_dir") or ".chat_sync"
    )

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("CHAT_SYNC_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    timeout_raw = os.getenv("CHAT_SYNC_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid CHAT_SYNC_TIMEOUT '{timeout_raw}': must be a number of seconds"
            ) from None
    elif "timeout" in fb:
        final_timeout = float(fb["timeout"])
    else:
        final_timeout = 30.0

    config = Config(
        backend_url=backend_url.strip(),
        api_key=final_api_key,
        email=final_email.strip() if final_email else None,
        password=final_password,
        state_dir=state_dir,
        timeout=final_timeout,
        debug=final_debug,
    )

    validate_config(config)

    return config
