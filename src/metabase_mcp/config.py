"""Configuration for the Metabase MCP server.

Reads METABASE_* environment variables. Falls back to a .env file
(METABASE_ENV_FILE, else ./.env) when the URL or credentials are not set.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger("metabase-mcp")

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class MetabaseConfig:
    url: str
    api_key: Optional[str] = None
    session_token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT

    @property
    def auth_method(self) -> str:
        if self.api_key:
            return "api_key"
        if self.session_token:
            return "session_token"
        return "password"


def _get_env_file_path() -> Path:
    """Get path to the .env file used as a fallback config source."""
    override = os.environ.get("METABASE_ENV_FILE")
    if override:
        return Path(override).expanduser()
    return Path.cwd() / ".env"


def _has_credentials() -> bool:
    return bool(
        os.environ.get("METABASE_API_KEY")
        or os.environ.get("METABASE_SESSION_TOKEN")
        or (os.environ.get("METABASE_USERNAME") and os.environ.get("METABASE_PASSWORD"))
    )


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def load_config() -> MetabaseConfig:
    """Load Metabase settings from the environment.

    Raises:
        ConfigError: If the URL or credentials are missing.
    """
    if not os.environ.get("METABASE_URL") or not _has_credentials():
        env_path = _get_env_file_path()
        if env_path.exists():
            # Values already in the environment take precedence
            load_dotenv(env_path, override=False)
            logger.info(f"Loaded Metabase config from: {env_path}")
        else:
            logger.debug(f"No .env file at {env_path}, using environment only")

    url = _clean(os.environ.get("METABASE_URL"))
    api_key = _clean(os.environ.get("METABASE_API_KEY"))
    session_token = _clean(os.environ.get("METABASE_SESSION_TOKEN"))
    username = _clean(os.environ.get("METABASE_USERNAME"))
    password = os.environ.get("METABASE_PASSWORD") or None

    if not url:
        raise ConfigError("METABASE_URL environment variable is required")
    if not api_key and not session_token and not (username and password):
        raise ConfigError(
            "Either METABASE_API_KEY, METABASE_SESSION_TOKEN, or "
            "(METABASE_USERNAME and METABASE_PASSWORD) environment variables are required"
        )

    timeout_raw = os.environ.get("METABASE_TIMEOUT", str(DEFAULT_TIMEOUT))
    try:
        timeout = float(timeout_raw)
    except ValueError as e:
        raise ConfigError(f"METABASE_TIMEOUT must be a number of seconds, got {timeout_raw!r}") from e

    return MetabaseConfig(
        url=url.rstrip("/"),
        api_key=api_key,
        session_token=session_token,
        username=username,
        password=password,
        timeout=timeout,
    )


def validate_config(config: MetabaseConfig) -> None:
    """Check a config for usable values.

    Raises:
        ConfigError: On a missing URL, missing credentials, or malformed URL.
    """
    if not config.url:
        raise ConfigError("Metabase URL is required")
    if not config.api_key and not config.session_token and not (config.username and config.password):
        raise ConfigError("Either API key, session token, or username/password combination is required")

    parsed = urlparse(config.url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"Invalid Metabase URL format: {config.url}")
    if config.timeout <= 0:
        raise ConfigError("Timeout must be greater than zero")
