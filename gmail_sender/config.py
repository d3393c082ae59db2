"""Settings loaded from the environment and an optional env file."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, MutableMapping, Optional

from pydantic import BaseModel, Field

from gmail_sender.errors import ConfigDirectoryError, ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_DIR_DEFAULT = Path.home() / ".config" / "gmail-sender-mcp-server"
ENV_FILE_NAME = "gmail_sender.env"
TOKEN_FILE_NAME = "token.json"
DEFAULT_PORT = 3500
DEFAULT_API_TIMEOUT = 30.0


class Settings(BaseModel):
    client_id: Optional[str] = Field(default=None, description="OAuth client id.")
    client_secret: Optional[str] = Field(default=None, description="OAuth client secret.")
    config_dir: Path = Field(default=CONFIG_DIR_DEFAULT, description="Directory holding token.json.")
    oauth_host: str = Field(default="localhost", description="Host used in the redirect URI.")
    oauth_port: int = Field(default=DEFAULT_PORT, description="Port of the local callback listener.")
    api_timeout: float = Field(default=DEFAULT_API_TIMEOUT, description="Seconds before a Gmail call times out.")
    log_level: str = Field(default="INFO")

    @property
    def token_path(self) -> Path:
        return self.config_dir / TOKEN_FILE_NAME

    @property
    def base_url(self) -> str:
        return f"http://{self.oauth_host}:{self.oauth_port}"

    @property
    def redirect_uri(self) -> str:
        return f"{self.base_url}/oauth2callback"

    @property
    def auth_start_url(self) -> str:
        return f"{self.base_url}/auth"


def _load_env_file(env_path: Path, environ: MutableMapping[str, str]) -> None:
    if not env_path.is_file():
        return
    for line in env_path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        environ.setdefault(key, value)
    logger.debug("Loaded env file %s", env_path)


def _parse_number(environ: Mapping[str, str], name: str, default: float, cast: type) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}.") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}.")
    return value


def load_settings(environ: Optional[MutableMapping[str, str]] = None) -> Settings:
    """Build settings from ``environ`` (``os.environ`` by default).

    Values from the env file only fill in variables that are not already set.
    """
    environ = os.environ if environ is None else environ

    config_dir = Path(environ.get("GMAIL_SENDER_CONFIG_DIR") or CONFIG_DIR_DEFAULT).expanduser()
    env_path = Path(environ.get("GMAIL_SENDER_ENV_FILE") or config_dir / ENV_FILE_NAME).expanduser()
    _load_env_file(env_path, environ)

    return Settings(
        client_id=environ.get("GMAIL_CLIENT_ID") or None,
        client_secret=environ.get("GMAIL_CLIENT_SECRET") or None,
        config_dir=config_dir,
        oauth_port=int(_parse_number(environ, "GMAIL_OAUTH_PORT", DEFAULT_PORT, int)),
        api_timeout=_parse_number(environ, "GMAIL_API_TIMEOUT", DEFAULT_API_TIMEOUT, float),
        log_level=(environ.get("GMAIL_SENDER_LOG_LEVEL") or "INFO").upper(),
    )


def ensure_config_dir(path: Path) -> Path:
    """Create ``path`` if needed. Only an already existing directory is tolerated."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigDirectoryError(f"Cannot create config directory {path}: {exc}") from exc
    return path
