"""Client configuration.

Endpoints, directories and timeouts come from environment variables with
defaults for the ConoHa Tokyo region. API credentials are read from a JSON
file in the config directory, one file per account.

Environment Variables:
    CONOHA_IDENTITY_URL: Identity (token) endpoint base URL.
    CONOHA_STORAGE_URL: Object storage endpoint base URL.
    CONOHA_CONFIG_DIR: Directory holding ``{name}.json`` credential files
        (default: ./config)
    CONOHA_TOKEN_DIR: Directory holding cached token records (default: ./data)
    CONOHA_TIMEOUT_SECONDS: Timeout for ordinary requests (default: 30)
    CONOHA_DOWNLOAD_TIMEOUT_SECONDS: Read timeout for object downloads
        (default: 7200)
"""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from conoha_storage.errors import ConfigError
from conoha_storage.models import Credentials

logger = logging.getLogger(__name__)

CONOHA_IDENTITY_URL_ENV = "CONOHA_IDENTITY_URL"
CONOHA_STORAGE_URL_ENV = "CONOHA_STORAGE_URL"
CONOHA_CONFIG_DIR_ENV = "CONOHA_CONFIG_DIR"
CONOHA_TOKEN_DIR_ENV = "CONOHA_TOKEN_DIR"
CONOHA_TIMEOUT_SECONDS_ENV = "CONOHA_TIMEOUT_SECONDS"
CONOHA_DOWNLOAD_TIMEOUT_SECONDS_ENV = "CONOHA_DOWNLOAD_TIMEOUT_SECONDS"

DEFAULT_IDENTITY_URL = "https://identity.tyo1.conoha.io/v2.0"
DEFAULT_STORAGE_URL = "https://object-storage.tyo1.conoha.io/v1"
DEFAULT_CONFIG_DIR = "config"
DEFAULT_TOKEN_DIR = "data"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_DOWNLOAD_TIMEOUT_SECONDS = 60.0 * 120
DEFAULT_CONF_NAME = "default"


def _get_env_str(key: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default).strip() or default


def _get_env_float(key: str, default: float) -> float:
    """Get a positive float from environment variable."""
    raw = os.environ.get(key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from e
    if not math.isfinite(value) or value <= 0:
        raise ConfigError(f"{key} must be a positive finite number, got {raw!r}")
    return value


@dataclass(frozen=True)
class ClientConfig:
    """Endpoint, directory and timeout settings for the client.

    Attributes:
        identity_url: Identity endpoint base; tokens are requested from
            ``{identity_url}/tokens``.
        storage_url: Object storage base; the account lives at
            ``{storage_url}/nc_{tenant_id}``.
        config_dir: Directory of credential files.
        token_dir: Directory of cached token records.
        timeout_seconds: Timeout for identity and ordinary storage requests.
        download_timeout_seconds: Read timeout for object downloads.
    """

    identity_url: str = DEFAULT_IDENTITY_URL
    storage_url: str = DEFAULT_STORAGE_URL
    config_dir: Path = Path(DEFAULT_CONFIG_DIR)
    token_dir: Path = Path(DEFAULT_TOKEN_DIR)
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    download_timeout_seconds: float = DEFAULT_DOWNLOAD_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Build a config from CONOHA_* environment variables.

        Raises:
            ConfigError: If a timeout variable is not a positive number.
        """
        return cls(
            identity_url=_get_env_str(CONOHA_IDENTITY_URL_ENV, DEFAULT_IDENTITY_URL).rstrip("/"),
            storage_url=_get_env_str(CONOHA_STORAGE_URL_ENV, DEFAULT_STORAGE_URL).rstrip("/"),
            config_dir=Path(_get_env_str(CONOHA_CONFIG_DIR_ENV, DEFAULT_CONFIG_DIR)),
            token_dir=Path(_get_env_str(CONOHA_TOKEN_DIR_ENV, DEFAULT_TOKEN_DIR)),
            timeout_seconds=_get_env_float(CONOHA_TIMEOUT_SECONDS_ENV, DEFAULT_TIMEOUT_SECONDS),
            download_timeout_seconds=_get_env_float(
                CONOHA_DOWNLOAD_TIMEOUT_SECONDS_ENV, DEFAULT_DOWNLOAD_TIMEOUT_SECONDS
            ),
        )


def load_credentials(
    name: str = DEFAULT_CONF_NAME,
    config_dir: str | Path | None = None,
) -> Credentials:
    """Load API credentials from ``{config_dir}/{name}.json``.

    File format::

        {"api_user": "...", "api_pass": "...", "tenant_id": "..."}

    Args:
        name: Credential file name without the ``.json`` suffix.
        config_dir: Directory to read from. If None, uses CONOHA_CONFIG_DIR
            or ./config.

    Returns:
        Immutable Credentials.

    Raises:
        ConfigError: If the file is missing, not JSON, or lacks a field.
    """
    if config_dir is None:
        config_dir = _get_env_str(CONOHA_CONFIG_DIR_ENV, DEFAULT_CONFIG_DIR)
    path = Path(config_dir) / f"{name}.json"

    logger.info("Loading credentials: %s", path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise ConfigError(f"Config file {path} is not valid UTF-8: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    try:
        return Credentials.model_validate(data)
    except ValidationError as e:
        missing = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise ConfigError(f"Invalid config file {path}: check {', '.join(missing)}") from e
