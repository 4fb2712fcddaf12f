"""Configuration loading for pybdfs.

Settings are read from a TOML file (``$BDFS_CONFIG_FILE_PATH`` or
``~/.local/app/bdfs/config.toml``). When that file does not exist, the
``BDFS_CLIENT_ID``, ``BDFS_CLIENT_SECRET`` and ``BDFS_TOKEN_PATH``
environment variables are used instead.
"""

import logging
import os
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .exceptions import BdfsConfigError
from .utils import (
    DEFAULT_API_TIMEOUT,
    DEFAULT_AUTH_TIMEOUT,
    DEFAULT_SLICE_RETRIES,
    DEFAULT_SLICE_SIZE,
    DEFAULT_TRANSFER_TIMEOUT,
)

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "BDFS_CONFIG_FILE_PATH"

CONFIG_HELP = (
    "Missing required configuration parameters. Please set either:\n"
    f"  1. {CONFIG_PATH_ENV} pointing to a TOML file with client_id, "
    "client_secret, and token_path, or\n"
    "  2. BDFS_CLIENT_ID, BDFS_CLIENT_SECRET, and BDFS_TOKEN_PATH "
    "environment variables"
)


def get_default_config_path() -> Path:
    """Get the default config file location."""
    return Path.home() / ".local" / "app" / "bdfs" / "config.toml"


def get_config_path() -> Path:
    """Get the config file path, honouring ``BDFS_CONFIG_FILE_PATH``."""
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return get_default_config_path()


@dataclass
class Config:
    """Resolved settings for one CLI invocation."""

    client_id: str = ""
    client_secret: str = ""
    token_path: str = ""
    api_timeout: float = DEFAULT_API_TIMEOUT
    transfer_timeout: float = DEFAULT_TRANSFER_TIMEOUT
    auth_timeout: float = DEFAULT_AUTH_TIMEOUT
    slice_size: int = DEFAULT_SLICE_SIZE
    slice_retries: int = DEFAULT_SLICE_RETRIES

    @property
    def token_file(self) -> Path:
        """Token file path with ``~`` expanded."""
        return Path(self.token_path).expanduser()

    def is_complete(self) -> bool:
        """Check that all required values are present."""
        return bool(self.client_id and self.client_secret and self.token_path)

    def validate(self) -> None:
        """Raise BdfsConfigError when required values are missing or invalid."""
        if not self.is_complete():
            raise BdfsConfigError(CONFIG_HELP)
        if self.slice_size <= 0:
            raise BdfsConfigError("slice_size must be a positive number of bytes")
        if self.slice_retries < 0:
            raise BdfsConfigError("slice_retries cannot be negative")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create a Config from parsed TOML data, ignoring unknown keys."""
        known = {f.name: f.type for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.debug(f"Ignoring unknown config key: {key}")
                continue
            values[key] = value
        try:
            config = cls(**values)
            config.api_timeout = float(config.api_timeout)
            config.transfer_timeout = float(config.transfer_timeout)
            config.auth_timeout = float(config.auth_timeout)
            config.slice_size = int(config.slice_size)
            config.slice_retries = int(config.slice_retries)
        except (TypeError, ValueError) as e:
            raise BdfsConfigError(f"Invalid configuration value: {e}") from e
        return config

    @classmethod
    def from_env(cls) -> "Config":
        """Create a Config from the BDFS_* environment variables."""
        return cls(
            client_id=os.environ.get("BDFS_CLIENT_ID", ""),
            client_secret=os.environ.get("BDFS_CLIENT_SECRET", ""),
            token_path=os.environ.get("BDFS_TOKEN_PATH", ""),
        )


def load_config(
    config_path: Optional[Path] = None,
    client_id: Optional[str] = None,
    client_secret: Optional[str] = None,
    token_path: Optional[str] = None,
) -> Config:
    """Load configuration from the TOML file or the environment.

    Args:
        config_path: Explicit config file (defaults to get_config_path())
        client_id: Override for client_id
        client_secret: Override for client_secret
        token_path: Override for token_path

    Returns:
        Validated Config

    Raises:
        BdfsConfigError: If the file cannot be parsed or values are missing
    """
    path = config_path or get_config_path()

    if path.exists():
        logger.debug(f"Loading configuration from {path}")
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise BdfsConfigError(f"Failed to parse config file {path}: {e}") from e
        config = Config.from_dict(data)
    else:
        logger.debug(f"No config file at {path}, using environment variables")
        config = Config.from_env()

    if client_id:
        config.client_id = client_id
    if client_secret:
        config.client_secret = client_secret
    if token_path:
        config.token_path = token_path

    config.validate()
    return config
