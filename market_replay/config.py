"""
Replay Client - Configuration.

Configuration can be loaded from:
- Default values
- Environment variables (a .env file is honoured)
- YAML config file
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

import yaml
from dotenv import load_dotenv

from market_replay.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "https://api.exchangedataset.cc/v1"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF_BASE = 2.0
DEFAULT_DOWNLOAD_CONCURRENCY = 20
# One shard is one minute of source data
DEFAULT_BUFFER_SIZE = 30

ENV_PREFIX = "REPLAY_"


@dataclass
class ClientConfig:
    """Settings shared by every request made through one client."""
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_backoff_base: float = DEFAULT_RETRY_BACKOFF_BASE
    download_concurrency: int = DEFAULT_DOWNLOAD_CONCURRENCY
    buffer_size: int = DEFAULT_BUFFER_SIZE

    def __post_init__(self) -> None:
        """Validate settings."""
        if not self.base_url:
            raise ConfigurationError("base_url must not be empty", config_key="base_url")
        self.base_url = self.base_url.rstrip("/")
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be > 0", config_key="timeout")
        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be >= 1", config_key="max_retries")
        if self.retry_backoff_base < 1:
            raise ConfigurationError(
                "retry_backoff_base must be >= 1", config_key="retry_backoff_base"
            )
        if self.download_concurrency < 1:
            raise ConfigurationError(
                "download_concurrency must be >= 1", config_key="download_concurrency"
            )
        if self.buffer_size < 1:
            raise ConfigurationError("buffer_size must be >= 1", config_key="buffer_size")

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - REPLAY_API_KEY
        - REPLAY_BASE_URL
        - REPLAY_TIMEOUT
        - REPLAY_MAX_RETRIES
        - REPLAY_RETRY_BACKOFF_BASE
        - REPLAY_DOWNLOAD_CONCURRENCY
        - REPLAY_BUFFER_SIZE
        """
        load_dotenv()

        values: dict[str, Any] = {}
        for key, convert in _FIELDS.items():
            raw = os.getenv(ENV_PREFIX + key.upper())
            if raw:
                values[key] = _convert(key, raw, convert)
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ClientConfig":
        """Load configuration from a YAML mapping."""
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Failed to load YAML config from {path}",
                original_error=e,
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"YAML config {path} is not a mapping")

        unknown = set(data) - set(_FIELDS)
        if unknown:
            logger.warning(f"Ignoring unknown config keys in {path}: {sorted(unknown)}")

        values = {
            key: _convert(key, data[key], convert)
            for key, convert in _FIELDS.items()
            if data.get(key) is not None
        }
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, masking the API key."""
        return {
            "api_key": "***" if self.api_key else None,
            "base_url": self.base_url,
            "timeout": self.timeout,
            "max_retries": self.max_retries,
            "retry_backoff_base": self.retry_backoff_base,
            "download_concurrency": self.download_concurrency,
            "buffer_size": self.buffer_size,
        }


_FIELDS: dict[str, Callable[[Any], Any]] = {
    "api_key": str,
    "base_url": str,
    "timeout": float,
    "max_retries": int,
    "retry_backoff_base": float,
    "download_concurrency": int,
    "buffer_size": int,
}


def _convert(key: str, value: Any, convert: Callable[[Any], Any]) -> Any:
    try:
        return convert(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid value for {key}: {value!r}",
            config_key=key,
            original_error=e,
        ) from e
