"""Resolve transfer configuration from file, environment, and overrides."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from blobstream.config.helpers import parse_bytes
from blobstream.config.transfer_config import TransferConfig
from blobstream.const import CONFIG_DIR_NAME, CONFIG_ENCODING, CONFIG_FILE

logger = logging.getLogger(__name__)

_ENV_MAP: dict[str, str] = {
    "endpoint": "BLOBSTREAM_ENDPOINT",
    "upload_buffer_size": "BLOBSTREAM_UPLOAD_BUFFER_SIZE",
    "download_chunk_size": "BLOBSTREAM_DOWNLOAD_CHUNK_SIZE",
    "enable_md5": "BLOBSTREAM_ENABLE_MD5",
    "enable_crc32c": "BLOBSTREAM_ENABLE_CRC32C",
    "http_timeout": "BLOBSTREAM_HTTP_TIMEOUT",
    "max_retries": "BLOBSTREAM_MAX_RETRIES",
    "initial_backoff": "BLOBSTREAM_INITIAL_BACKOFF",
    "max_backoff": "BLOBSTREAM_MAX_BACKOFF",
    "bearer_token": "BLOBSTREAM_BEARER_TOKEN",
}

_BYTE_FIELDS = {"upload_buffer_size", "download_chunk_size"}
_BOOL_FIELDS = {"enable_md5", "enable_crc32c"}
_FLOAT_FIELDS = {"http_timeout", "initial_backoff", "max_backoff"}

YES_CONFIRMATION = {"1", "true", "yes", "y"}


class ConfigFileError(Exception):
    """Raised when the configuration file cannot be parsed."""


def default_config_path(home_path: Path | None = None) -> Path:
    """Return the path of the user configuration file."""
    return (home_path or Path.home()) / CONFIG_DIR_NAME / CONFIG_FILE


class ConfigManager:
    """Build the effective transfer configuration.

    Precedence, lowest first: model defaults, the YAML config file,
    ``BLOBSTREAM_*`` environment variables, explicit overrides.
    """

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialise ConfigManager.

        Args:
            config_path: YAML file to read; defaults to
                ``~/.blobstream/config.yaml``.
        """
        self.config_path = config_path or default_config_path()

    def _read_file(self) -> dict[str, Any]:
        """Read settings from the YAML file, if it exists.

        Returns:
            A dictionary of configuration field names to values.

        Raises:
            ConfigFileError: If the file is not a YAML mapping.
        """
        try:
            with self.config_path.open("r", encoding=CONFIG_ENCODING) as config_file:
                file_data = yaml.safe_load(config_file) or {}
        except FileNotFoundError:
            return {}
        except yaml.YAMLError as exc:
            raise ConfigFileError(
                f"Invalid configuration file {self.config_path}: {exc}"
            ) from exc

        if not isinstance(file_data, dict):
            raise ConfigFileError(
                f"Configuration file {self.config_path} must contain a mapping."
            )

        for field_name in _BYTE_FIELDS:
            raw_value = file_data.get(field_name)
            if raw_value is not None:
                file_data[field_name] = parse_bytes(raw_value)
        return file_data

    def _read_env_overrides(self) -> dict[str, Any]:
        """Read configuration overrides from environment variables.

        Returns:
            A dictionary of configuration field names to override values.
        """
        overrides: dict[str, Any] = {}

        for field_name, env_var_name in _ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None:
                continue

            try:
                if field_name in _BYTE_FIELDS:
                    overrides[field_name] = parse_bytes(env_value)
                elif field_name == "max_retries":
                    overrides[field_name] = int(env_value)
                elif field_name in _FLOAT_FIELDS:
                    overrides[field_name] = float(env_value)
                elif field_name in _BOOL_FIELDS:
                    overrides[field_name] = env_value.lower() in YES_CONFIRMATION
                else:
                    overrides[field_name] = env_value
            except ValueError:
                logger.warning("Ignoring invalid %s=%r", env_var_name, env_value)

        return overrides

    def resolve_effective_config(
        self, overrides: dict[str, Any] | None = None
    ) -> TransferConfig:
        """Resolve the effective configuration for this run.

        Args:
            overrides: Explicit settings; ``None`` values are ignored.

        Returns:
            The validated ``TransferConfig``.
        """
        merged_config = TransferConfig.model_validate(self._read_file())
        merged_config = merged_config.model_copy(update=self._read_env_overrides())

        if overrides:
            explicit = {
                name: value for name, value in overrides.items() if value is not None
            }
            merged_config = merged_config.model_copy(update=explicit)

        # model_copy skips validation; re-run it so size rounding applies.
        return TransferConfig.model_validate(merged_config.model_dump())
