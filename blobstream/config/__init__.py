"""Transfer configuration."""

from blobstream.config.config_manager import ConfigFileError, ConfigManager
from blobstream.config.helpers import parse_bytes
from blobstream.config.transfer_config import TransferConfig

__all__ = ["ConfigFileError", "ConfigManager", "TransferConfig", "parse_bytes"]
