"""Configuration system for b2-backup.

This module provides TOML-based configuration loading, validation,
and schema definitions for the backup jobs.
"""

from .loader import ConfigError, find_config_file, load_config
from .schema import (
    Config,
    FilesConfig,
    GlobalConfig,
    MysqlConfig,
    NotifyConfig,
)

__all__ = [
    "GlobalConfig",
    "NotifyConfig",
    "FilesConfig",
    "MysqlConfig",
    "Config",
    "load_config",
    "find_config_file",
    "ConfigError",
]
