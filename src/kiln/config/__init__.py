"""Application configuration helpers."""

from __future__ import annotations

from .env import env_bool, env_float, env_int
from .errors import ConfigurationError
from .logging import configure_logging
from .platform import PlatformConfig, RoleBindingEntry, get_platform_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "PlatformConfig",
    "RoleBindingEntry",
    "StorageConfig",
    "configure_logging",
    "env_bool",
    "env_float",
    "env_int",
    "get_database_config",
    "get_platform_config",
    "get_storage_config",
]
