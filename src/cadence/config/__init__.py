"""Configuration module."""

from cadence.config.loader import get_default_config, load_config
from cadence.config.models import CadenceConfig, ConfigError, LoggingConfig
from cadence.config.paths import (
    get_cadence_home,
    get_config_path,
    get_logs_path,
    get_store_path,
)

__all__ = [
    "CadenceConfig",
    "ConfigError",
    "LoggingConfig",
    "get_cadence_home",
    "get_config_path",
    "get_default_config",
    "get_logs_path",
    "get_store_path",
    "load_config",
]
