"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from cadence.config.models import CadenceConfig, ConfigError
from cadence.config.paths import get_config_path

# (env var, config section or None for root, key)
ENV_OVERRIDES: list[tuple[str, str | None, str]] = [
    ("CADENCE_MAX_CONCURRENCY", None, "max_concurrency"),
    ("CADENCE_TIMEZONE", None, "timezone"),
    ("CADENCE_STORE_PATH", None, "store_path"),
    ("CADENCE_LOG_LEVEL", "logging", "level"),
]


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("cadence.toml"),  # Current directory
        get_config_path(),  # ~/.cadence/config.toml (or CADENCE_HOME)
        Path("/etc/cadence/config.toml"),  # System-wide
    ]


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Environment variables take precedence over file values."""
    for env_var, section_key, key in ENV_OVERRIDES:
        value = os.environ.get(env_var)
        if not value:
            continue
        if section_key is None:
            config[key] = value
            continue
        section = config.setdefault(section_key, {})
        if not isinstance(section, dict):
            raise ConfigError(f"[{section_key}] must be a table")
        section[key] = value
    return config


def load_config(path: Path | None = None) -> CadenceConfig:
    """Load configuration from TOML file.

    Args:
        path: Explicit path to config file. If None, searches default locations.

    Returns:
        Validated CadenceConfig instance.

    Raises:
        FileNotFoundError: If no config file is found.
        ConfigError: If the file is not valid TOML.
        pydantic.ValidationError: If a value is invalid.
    """
    config_path: Path | None = None

    default_paths = _get_default_config_paths()

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in default_paths:
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    if config_path is None:
        raise FileNotFoundError(
            f"No config file found. Searched: {', '.join(str(p) for p in default_paths)}"
        )

    try:
        with config_path.open("rb") as f:
            raw_config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    raw_config = _apply_env_overrides(raw_config)

    return CadenceConfig.model_validate(raw_config)


def get_default_config() -> CadenceConfig:
    """Get a default configuration, with environment overrides applied."""
    return CadenceConfig.model_validate(_apply_env_overrides({}))
