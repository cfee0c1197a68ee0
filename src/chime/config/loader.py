"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from chime.config.models import ChimeConfig
from chime.config.paths import get_config_path

# (section, key, env var)
ENV_OVERRIDES: list[tuple[str, str, str]] = [
    ("scheduler", "tasks_dir", "CHIME_TASKS_DIR"),
    ("logging", "level", "CHIME_LOG_LEVEL"),
]


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.chime/config.toml (or CHIME_HOME)
        Path("/etc/chime/config.toml"),  # System-wide
    ]


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Let environment variables override values from the file."""
    for section_key, key, env_var in ENV_OVERRIDES:
        value = os.environ.get(env_var)
        if not value:
            continue
        section = config.setdefault(section_key, {})
        if key == "level":
            value = value.upper()
        section[key] = value
    return config


def find_config_path(path: Path | None = None) -> Path | None:
    """Resolve the config file to load.

    Raises:
        FileNotFoundError: If an explicit path was given and does not exist.
    """
    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        return config_path

    for default_path in _get_default_config_paths():
        expanded = default_path.expanduser()
        if expanded.exists():
            return expanded
    return None


def load_config(path: Path | None = None) -> ChimeConfig:
    """Load configuration from a TOML file.

    Unlike an explicit path, the default locations are optional: when none
    exists the defaults (plus environment overrides) are returned.

    Args:
        path: Explicit path to config file. If None, searches default locations.

    Returns:
        Validated ChimeConfig instance.

    Raises:
        FileNotFoundError: If an explicit config file is missing.
        ValueError: If the config file is invalid.
    """
    config_path = find_config_path(path)

    raw_config: dict[str, Any] = {}
    if config_path is not None:
        with config_path.open("rb") as f:
            raw_config = tomllib.load(f)

    raw_config = _apply_env_overrides(raw_config)

    return ChimeConfig.model_validate(raw_config)


def get_default_config() -> ChimeConfig:
    """Get a default configuration for development/testing."""
    return ChimeConfig()
