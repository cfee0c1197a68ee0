"""Centralized path management for Chime.

All state (config, tasks, logs, event log) is stored under a single base
directory. The base directory can be overridden with the CHIME_HOME
environment variable.

Default locations:
- Linux/macOS: ~/.chime
- Windows: %USERPROFILE%\\.chime
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "CHIME_HOME"


@lru_cache(maxsize=1)
def get_chime_home() -> Path:
    """Get the base directory for all Chime data.

    Resolution order:
    1. CHIME_HOME environment variable (if set)
    2. Platform default (~/.chime)

    Returns:
        Path to the Chime home directory.
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()

    return Path.home() / ".chime"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_chime_home() / "config.toml"


def get_tasks_path() -> Path:
    """Get the default task store directory (one JSON file per task)."""
    return get_chime_home() / "tasks"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_chime_home() / "logs"


def get_events_path() -> Path:
    """Get the execution event log path (JSONL, one event per line)."""
    return get_chime_home() / "events.jsonl"


def ensure_chime_home() -> Path:
    """Ensure the Chime home directory exists.

    Returns:
        Path to the Chime home directory.
    """
    home = get_chime_home()
    home.mkdir(parents=True, exist_ok=True)
    return home


def get_all_paths() -> dict[str, Path]:
    """Get all standard paths for debugging/display."""
    return {
        "home": get_chime_home(),
        "config": get_config_path(),
        "tasks": get_tasks_path(),
        "logs": get_logs_path(),
        "events": get_events_path(),
    }
