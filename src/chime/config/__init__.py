"""Configuration module."""

from chime.config.loader import get_default_config, load_config
from chime.config.models import (
    ChimeConfig,
    CommandToolConfig,
    ConfigError,
    LoggingConfig,
    SchedulerConfig,
)
from chime.config.paths import (
    get_chime_home,
    get_config_path,
    get_events_path,
    get_logs_path,
    get_tasks_path,
)

__all__ = [
    "ChimeConfig",
    "CommandToolConfig",
    "ConfigError",
    "LoggingConfig",
    "SchedulerConfig",
    "get_chime_home",
    "get_config_path",
    "get_default_config",
    "get_events_path",
    "get_logs_path",
    "get_tasks_path",
    "load_config",
]
