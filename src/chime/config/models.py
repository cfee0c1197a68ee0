"""Configuration models using Pydantic."""

import re
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from chime.config.paths import get_events_path, get_tasks_path

_OFFSET_RE = re.compile(r"^[+-]\d{2}:\d{2}$")


class ConfigError(Exception):
    """Configuration error."""

    pass


class SchedulerConfig(BaseModel):
    """Configuration for the task scheduler."""

    tasks_dir: Path = Field(default_factory=get_tasks_path)
    # Full directory rescan period in seconds; 0 disables the polling fallback
    rescan_interval: float = 60.0
    # Offset applied to timestamps that carry none (and to the shorthand form)
    default_offset: str = "+08:00"
    # Max characters of a tool result included in a success event
    summary_limit: int = 500
    # Tools whose "prompt" argument is prefixed with the scheduled time
    stamp_prompt_tools: list[str] = Field(default_factory=lambda: ["AgentAssistant"])
    # Seconds to wait for in-flight executions on shutdown
    shutdown_timeout: float = 30.0
    events_file: Path | None = Field(default_factory=get_events_path)

    @field_validator("default_offset")
    @classmethod
    def _validate_offset(cls, value: str) -> str:
        if not _OFFSET_RE.match(value):
            raise ValueError(f"default_offset must look like +08:00, got {value!r}")
        return value

    @field_validator("rescan_interval", "shutdown_timeout")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be >= 0")
        return value


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_to_file: bool = True


class CommandToolConfig(BaseModel):
    """An external command exposed as a named tool.

    The command receives the task arguments as JSON on stdin and answers
    with a single JSON object ``{"status": ..., "result": ...}`` on stdout.
    """

    command: list[str] | str
    timeout: float = 60.0
    env: dict[str, str] = Field(default_factory=dict)


class ChimeConfig(BaseModel):
    """Root configuration model."""

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    tools: dict[str, CommandToolConfig] = Field(default_factory=dict)
