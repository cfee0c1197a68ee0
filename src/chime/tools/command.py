"""External commands exposed as tools.

A command tool runs a configured executable once per invocation. The task
arguments are written to its stdin as JSON and it answers on stdout with a
single JSON object:

    {"status": "success", "result": ...}
    {"status": "error", "error": "message"}

Output that is not JSON is returned as plain text.
"""

import asyncio
import json
import logging
import os
import shlex
import shutil
import sys
from pathlib import Path
from typing import Any

from chime.config.models import ChimeConfig
from chime.tools.base import Tool, ToolError
from chime.tools.builtin import EchoTool
from chime.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
MAX_STDERR_CHARS = 2000


def _normalize_command(command: list[str] | str) -> list[str]:
    if isinstance(command, str):
        parts = shlex.split(command)
    else:
        parts = [str(part) for part in command]
    if not parts:
        raise ValueError("command must not be empty")
    return parts


def _resolve_command(command: list[str]) -> list[str]:
    executable = command[0]
    if os.path.sep in executable:
        return command
    resolved = shutil.which(executable)
    if resolved is None:
        # Fall back to the interpreter's bin dir (virtualenv console scripts)
        candidate = Path(sys.executable).parent / executable
        if candidate.exists():
            resolved = str(candidate)
    if resolved is None:
        return command
    return [resolved, *command[1:]]


class CommandTool(Tool):
    """Run an external command with JSON in and JSON out."""

    def __init__(
        self,
        name: str,
        command: list[str] | str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        env: dict[str, str] | None = None,
    ) -> None:
        self._name = name
        self._command = _normalize_command(command)
        self._timeout = timeout
        self._env = dict(env or {})

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"Run {shlex.join(self._command)}"

    @property
    def command(self) -> list[str]:
        return list(self._command)

    async def execute(self, arguments: Any) -> Any:
        payload = json.dumps(arguments, ensure_ascii=False).encode("utf-8")
        command = _resolve_command(self._command)
        env = {**os.environ, **self._env} if self._env else None

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise ToolError(f"{self._name}: failed to start {command[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(payload), timeout=self._timeout
            )
        except TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise ToolError(
                f"{self._name}: timed out after {self._timeout:g}s"
            ) from e

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            if len(detail) > MAX_STDERR_CHARS:
                detail = detail[:MAX_STDERR_CHARS] + "..."
            logger.warning(
                "command_tool_failed",
                extra={
                    "tool.name": self._name,
                    "process.exit_code": proc.returncode,
                },
            )
            message = f"{self._name}: exited with code {proc.returncode}"
            raise ToolError(f"{message}: {detail}" if detail else message)

        return self._parse_output(stdout.decode("utf-8", errors="replace"))

    def _parse_output(self, text: str) -> Any:
        text = text.strip()
        if not text:
            return ""
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return text

        if not isinstance(data, dict) or "status" not in data:
            return data
        if data["status"] == "error":
            raise ToolError(f"{self._name}: {data.get('error') or 'unknown error'}")
        return data.get("result")


def build_registry(config: ChimeConfig) -> ToolRegistry:
    """Create a registry with the built-in tools plus configured commands."""
    registry = ToolRegistry()
    registry.register(EchoTool())
    for name, tool_config in config.tools.items():
        if registry.has(name):
            registry.unregister(name)
        registry.register(
            CommandTool(
                name,
                tool_config.command,
                timeout=tool_config.timeout,
                env=tool_config.env,
            )
        )
    return registry
