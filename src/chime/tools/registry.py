"""Tool registry: the tool-invocation backend used by the scheduler."""

import logging
from collections.abc import Iterator
from typing import Any

from chime.tools.base import Tool, UnknownToolError

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry for tool instances.

    Implements the scheduler's ``ToolInvoker`` protocol: ``invoke`` looks a
    tool up by name and awaits it.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' already registered")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Tool:
        if name not in self._tools:
            raise UnknownToolError(f"Tool '{name}' not found")
        return self._tools[name]

    def has(self, name: str) -> bool:
        return name in self._tools

    @property
    def names(self) -> list[str]:
        return list(self._tools.keys())

    async def invoke(self, tool_name: str, arguments: Any) -> Any:
        return await self.get(tool_name).execute(arguments)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())
