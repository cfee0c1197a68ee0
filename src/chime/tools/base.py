"""Abstract tool interface."""

from abc import ABC, abstractmethod
from typing import Any


class ToolError(Exception):
    """A tool ran but failed."""


class UnknownToolError(ToolError):
    """No tool is registered under the requested name."""


class Tool(ABC):
    """Abstract base class for tools.

    A tool is the effect a scheduled task performs. It receives the task's
    ``tool_call.arguments`` verbatim and returns any JSON-serializable
    result, or raises ``ToolError``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this tool (``tool_call.tool_name``)."""
        ...

    @property
    def description(self) -> str:
        return ""

    @abstractmethod
    async def execute(self, arguments: Any) -> Any:
        """Execute the tool.

        Args:
            arguments: The task's ``tool_call.arguments`` value.

        Returns:
            Tool result; dicts and lists are summarized as JSON.

        Raises:
            ToolError: If the tool failed.
        """
        ...
