"""Tool backends invoked by scheduled tasks."""

from chime.tools.base import Tool, ToolError, UnknownToolError
from chime.tools.builtin import EchoTool
from chime.tools.command import CommandTool, build_registry
from chime.tools.registry import ToolRegistry

__all__ = [
    "CommandTool",
    "EchoTool",
    "Tool",
    "ToolError",
    "ToolRegistry",
    "UnknownToolError",
    "build_registry",
]
