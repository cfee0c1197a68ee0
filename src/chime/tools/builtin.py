"""Built-in tools."""

from typing import Any

from chime.tools.base import Tool


class EchoTool(Tool):
    """Returns its arguments unchanged. Handy for testing schedules."""

    def __init__(self, name: str = "Echo") -> None:
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "Return the task arguments unchanged"

    async def execute(self, arguments: Any) -> Any:
        return arguments
