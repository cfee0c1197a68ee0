"""Scheduling types.

Public types:
- TaskRecord: A task record as stored in the task directory
- ExecutionEvent: Outcome of a fired task, sent to the notifier
- ToolInvoker: Backend that performs a task's effect
- Notifier: Channel that receives execution events
"""

import hashlib
import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, Protocol

from chime.scheduling.errors import InvalidTaskError
from chime.scheduling.timestamps import (
    DEFAULT_OFFSET,
    InvalidTimestampError,
    parse_scheduled_time,
)

KNOWN_FIELDS = {"taskId", "scheduledLocalTime", "interval", "tool_call"}


@dataclass
class TaskRecord:
    """A task record from the task store."""

    task_id: str
    scheduled_local_time: str  # Canonical text, offset token included
    tool_name: str
    arguments: Any  # Passed verbatim to the tool backend
    interval: int | None = None  # Seconds; recurring when > 0
    _extra: dict[str, Any] = field(default_factory=dict)  # Preserve unknown fields

    @property
    def is_recurring(self) -> bool:
        return self.interval is not None and self.interval > 0

    def due_at(self, default_offset: str = DEFAULT_OFFSET) -> datetime:
        """Resolve the trigger instant (offset-aware)."""
        return parse_scheduled_time(self.scheduled_local_time, default_offset)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk JSON shape."""
        data: dict[str, Any] = {
            "taskId": self.task_id,
            "scheduledLocalTime": self.scheduled_local_time,
        }
        if self.interval is not None:
            data["interval"] = self.interval
        elif "interval" in self._extra:
            data["interval"] = self._extra["interval"]
        data["tool_call"] = {
            "tool_name": self.tool_name,
            "arguments": self.arguments,
        }
        for key, value in self._extra.items():
            data.setdefault(key, value)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    def fingerprint(self) -> str:
        """Stable digest of the record content, used to spot external edits."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False)
        return hashlib.sha1(canonical.encode("utf-8")).hexdigest()

    @classmethod
    def from_dict(
        cls,
        data: Any,
        *,
        default_offset: str = DEFAULT_OFFSET,
    ) -> "TaskRecord":
        """Parse and validate a record payload.

        Raises:
            InvalidTaskError: If a required field is missing or the scheduled
                time does not resolve to an instant.
        """
        if not isinstance(data, dict):
            raise InvalidTaskError("task record must be a JSON object")

        task_id = data.get("taskId")
        scheduled = data.get("scheduledLocalTime")
        if not task_id or not isinstance(task_id, str):
            raise InvalidTaskError("missing taskId")
        if not scheduled:
            raise InvalidTaskError(f"task {task_id}: missing scheduledLocalTime")

        try:
            parse_scheduled_time(scheduled, default_offset)
        except InvalidTimestampError as e:
            raise InvalidTaskError(f"task {task_id}: {e}") from None

        tool_call = data.get("tool_call")
        if (
            not isinstance(tool_call, dict)
            or not tool_call.get("tool_name")
            or "arguments" not in tool_call
            or tool_call["arguments"] is None
        ):
            raise InvalidTaskError(
                f"task {task_id}: missing tool_call.tool_name or tool_call.arguments"
            )

        raw_interval = data.get("interval")
        interval: int | None = None
        extra = {k: v for k, v in data.items() if k not in KNOWN_FIELDS}
        if isinstance(raw_interval, int) and not isinstance(raw_interval, bool):
            interval = raw_interval
        elif isinstance(raw_interval, float):
            # JSON writers may emit 60.0 for 60
            if not raw_interval.is_integer():
                raise InvalidTaskError(
                    f"task {task_id}: interval must be a whole number of "
                    f"seconds, got {raw_interval!r}"
                )
            interval = int(raw_interval)
        elif raw_interval is not None:
            # Not a number: one-shot, but keep the value on rewrite
            extra["interval"] = raw_interval

        return cls(
            task_id=task_id,
            scheduled_local_time=scheduled,
            tool_name=str(tool_call["tool_name"]),
            arguments=tool_call["arguments"],
            interval=interval,
            _extra=extra,
        )

    @classmethod
    def from_json(
        cls,
        text: str,
        *,
        default_offset: str = DEFAULT_OFFSET,
    ) -> "TaskRecord":
        """Parse a record from file content.

        Raises:
            InvalidTaskError: If the content is not valid JSON or not a valid record.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidTaskError(f"invalid JSON: {e}") from None
        return cls.from_dict(data, default_offset=default_offset)


@dataclass
class ExecutionEvent:
    """Outcome of a fired task, as reported to observers."""

    status: Literal["success", "error"]
    tool_name: str  # "<tool> (Timed)"
    content: str
    source: str
    task_id: str | None = None
    details: str | None = None
    category: str = "task_scheduler"
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return {k: v for k, v in data.items() if v is not None}


class ToolInvoker(Protocol):
    """Backend that performs a task's effect. Raises on failure."""

    async def invoke(self, tool_name: str, arguments: Any) -> Any: ...


class Notifier(Protocol):
    """Fire-and-forget channel for execution events."""

    def report(self, event: ExecutionEvent) -> None: ...
