"""Task store: one JSON file per task in a single directory.

The directory is shared with other writers (the ``chime task`` commands, or
anything else that drops files in it) and there is no locking. Every write
made here goes to a hidden temp file in the same directory and is renamed
into place, so readers never observe a half-written record.

Reads are synchronous so that discovery (read, decide, admit) happens in a
single step on the event loop. Rewrites and deletes made while firing a
task are async; the task management commands use the sync variants.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import aiofiles

from chime.scheduling.errors import (
    InvalidTaskError,
    TaskExistsError,
    TaskNotFoundError,
)
from chime.scheduling.timestamps import DEFAULT_OFFSET, advance_scheduled_time
from chime.scheduling.types import TaskRecord

logger = logging.getLogger(__name__)

TASK_SUFFIX = ".json"

_UNSET: Any = object()


def is_task_file(path: Path) -> bool:
    """Whether a path names a task record (temp and hidden files do not)."""
    return path.suffix == TASK_SUFFIX and not path.name.startswith(".")


class TaskStore:
    """Directory-backed storage for task records."""

    def __init__(self, directory: Path, default_offset: str = DEFAULT_OFFSET) -> None:
        self._directory = Path(directory).expanduser().resolve()
        self._default_offset = default_offset

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def default_offset(self) -> str:
        return self._default_offset

    def ensure_dir(self) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, task_id: str) -> Path:
        return self._directory / f"{task_id}{TASK_SUFFIX}"

    def list_paths(self) -> list[Path]:
        if not self._directory.exists():
            return []
        return sorted(
            p for p in self._directory.iterdir() if is_task_file(p) and p.is_file()
        )

    def exists(self, path: Path) -> bool:
        return path.exists()

    # ------------------------------------------------------------------
    # Async operations (executor)
    # ------------------------------------------------------------------

    async def rewrite(self, path: Path, record: TaskRecord) -> None:
        """Atomically replace a record file (write to temp, then rename)."""
        self.ensure_dir()
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self._directory,
            prefix=f".{path.stem}_",
            suffix=".tmp",
        )
        try:
            async with aiofiles.open(temp_fd, "w", encoding="utf-8") as f:
                await f.write(record.to_json())
            Path(temp_path).replace(path)
        except Exception:
            _discard_temp(temp_path)
            raise

    async def delete(self, path: Path) -> bool:
        """Remove a record file. Returns False if it was already gone."""
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    # ------------------------------------------------------------------
    # Sync operations (discovery, task management commands)
    # ------------------------------------------------------------------

    def read(self, path: Path) -> TaskRecord:
        """Read and validate a record.

        Raises:
            FileNotFoundError: If the file disappeared.
            InvalidTaskError: If the content is not a valid record.
        """
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise InvalidTaskError(f"{path.name}: {e}", path=str(path)) from None
        return self._parse(text, path)

    def records(self) -> list[tuple[Path, TaskRecord]]:
        """All valid records in the store. Invalid files are skipped."""
        found: list[tuple[Path, TaskRecord]] = []
        for path in self.list_paths():
            try:
                found.append((path, self.read(path)))
            except (OSError, InvalidTaskError) as e:
                logger.debug(
                    "task_file_skipped",
                    extra={"file.path": str(path), "error.message": str(e)},
                )
        return found

    def find_path(self, task_id: str) -> Path | None:
        """Locate the file holding ``task_id``.

        The file stem is only a convention, so fall back to scanning.
        """
        candidate = self.path_for(task_id)
        if candidate.exists():
            try:
                if self.read(candidate).task_id == task_id:
                    return candidate
            except (OSError, InvalidTaskError):
                pass
        for path, record in self.records():
            if record.task_id == task_id:
                return path
        return None

    def get(self, task_id: str) -> tuple[Path, TaskRecord]:
        path = self.find_path(task_id)
        if path is None:
            raise TaskNotFoundError(f'Task "{task_id}" not found')
        return path, self.read(path)

    def create(self, record: TaskRecord) -> Path:
        """Write a new record.

        Raises:
            TaskExistsError: If the task id is already present.
        """
        self.ensure_dir()
        if self.find_path(record.task_id) is not None:
            raise TaskExistsError(
                f'Task "{record.task_id}" already exists; delete or edit it instead'
            )
        path = self.path_for(record.task_id)
        self.write(path, record)
        return path

    def update(
        self,
        task_id: str,
        *,
        scheduled_local_time: str | None = None,
        tool_name: str | None = None,
        arguments: Any = _UNSET,
        interval: int | None = _UNSET,
    ) -> TaskRecord:
        """Apply edits to an existing record.

        ``interval=0`` or ``interval=None`` turns the task into a one-shot.

        Raises:
            ValueError: If nothing to change or the interval is negative.
            TaskNotFoundError: If the task does not exist.
        """
        if (
            scheduled_local_time is None
            and tool_name is None
            and arguments is _UNSET
            and interval is _UNSET
        ):
            raise ValueError("At least one updatable field must be provided")

        path, record = self.get(task_id)
        if scheduled_local_time is not None:
            record.scheduled_local_time = scheduled_local_time
        if tool_name is not None:
            record.tool_name = tool_name
        if arguments is not _UNSET:
            record.arguments = arguments
        if interval is not _UNSET:
            if interval is not None and interval < 0:
                raise ValueError("interval must be a positive integer (seconds)")
            record.interval = interval or None
            record._extra.pop("interval", None)

        self.write(path, record)
        return record

    def remove(self, task_id: str) -> bool:
        """Delete a record by task id. Returns False if not found."""
        path = self.find_path(task_id)
        if path is None:
            return False
        path.unlink(missing_ok=True)
        return True

    def renew(self, task_id: str) -> TaskRecord:
        """Advance a recurring task by one interval without firing it.

        Raises:
            TaskNotFoundError: If the task does not exist.
            ValueError: If the task is not recurring.
        """
        path, record = self.get(task_id)
        if not record.is_recurring:
            raise ValueError(f'Task "{task_id}" has no interval; it is not recurring')
        assert record.interval is not None
        record.scheduled_local_time = advance_scheduled_time(
            record.scheduled_local_time, record.interval, self._default_offset
        )
        self.write(path, record)
        return record

    def write(self, path: Path, record: TaskRecord) -> None:
        """Atomically write a record file synchronously."""
        self.ensure_dir()
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self._directory,
            prefix=f".{path.stem}_",
            suffix=".tmp",
        )
        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                f.write(record.to_json())
            Path(temp_path).replace(path)
        except Exception:
            _discard_temp(temp_path)
            raise

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _parse(self, text: str, path: Path) -> TaskRecord:
        try:
            return TaskRecord.from_json(text, default_offset=self._default_offset)
        except InvalidTaskError as e:
            raise InvalidTaskError(f"{path.name}: {e}", path=str(path)) from None


def _discard_temp(temp_path: str) -> None:
    try:
        Path(temp_path).unlink()
    except OSError:
        pass
