"""Schedule registry: the in-memory set of pending timers.

The registry is a disposable cache of the task store: every entry can be
rebuilt from its file, and nothing here survives a restart. It is the only
place that answers "is this task currently pending?".

Admission decisions are made by ``decide``, a pure function of the current
entry, the freshly read record and the clock, so they can be tested without
timers or a filesystem.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Decision(Enum):
    """What to do with a freshly discovered record."""

    SKIP = "skip"  # Already pending with the same content, or firing
    RUN_NOW = "run_now"  # Due instant already passed
    SCHEDULE = "schedule"  # Arm a timer
    RESCHEDULE = "reschedule"  # Pending, but the file changed underneath


@dataclass
class ScheduledEntry:
    """A pending timer for one task."""

    task_id: str
    due_at: datetime
    path: Path
    fingerprint: str
    handle: Cancellable


def decide(
    *,
    current: ScheduledEntry | None,
    fingerprint: str,
    firing: bool,
    due_at: datetime,
    now: datetime,
) -> Decision:
    """Decide how to admit a discovered record.

    Args:
        current: The registry entry for this task id, if any.
        fingerprint: Digest of the record as just read from disk.
        firing: Whether an execution for this task id is in flight.
        due_at: The record's due instant.
        now: Current time.
    """
    if firing:
        return Decision.SKIP
    if current is not None:
        if current.fingerprint == fingerprint:
            return Decision.SKIP
        return Decision.RESCHEDULE
    if due_at <= now:
        return Decision.RUN_NOW
    return Decision.SCHEDULE


class ScheduleRegistry:
    """Map of task id to pending timer, plus the set of tasks being fired.

    Holds at most one entry per task id; ``add`` refuses a second one.
    """

    def __init__(self) -> None:
        self._entries: dict[str, ScheduledEntry] = {}
        self._firing: set[str] = set()

    def add(self, entry: ScheduledEntry) -> None:
        if entry.task_id in self._entries:
            raise ValueError(f"Task '{entry.task_id}' already scheduled")
        self._entries[entry.task_id] = entry

    def get(self, task_id: str) -> ScheduledEntry | None:
        return self._entries.get(task_id)

    def find_by_path(self, path: Path) -> ScheduledEntry | None:
        for entry in self._entries.values():
            if entry.path == path:
                return entry
        return None

    def cancel(self, task_id: str) -> bool:
        """Revoke a pending timer and forget it. Returns False if absent."""
        entry = self._entries.pop(task_id, None)
        if entry is None:
            return False
        entry.handle.cancel()
        logger.debug("timer_cancelled", extra={"task.id": task_id})
        return True

    def discard(self, task_id: str, entry: ScheduledEntry | None = None) -> bool:
        """Forget an entry without cancelling its timer.

        With ``entry`` given, only removes it if it is still the current one,
        so a fired timer never evicts its replacement.
        """
        current = self._entries.get(task_id)
        if current is None or (entry is not None and current is not entry):
            return False
        del self._entries[task_id]
        return True

    def cancel_all(self) -> int:
        count = len(self._entries)
        for entry in self._entries.values():
            entry.handle.cancel()
        self._entries.clear()
        return count

    # Firing state: an execution in flight is not pending, but a new
    # discovery of the same task id must wait for its cleanup.

    def mark_firing(self, task_id: str) -> None:
        self._firing.add(task_id)

    def clear_firing(self, task_id: str) -> None:
        self._firing.discard(task_id)

    def is_firing(self, task_id: str) -> bool:
        return task_id in self._firing

    @property
    def ids(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ScheduledEntry]:
        return iter(list(self._entries.values()))
