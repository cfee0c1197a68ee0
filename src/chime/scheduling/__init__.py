"""Scheduling subsystem: file-backed timed task execution.

Public API:
- TaskStore: Directory of task records, one JSON file per task
- ScheduleRegistry: In-memory pending timers keyed by task id
- TaskExecutor: Fires a task, reports, then renews or deletes its file
- TaskScheduler: Composition root; startup scan, watcher and rescan
- DirectoryWatcher: Filesystem notifications for the task directory

Types:
- TaskRecord: A single task record (one-shot or recurring)
- ExecutionEvent: Outcome of a fired task
- ToolInvoker / Notifier: Collaborator protocols
"""

from chime.scheduling.errors import (
    InvalidTaskError,
    SchedulerError,
    TaskExistsError,
    TaskNotFoundError,
)
from chime.scheduling.executor import TaskExecutor
from chime.scheduling.notifiers import CompositeNotifier, JSONLNotifier, LogNotifier
from chime.scheduling.registry import (
    Decision,
    ScheduledEntry,
    ScheduleRegistry,
    decide,
)
from chime.scheduling.scheduler import TaskScheduler
from chime.scheduling.store import TaskStore
from chime.scheduling.timestamps import (
    advance_scheduled_time,
    normalize_scheduled_time,
    parse_scheduled_time,
)
from chime.scheduling.types import ExecutionEvent, Notifier, TaskRecord, ToolInvoker
from chime.scheduling.watcher import DirectoryWatcher

__all__ = [
    "CompositeNotifier",
    "Decision",
    "DirectoryWatcher",
    "ExecutionEvent",
    "InvalidTaskError",
    "JSONLNotifier",
    "LogNotifier",
    "Notifier",
    "ScheduleRegistry",
    "ScheduledEntry",
    "SchedulerError",
    "TaskExecutor",
    "TaskExistsError",
    "TaskNotFoundError",
    "TaskRecord",
    "TaskScheduler",
    "TaskStore",
    "ToolInvoker",
    "advance_scheduled_time",
    "decide",
    "normalize_scheduled_time",
    "parse_scheduled_time",
]
