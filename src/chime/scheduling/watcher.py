"""Directory watcher: turns filesystem notifications into re-check requests.

Notifications are treated as hints only: a path that shows up in any
create/modify/delete/move event is handed to the callback, which re-reads
the store to find out what actually happened. Kinds may be coalesced,
duplicated or reordered by the platform; nothing here relies on them.

The watchdog observer runs on its own thread. Every path is marshalled onto
the asyncio loop with ``call_soon_threadsafe`` before the callback sees it.
"""

import asyncio
import logging
import os
from collections.abc import Callable
from pathlib import Path

from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from chime.scheduling.store import is_task_file

logger = logging.getLogger(__name__)

# Open/read events are excluded: the scheduler's own reads would re-trigger it
RELEVANT_EVENTS = frozenset(
    {
        EVENT_TYPE_CREATED,
        EVENT_TYPE_MODIFIED,
        EVENT_TYPE_DELETED,
        EVENT_TYPE_MOVED,
        EVENT_TYPE_CLOSED,
    }
)

ChangeCallback = Callable[[Path], None]


class TaskFileEventHandler(FileSystemEventHandler):
    """Forwards task file paths from watchdog events to the event loop."""

    def __init__(
        self, loop: asyncio.AbstractEventLoop, on_change: ChangeCallback
    ) -> None:
        super().__init__()
        self._loop = loop
        self._on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in RELEVANT_EVENTS:
            return

        # A rename into place (write-then-rename) surfaces as the destination
        raw_paths = [event.src_path, getattr(event, "dest_path", "")]
        for raw in raw_paths:
            if not raw:
                continue
            path = Path(os.fsdecode(raw))
            if not is_task_file(path):
                continue
            try:
                self._loop.call_soon_threadsafe(self._on_change, path)
            except RuntimeError:
                # Loop already closed during shutdown
                return


class DirectoryWatcher:
    """Watches the task directory and reports changed task file paths.

    Example:
        watcher = DirectoryWatcher(Path("~/.chime/tasks"), scheduler.handle_change)
        watcher.start()  # from inside the running loop
        ...
        watcher.stop()
    """

    def __init__(self, directory: Path, on_change: ChangeCallback) -> None:
        self._directory = directory
        self._on_change = on_change
        self._observer: Observer | None = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """Start the observer thread. Must be called with a running loop.

        Raises:
            OSError: If the platform refuses the watch (e.g. inotify limits).
        """
        if self._observer is not None:
            return
        loop = asyncio.get_running_loop()
        handler = TaskFileEventHandler(loop, self._on_change)
        observer = Observer()
        observer.daemon = True
        observer.schedule(handler, str(self._directory), recursive=False)
        observer.start()
        self._observer = observer
        logger.info("task_watcher_started", extra={"file.path": str(self._directory)})

    def stop(self) -> None:
        if self._observer is None:
            return
        observer, self._observer = self._observer, None
        observer.stop()
        observer.join(timeout=5)
        logger.info("task_watcher_stopped")
