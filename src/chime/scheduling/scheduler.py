"""Task scheduler: keeps pending timers in step with the task directory.

Three event sources feed one reconciliation step (``reconcile_path``):

- the startup scan, which admits everything already on disk;
- filesystem notifications from ``DirectoryWatcher``;
- a periodic full rescan, which bounds how stale the registry can get when
  notifications are lost.

Reconciliation reads the file, then decides synchronously (no awaits
between read and admission), so the registry never holds two timers for one
task id. The file is always authoritative; the registry is rebuilt from it.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from chime.scheduling.errors import InvalidTaskError
from chime.scheduling.executor import (
    DEFAULT_SUMMARY_LIMIT,
    SOURCE_ERROR,
    TaskExecutor,
)
from chime.scheduling.registry import (
    Decision,
    ScheduledEntry,
    ScheduleRegistry,
    decide,
)
from chime.scheduling.store import TaskStore
from chime.scheduling.types import ExecutionEvent, Notifier, TaskRecord, ToolInvoker
from chime.scheduling.watcher import DirectoryWatcher

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Pending entries this far past due on a rescan are fired by the rescan
# itself (the loop timer was delayed, e.g. by a suspended host)
OVERDUE_GRACE_SECONDS = 1.0


def utc_now() -> datetime:
    return datetime.now(UTC)


class TaskScheduler:
    """Owns the schedule registry, its timers, the watcher and the rescan.

    Example:
        store = TaskStore(Path("~/.chime/tasks"))
        scheduler = TaskScheduler(store, invoker=tools, notifier=LogNotifier())
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        store: TaskStore,
        invoker: ToolInvoker,
        notifier: Notifier,
        *,
        registry: ScheduleRegistry | None = None,
        clock: Clock = utc_now,
        rescan_interval: float = 60.0,
        shutdown_timeout: float = 30.0,
        watch: bool = True,
        summary_limit: int = DEFAULT_SUMMARY_LIMIT,
        stamp_prompt_tools: Iterable[str] = ("AgentAssistant",),
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._registry = registry if registry is not None else ScheduleRegistry()
        self._clock = clock
        self._rescan_interval = rescan_interval
        self._shutdown_timeout = shutdown_timeout
        self._executor = TaskExecutor(
            store,
            self._registry,
            invoker,
            notifier,
            summary_limit=summary_limit,
            stamp_prompt_tools=stamp_prompt_tools,
        )
        self._watcher = (
            DirectoryWatcher(store.directory, self.handle_change) if watch else None
        )
        self._running = False
        self._rescan_task: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        # path -> (mtime_ns, size) of the last invalid content reported
        self._rejected: dict[Path, tuple[int, int]] = {}
        self._rescan_count = 0

    @property
    def store(self) -> TaskStore:
        return self._store

    @property
    def registry(self) -> ScheduleRegistry:
        return self._registry

    @property
    def running(self) -> bool:
        return self._running

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._store.ensure_dir()

        self.reconcile_all()

        if self._watcher is not None:
            try:
                self._watcher.start()
            except OSError as e:
                # The rescan still picks changes up, only later
                logger.error(
                    "task_watcher_start_failed",
                    extra={
                        "file.path": str(self._store.directory),
                        "error.message": str(e),
                    },
                )

        if self._rescan_interval > 0:
            self._rescan_task = asyncio.create_task(self._rescan_loop())

        logger.info(
            "task_scheduler_started",
            extra={
                "file.path": str(self._store.directory),
                "schedule.pending": len(self._registry),
            },
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False

        if self._rescan_task:
            self._rescan_task.cancel()
            try:
                await self._rescan_task
            except asyncio.CancelledError:
                pass
            self._rescan_task = None

        if self._watcher is not None:
            self._watcher.stop()

        cancelled = self._registry.cancel_all()
        if cancelled:
            logger.info("scheduled_tasks_cleared", extra={"schedule.count": cancelled})

        if self._inflight:
            # Let running tasks finish their renew-or-delete step
            _, pending = await asyncio.wait(
                set(self._inflight), timeout=self._shutdown_timeout
            )
            if pending:
                logger.warning(
                    "inflight_tasks_abandoned",
                    extra={"schedule.count": len(pending)},
                )

        logger.info("task_scheduler_stopped")

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def handle_change(self, path: Path) -> None:
        """Watcher callback: something happened to ``path``, re-check it."""
        if not self._running:
            return
        logger.debug("task_file_changed", extra={"file.name": path.name})
        self.reconcile_path(path)

    def reconcile_all(self) -> int:
        """Admit every record in the store and drop timers for vanished files.

        Used at startup and by the periodic rescan.

        Returns:
            Number of task files found.
        """
        paths = self._store.list_paths()
        for path in paths:
            self.reconcile_path(path)

        for entry in self._registry:
            if not self._store.exists(entry.path):
                self._forget(entry.path)

        self._fire_overdue()
        return len(paths)

    def reconcile_path(self, path: Path) -> Decision | None:
        """Bring the registry in line with the current state of one file.

        Returns:
            The admission decision, or None if the file is gone or invalid.
        """
        try:
            record = self._store.read(path)
        except FileNotFoundError:
            self._forget(path)
            return None
        except InvalidTaskError as e:
            self._reject(path, e)
            return None
        except OSError as e:
            logger.warning(
                "task_file_unreadable",
                extra={"file.path": str(path), "error.message": str(e)},
            )
            return None

        self._rejected.pop(path, None)

        # The taskId was changed in place: the old id's timer goes with it
        stale = self._registry.find_by_path(path)
        if stale is not None and stale.task_id != record.task_id:
            self._registry.cancel(stale.task_id)
            logger.info(
                "task_id_changed_timer_cancelled",
                extra={
                    "task.id": record.task_id,
                    "task.previous_id": stale.task_id,
                    "file.name": path.name,
                },
            )

        return self.admit(record, path)

    def admit(self, record: TaskRecord, path: Path) -> Decision:
        """Schedule, fire or skip a valid record."""
        task_id = record.task_id
        current = self._registry.get(task_id)
        if current is not None and current.path != path:
            logger.warning(
                "duplicate_task_id",
                extra={
                    "task.id": task_id,
                    "file.path": str(path),
                    "file.scheduled_path": str(current.path),
                },
            )
            return Decision.SKIP

        due_at = record.due_at(self._store.default_offset)
        now = self._clock()
        fingerprint = record.fingerprint()
        decision = decide(
            current=current,
            fingerprint=fingerprint,
            firing=self._registry.is_firing(task_id),
            due_at=due_at,
            now=now,
        )

        if decision is Decision.SKIP:
            logger.debug("task_already_scheduled", extra={"task.id": task_id})
            return decision

        if decision is Decision.RESCHEDULE:
            self._registry.cancel(task_id)
            logger.info("task_changed_rescheduling", extra={"task.id": task_id})
            decision = decide(
                current=None,
                fingerprint=fingerprint,
                firing=False,
                due_at=due_at,
                now=now,
            )

        if decision is Decision.RUN_NOW:
            logger.warning(
                "task_overdue_running_now",
                extra={"task.id": task_id, "file.name": path.name},
            )
            self._fire(record, path)
        else:
            self._arm(record, path, due_at, now, fingerprint)
        return decision

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _arm(
        self,
        record: TaskRecord,
        path: Path,
        due_at: datetime,
        now: datetime,
        fingerprint: str,
    ) -> None:
        delay = max(0.0, (due_at - now).total_seconds())
        loop = asyncio.get_running_loop()

        def on_timer() -> None:
            # A replaced or cancelled entry must not fire
            if self._registry.discard(record.task_id, entry):
                logger.info("scheduled_task_due", extra={"task.id": record.task_id})
                self._fire(record, path)

        handle = loop.call_later(delay, on_timer)
        entry = ScheduledEntry(
            task_id=record.task_id,
            due_at=due_at,
            path=path,
            fingerprint=fingerprint,
            handle=handle,
        )
        self._registry.add(entry)
        logger.info(
            "task_scheduled",
            extra={
                "task.id": record.task_id,
                "task.due_at": due_at.isoformat(),
                "task.recurring": record.is_recurring,
            },
        )

    def _fire(self, record: TaskRecord, path: Path) -> None:
        # Marked before the task starts so a rediscovery in between skips it
        self._registry.mark_firing(record.task_id)
        self._spawn(
            self._executor.run(record, path),
            name=f"chime-task-{record.task_id}",
        )

    def _fire_overdue(self) -> None:
        now = self._clock()
        for entry in self._registry:
            if (now - entry.due_at).total_seconds() < OVERDUE_GRACE_SECONDS:
                continue
            try:
                record = self._store.read(entry.path)
            except (OSError, InvalidTaskError):
                continue
            if record.fingerprint() != entry.fingerprint:
                continue
            self._registry.cancel(entry.task_id)
            logger.warning("pending_task_overdue", extra={"task.id": entry.task_id})
            self._fire(record, entry.path)

    def _forget(self, path: Path) -> None:
        self._rejected.pop(path, None)
        entry = self._registry.find_by_path(path)
        if entry is None:
            # By convention the stem is the task id
            candidate = self._registry.get(path.stem)
            if candidate is None or self._store.exists(candidate.path):
                return
            entry = candidate
        self._registry.cancel(entry.task_id)
        logger.info(
            "task_file_removed_timer_cancelled",
            extra={"task.id": entry.task_id, "file.name": path.name},
        )

    def _reject(self, path: Path, error: InvalidTaskError) -> None:
        # The file text is authoritative: an invalid file schedules nothing
        entry = self._registry.find_by_path(path)
        if entry is not None:
            self._registry.cancel(entry.task_id)

        try:
            stat = path.stat()
            marker = (stat.st_mtime_ns, stat.st_size)
        except OSError:
            marker = (0, 0)
        if self._rejected.get(path) == marker:
            return
        self._rejected[path] = marker

        logger.warning(
            "invalid_task_file_skipped",
            extra={"file.name": path.name, "error.message": str(error)},
        )
        try:
            self._notifier.report(
                ExecutionEvent(
                    status="error",
                    tool_name="TaskScheduler",
                    content=f"Invalid task file {path.name}: {error}",
                    source=SOURCE_ERROR,
                    task_id=path.stem,
                )
            )
        except Exception as e:
            logger.warning("notifier_failed", extra={"error.message": str(e)})

    def _spawn(self, coro: Coroutine[Any, Any, None], *, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._inflight.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        if exc := task.exception():
            logger.error(
                "scheduled_task_crashed",
                extra={"task.name": task.get_name(), "error.message": str(exc)},
            )

    async def _rescan_loop(self) -> None:
        # Heartbeat every 60 rescans (~1h at the default interval)
        heartbeat_interval = 60
        while self._running:
            await asyncio.sleep(self._rescan_interval)
            try:
                self._rescan_count += 1
                found = self.reconcile_all()
                if self._rescan_count % heartbeat_interval == 0:
                    logger.info(
                        "task_scheduler_heartbeat",
                        extra={
                            "rescan.count": self._rescan_count,
                            "schedule.files": found,
                            "schedule.pending": len(self._registry),
                        },
                    )
            except Exception as e:
                logger.error("task_rescan_error", extra={"error.message": str(e)})
