"""Task executor: fires a task and settles its record.

Firing is: invoke the tool, report the outcome, then clean up. Cleanup
always runs, whatever the tool did:

- recurring task: advance ``scheduledLocalTime`` by the interval and
  rewrite the file (the watcher picks the new content up again);
- one-shot task, or a recurring task whose renewal failed: delete the file.

A tool failure is reported, never raised. A failed renewal degrades to a
delete so the record cannot come back as "overdue" and fire again at once.
"""

import copy
import json
import logging
import traceback
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from chime.scheduling.registry import ScheduleRegistry
from chime.scheduling.store import TaskStore
from chime.scheduling.timestamps import advance_scheduled_time, format_display_time
from chime.scheduling.types import ExecutionEvent, Notifier, TaskRecord, ToolInvoker

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY_LIMIT = 500
EMPTY_RESULT_SUMMARY = "[no response content from tool]"

SOURCE_OK = "task_scheduler_executor"
SOURCE_ERROR = "task_scheduler_executor_error"


def summarize_result(result: Any, limit: int = DEFAULT_SUMMARY_LIMIT) -> str:
    """Render a tool result as text, truncated to ``limit`` characters."""
    if result is None or result == "":
        return EMPTY_RESULT_SUMMARY
    if isinstance(result, (dict, list)):
        text = json.dumps(result, ensure_ascii=False, default=str)
    else:
        text = str(result)
    return text[:limit]


class TaskExecutor:
    """Runs due tasks against the tool backend and settles their files."""

    def __init__(
        self,
        store: TaskStore,
        registry: ScheduleRegistry,
        invoker: ToolInvoker,
        notifier: Notifier,
        *,
        summary_limit: int = DEFAULT_SUMMARY_LIMIT,
        stamp_prompt_tools: Iterable[str] = ("AgentAssistant",),
    ) -> None:
        self._store = store
        self._registry = registry
        self._invoker = invoker
        self._notifier = notifier
        self._summary_limit = summary_limit
        self._stamp_prompt_tools = frozenset(stamp_prompt_tools)

    async def run(self, record: TaskRecord, path: Path) -> None:
        """Fire a task. Never raises for tool or cleanup failures."""
        self._registry.mark_firing(record.task_id)
        try:
            await self._invoke(record)
        finally:
            try:
                await self._cleanup(record, path)
            finally:
                self._registry.clear_firing(record.task_id)

    async def _invoke(self, record: TaskRecord) -> None:
        tool_tag = f"{record.tool_name} (Timed)"
        logger.info(
            "scheduled_task_executing",
            extra={"task.id": record.task_id, "tool.name": record.tool_name},
        )
        try:
            result = await self._invoker.invoke(
                record.tool_name, self._prepare_arguments(record)
            )
        except Exception as e:
            logger.error(
                "scheduled_task_failed",
                extra={
                    "task.id": record.task_id,
                    "tool.name": record.tool_name,
                    "error.message": str(e),
                },
                exc_info=True,
            )
            self._report(
                ExecutionEvent(
                    status="error",
                    tool_name=tool_tag,
                    content=(
                        f"Scheduled task {record.task_id} failed: "
                        f"{str(e) or type(e).__name__}"
                    ),
                    details=traceback.format_exc(),
                    source=SOURCE_ERROR,
                    task_id=record.task_id,
                )
            )
            return

        logger.info(
            "scheduled_task_completed",
            extra={"task.id": record.task_id, "tool.name": record.tool_name},
        )
        summary = summarize_result(result, self._summary_limit)
        self._report(
            ExecutionEvent(
                status="success",
                tool_name=tool_tag,
                content=(
                    f"Scheduled task {record.task_id} executed.\n"
                    f"Tool response: {summary}"
                ),
                source=SOURCE_OK,
                task_id=record.task_id,
            )
        )

    def _prepare_arguments(self, record: TaskRecord) -> Any:
        # Copy so the stamp never leaks into a renewed record
        arguments = copy.deepcopy(record.arguments)
        if (
            record.tool_name in self._stamp_prompt_tools
            and isinstance(arguments, dict)
            and isinstance(arguments.get("prompt"), str)
        ):
            stamp = format_display_time(
                record.scheduled_local_time, self._store.default_offset
            )
            arguments["prompt"] = f"[Scheduled: {stamp}] {arguments['prompt']}"
        return arguments

    async def _cleanup(self, record: TaskRecord, path: Path) -> None:
        if record.is_recurring:
            await self._renew(record, path)
        else:
            await self._delete(record, path)

    async def _renew(self, record: TaskRecord, path: Path) -> None:
        assert record.interval is not None
        try:
            next_time = advance_scheduled_time(
                record.scheduled_local_time,
                record.interval,
                self._store.default_offset,
            )
            renewed = copy.deepcopy(record)
            renewed.scheduled_local_time = next_time

            # The file is about to change; no timer may outlive this run
            self._registry.cancel(record.task_id)

            # Deleted while firing: the deleter wins, do not resurrect it
            if not self._store.exists(path):
                logger.info(
                    "recurring_task_deleted_while_firing",
                    extra={"task.id": record.task_id, "file.path": str(path)},
                )
                return

            await self._store.rewrite(path, renewed)
            logger.info(
                "recurring_task_renewed",
                extra={"task.id": record.task_id, "task.next_trigger": next_time},
            )
        except Exception as e:
            logger.error(
                "recurring_task_renewal_failed",
                extra={"task.id": record.task_id, "error.message": str(e)},
                exc_info=True,
            )
            await self._delete(record, path)

    async def _delete(self, record: TaskRecord, path: Path) -> None:
        try:
            removed = await self._store.delete(path)
        except OSError as e:
            # Lingers until the next startup scan fires it again
            logger.error(
                "task_file_delete_failed",
                extra={
                    "task.id": record.task_id,
                    "file.path": str(path),
                    "error.message": str(e),
                },
            )
            return
        if removed:
            logger.info(
                "task_file_deleted",
                extra={"task.id": record.task_id, "file.name": path.name},
            )
        else:
            logger.debug("task_file_already_gone", extra={"file.name": path.name})

    def _report(self, event: ExecutionEvent) -> None:
        try:
            self._notifier.report(event)
        except Exception as e:
            logger.warning("notifier_failed", extra={"error.message": str(e)})
