"""Task management commands.

These write task files directly; a running ``chime serve`` picks the changes
up through its directory watcher.
"""

import json
import uuid
from datetime import UTC, datetime
from typing import Annotated, Any

import typer
from rich.markup import escape

from chime.cli.console import console, create_table, dim, error, success, warning

task_app = typer.Typer(
    name="task",
    help="Create, edit, delete and list scheduled tasks",
    no_args_is_help=True,
)


def _get_store():
    from chime.config import load_config
    from chime.scheduling import TaskStore

    config = load_config()
    return TaskStore(config.scheduler.tasks_dir, config.scheduler.default_offset)


def _parse_arguments(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        error(f"--args is not valid JSON: {e}")
        raise typer.Exit(1) from None


def _normalize_time(raw: str, default_offset: str) -> str:
    from chime.scheduling.timestamps import (
        InvalidTimestampError,
        normalize_scheduled_time,
    )

    try:
        return normalize_scheduled_time(raw, default_offset)
    except InvalidTimestampError as e:
        error(str(e))
        raise typer.Exit(1) from None


def _format_countdown(due: datetime, now: datetime) -> str:
    """Format a countdown string for the next fire time."""
    if due <= now:
        return "[red]overdue[/red]"

    total_seconds = int((due - now).total_seconds())
    if total_seconds < 60:
        return f"in {total_seconds}s"

    total_minutes = total_seconds // 60
    if total_minutes < 60:
        return f"in {total_minutes}m"

    hours = total_minutes // 60
    minutes = total_minutes % 60
    if hours < 24:
        if minutes:
            return f"in {hours}h {minutes}m"
        return f"in {hours}h"

    days = hours // 24
    hours = hours % 24
    if hours:
        return f"in {days}d {hours}h"
    return f"in {days}d"


def _summarize_arguments(arguments: Any, limit: int = 40) -> str:
    text = json.dumps(arguments, ensure_ascii=False)
    return text[:limit] + "..." if len(text) > limit else text


@task_app.command("create")
def create(
    time: Annotated[
        str,
        typer.Option(
            "--time",
            "-t",
            help="Trigger time: ISO 8601 with offset, or YYYY-MM-DD-HH:mm",
        ),
    ],
    tool: Annotated[
        str,
        typer.Option("--tool", help="Tool to invoke when the task fires"),
    ],
    args: Annotated[
        str,
        typer.Option("--args", "-a", help="Tool arguments as JSON"),
    ],
    task_id: Annotated[
        str | None,
        typer.Option("--id", "-i", help="Task id (generated when omitted)"),
    ] = None,
    interval: Annotated[
        int | None,
        typer.Option("--interval", help="Repeat every N seconds"),
    ] = None,
) -> None:
    """Create a task.

    Examples:
        chime task create -t 2026-01-01-10:00 --tool Echo -a '{"text": "hi"}'
        chime task create -t 2026-01-01T09:00:00+08:00 --tool Echo -a '{}' --interval 86400
    """
    from chime.scheduling import TaskExistsError, TaskRecord

    store = _get_store()
    if interval is not None and interval <= 0:
        error("--interval must be a positive integer (seconds)")
        raise typer.Exit(1)
    if not tool.strip():
        error("--tool must not be empty")
        raise typer.Exit(1)

    record = TaskRecord(
        task_id=(task_id or "").strip() or str(uuid.uuid4()),
        scheduled_local_time=_normalize_time(time, store.default_offset),
        tool_name=tool.strip(),
        arguments=_parse_arguments(args),
        interval=interval,
    )

    try:
        path = store.create(record)
    except TaskExistsError as e:
        error(str(e))
        raise typer.Exit(1) from None

    success(f"Created task {record.task_id}")
    dim(f"  Fires at: {record.scheduled_local_time}")
    if record.is_recurring:
        dim(f"  Repeats every {record.interval}s")
    dim(f"  File: {path}")


@task_app.command("edit")
def edit(
    task_id: Annotated[
        str,
        typer.Option("--id", "-i", help="Task id to edit"),
    ],
    time: Annotated[
        str | None,
        typer.Option("--time", "-t", help="New trigger time"),
    ] = None,
    tool: Annotated[
        str | None,
        typer.Option("--tool", help="New tool name"),
    ] = None,
    args: Annotated[
        str | None,
        typer.Option("--args", "-a", help="New tool arguments as JSON"),
    ] = None,
    interval: Annotated[
        int | None,
        typer.Option("--interval", help="New interval in seconds (0 removes)"),
    ] = None,
) -> None:
    """Edit fields of an existing task."""
    from chime.scheduling import TaskNotFoundError

    store = _get_store()
    changes: dict[str, Any] = {}
    if time is not None:
        changes["scheduled_local_time"] = _normalize_time(time, store.default_offset)
    if tool is not None:
        changes["tool_name"] = tool.strip()
    if args is not None:
        changes["arguments"] = _parse_arguments(args)
    if interval is not None:
        changes["interval"] = interval

    try:
        record = store.update(task_id, **changes)
    except TaskNotFoundError as e:
        error(str(e))
        raise typer.Exit(1) from None
    except ValueError as e:
        error(str(e))
        raise typer.Exit(1) from None

    success(f"Updated task {record.task_id}")
    dim(f"  Fires at: {record.scheduled_local_time}")
    if record.is_recurring:
        dim(f"  Repeats every {record.interval}s")


@task_app.command("delete")
def delete(
    task_ids: Annotated[
        str,
        typer.Option("--id", "-i", help="Task id, or several separated by commas"),
    ],
) -> None:
    """Delete one or more tasks."""
    ids = [part.strip() for part in task_ids.split(",") if part.strip()]
    if not ids:
        error("--id must name at least one task")
        raise typer.Exit(1)

    store = _get_store()
    failed = 0
    for task_id in ids:
        try:
            removed = store.remove(task_id)
        except OSError as e:
            error(f"{task_id}: {e}")
            failed += 1
            continue
        if removed:
            success(f"Deleted {task_id}")
        else:
            error(f"{task_id}: not found")
            failed += 1

    if failed:
        raise typer.Exit(1)


@task_app.command("list")
def list_tasks() -> None:
    """List tasks sorted by trigger time."""
    store = _get_store()
    records = [record for _, record in store.records()]

    if not records:
        warning("No scheduled tasks found")
        return

    now = datetime.now(UTC)
    records.sort(key=lambda r: r.due_at(store.default_offset))

    table = create_table(
        None,
        [
            ("ID", "dim"),
            ("Fires At", ""),
            ("Status", ""),
            ("Loop", ""),
            ("Tool", "cyan"),
            ("Arguments", ""),
        ],
    )
    for record in records:
        due = record.due_at(store.default_offset)
        table.add_row(
            record.task_id,
            record.scheduled_local_time,
            _format_countdown(due, now),
            f"every {record.interval}s" if record.is_recurring else "-",
            record.tool_name,
            escape(_summarize_arguments(record.arguments)),
        )

    console.print(table)
    dim(f"Total: {len(records)} task(s)")


@task_app.command("renew")
def renew(
    task_id: Annotated[
        str,
        typer.Option("--id", "-i", help="Recurring task id"),
    ],
) -> None:
    """Advance a recurring task by one interval without firing it."""
    from chime.scheduling import TaskNotFoundError

    store = _get_store()
    try:
        record = store.renew(task_id)
    except (TaskNotFoundError, ValueError) as e:
        error(str(e))
        raise typer.Exit(1) from None

    success(f"Renewed task {record.task_id}")
    dim(f"  Next fire: {record.scheduled_local_time}")


def register(app: typer.Typer) -> None:
    """Register the task command group."""
    app.add_typer(task_app)
