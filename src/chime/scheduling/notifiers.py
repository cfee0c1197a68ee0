"""Notifiers: where execution events go.

Reporting is fire-and-forget: the scheduler logs and ignores a notifier
that raises.
"""

import json
import logging
from collections.abc import Iterable
from pathlib import Path

from chime.scheduling.types import ExecutionEvent, Notifier

logger = logging.getLogger(__name__)


class LogNotifier:
    """Writes each event to the log."""

    def report(self, event: ExecutionEvent) -> None:
        level = logging.INFO if event.status == "success" else logging.ERROR
        logger.log(
            level,
            event.content,
            extra={
                "event.category": event.category,
                "event.source": event.source,
                "tool.name": event.tool_name,
                "task.id": event.task_id,
            },
        )


class JSONLNotifier:
    """Appends each event as one JSON line, for observers that tail the file.

    Example:
        tail -f ~/.chime/events.jsonl | jq .
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def report(self, event: ExecutionEvent) -> None:
        line = json.dumps(event.to_dict(), ensure_ascii=False, separators=(",", ":"))
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")


class CompositeNotifier:
    """Fans an event out to several notifiers; one failing does not stop the rest."""

    def __init__(self, notifiers: Iterable[Notifier]) -> None:
        self._notifiers = list(notifiers)

    def report(self, event: ExecutionEvent) -> None:
        for notifier in self._notifiers:
            try:
                notifier.report(event)
            except Exception as e:
                logger.warning(
                    "notifier_failed",
                    extra={
                        "notifier": type(notifier).__name__,
                        "error.message": str(e),
                    },
                )
