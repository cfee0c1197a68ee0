"""Tests for execution event notifiers."""

import json
import logging

from chime.scheduling.notifiers import CompositeNotifier, JSONLNotifier, LogNotifier
from chime.scheduling.types import ExecutionEvent
from tests.conftest import RecordingNotifier


def _event(status: str = "success") -> ExecutionEvent:
    return ExecutionEvent(
        status=status,
        tool_name="Echo (Timed)",
        content=f"Scheduled task a {status}",
        source="task_scheduler_executor",
        task_id="a",
    )


class TestLogNotifier:
    def test_success_logged_at_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="chime.scheduling.notifiers"):
            LogNotifier().report(_event())

        [record] = caplog.records
        assert record.levelno == logging.INFO
        assert record.getMessage() == "Scheduled task a success"

    def test_error_logged_at_error(self, caplog):
        with caplog.at_level(logging.INFO, logger="chime.scheduling.notifiers"):
            LogNotifier().report(_event("error"))

        assert caplog.records[0].levelno == logging.ERROR


class TestJSONLNotifier:
    def test_appends_lines(self, tmp_path):
        path = tmp_path / "events" / "events.jsonl"
        notifier = JSONLNotifier(path)

        notifier.report(_event())
        notifier.report(_event("error"))

        lines = path.read_text().splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["status"] == "success"
        assert first["task_id"] == "a"
        assert first["category"] == "task_scheduler"
        assert "timestamp" in first


class TestCompositeNotifier:
    def test_fans_out(self):
        a, b = RecordingNotifier(), RecordingNotifier()
        CompositeNotifier([a, b]).report(_event())
        assert len(a.events) == len(b.events) == 1

    def test_failing_notifier_does_not_stop_others(self):
        class Broken:
            def report(self, event) -> None:
                raise RuntimeError("boom")

        recording = RecordingNotifier()
        CompositeNotifier([Broken(), recording]).report(_event())
        assert len(recording.events) == 1
