"""Tests for firing a task and settling its file."""

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from chime.scheduling.executor import (
    EMPTY_RESULT_SUMMARY,
    SOURCE_ERROR,
    SOURCE_OK,
    TaskExecutor,
    summarize_result,
)
from chime.scheduling.registry import ScheduledEntry, ScheduleRegistry
from tests.conftest import FakeInvoker, RecordingNotifier, make_task


class FakeHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


@pytest.fixture
def registry() -> ScheduleRegistry:
    return ScheduleRegistry()


def _executor(store, registry, invoker, notifier, **kwargs) -> TaskExecutor:
    return TaskExecutor(store, registry, invoker, notifier, **kwargs)


class TestSummarizeResult:
    def test_text(self):
        assert summarize_result("done") == "done"

    def test_dict_as_json(self):
        assert summarize_result({"a": 1}) == '{"a": 1}'

    def test_empty(self):
        assert summarize_result(None) == EMPTY_RESULT_SUMMARY
        assert summarize_result("") == EMPTY_RESULT_SUMMARY

    def test_truncates(self):
        assert summarize_result("x" * 1000, limit=10) == "x" * 10


class TestOneShotExecution:
    @pytest.mark.asyncio
    async def test_success_reports_and_deletes(
        self, store, registry, invoker, notifier, write_task
    ):
        path = write_task(make_task("a", arguments={"text": "hi"}))
        record = store.read(path)

        await _executor(store, registry, invoker, notifier).run(record, path)

        assert invoker.calls == [("Echo", {"text": "hi"})]
        assert not path.exists()
        [event] = notifier.events
        assert event.status == "success"
        assert event.tool_name == "Echo (Timed)"
        assert event.source == SOURCE_OK
        assert event.task_id == "a"
        assert event.content == "Scheduled task a executed.\nTool response: done"

    @pytest.mark.asyncio
    async def test_failure_reports_and_still_deletes(
        self, store, registry, notifier, write_task
    ):
        path = write_task(make_task("a"))
        record = store.read(path)
        invoker = FakeInvoker(error=RuntimeError("backend down"))

        await _executor(store, registry, invoker, notifier).run(record, path)

        assert not path.exists()
        [event] = notifier.events
        assert event.status == "error"
        assert event.source == SOURCE_ERROR
        assert "Scheduled task a failed: backend down" == event.content
        assert "RuntimeError" in event.details

    @pytest.mark.asyncio
    async def test_file_already_gone(self, store, registry, invoker, notifier, write_task):
        path = write_task(make_task("a"))
        record = store.read(path)
        invoker.on_invoke = lambda *_: path.unlink()

        await _executor(store, registry, invoker, notifier).run(record, path)

        assert len(notifier.successes) == 1

    @pytest.mark.asyncio
    async def test_summary_limit(self, store, registry, notifier, write_task):
        path = write_task(make_task("a"))
        invoker = FakeInvoker(result="y" * 50)

        await _executor(store, registry, invoker, notifier, summary_limit=5).run(
            store.read(path), path
        )

        assert notifier.events[0].content.endswith("Tool response: yyyyy")

    @pytest.mark.asyncio
    async def test_empty_result(self, store, registry, notifier, write_task):
        path = write_task(make_task("a"))
        invoker = FakeInvoker(result=None)

        await _executor(store, registry, invoker, notifier).run(store.read(path), path)

        assert notifier.events[0].content.endswith(EMPTY_RESULT_SUMMARY)


class TestRecurringExecution:
    @pytest.mark.asyncio
    async def test_success_renews(self, store, registry, invoker, notifier, write_task):
        path = write_task(
            make_task(
                "loop",
                scheduled="2030-01-01T10:00:00+08:00",
                interval=3600,
                owner="me",
            )
        )

        await _executor(store, registry, invoker, notifier).run(store.read(path), path)

        data = json.loads(path.read_text())
        assert data["scheduledLocalTime"] == "2030-01-01T11:00:00+08:00"
        assert data["interval"] == 3600
        assert data["owner"] == "me"
        assert data["tool_call"] == {"tool_name": "Echo", "arguments": {"text": "hello"}}

    @pytest.mark.asyncio
    async def test_failure_still_renews(self, store, registry, notifier, write_task):
        path = write_task(make_task("loop", interval=60))
        invoker = FakeInvoker(error=ValueError("nope"))

        await _executor(store, registry, invoker, notifier).run(store.read(path), path)

        assert path.exists()
        assert store.read(path).scheduled_local_time == "2030-01-01T10:01:00+08:00"
        assert notifier.errors

    @pytest.mark.asyncio
    async def test_renewal_keeps_negative_offset(
        self, store, registry, invoker, notifier, write_task
    ):
        path = write_task(
            make_task("loop", scheduled="2030-01-01T23:00:00-05:00", interval=7200)
        )

        await _executor(store, registry, invoker, notifier).run(store.read(path), path)

        assert store.read(path).scheduled_local_time == "2030-01-02T01:00:00-05:00"

    @pytest.mark.asyncio
    async def test_deleted_while_firing_is_not_resurrected(
        self, store, registry, invoker, notifier, write_task
    ):
        path = write_task(make_task("loop", interval=60))
        invoker.on_invoke = lambda *_: path.unlink()

        await _executor(store, registry, invoker, notifier).run(store.read(path), path)

        assert not path.exists()
        assert list(store.directory.iterdir()) == []

    @pytest.mark.asyncio
    async def test_rewrite_failure_falls_back_to_delete(
        self, store, registry, invoker, notifier, write_task, monkeypatch
    ):
        path = write_task(make_task("loop", interval=60))

        async def broken_rewrite(path: Path, record) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(store, "rewrite", broken_rewrite)

        await _executor(store, registry, invoker, notifier).run(store.read(path), path)

        assert not path.exists()

    @pytest.mark.asyncio
    async def test_renewal_cancels_pending_timer(
        self, store, registry, invoker, notifier, write_task
    ):
        path = write_task(make_task("loop", interval=60))
        handle = FakeHandle()
        registry.add(
            ScheduledEntry(
                task_id="loop",
                due_at=datetime(2030, 1, 1, tzinfo=UTC),
                path=path,
                fingerprint="stale",
                handle=handle,
            )
        )

        await _executor(store, registry, invoker, notifier).run(store.read(path), path)

        assert handle.cancelled
        assert "loop" not in registry


class TestExecutionState:
    @pytest.mark.asyncio
    async def test_firing_cleared_afterwards(
        self, store, registry, invoker, notifier, write_task
    ):
        path = write_task(make_task("a"))
        seen: list[bool] = []
        invoker.on_invoke = lambda *_: seen.append(registry.is_firing("a"))

        await _executor(store, registry, invoker, notifier).run(store.read(path), path)

        assert seen == [True]
        assert not registry.is_firing("a")

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_block_cleanup(
        self, store, registry, invoker, write_task
    ):
        class BrokenNotifier:
            def report(self, event) -> None:
                raise RuntimeError("channel closed")

        path = write_task(make_task("a"))

        await _executor(store, registry, invoker, BrokenNotifier()).run(
            store.read(path), path
        )

        assert not path.exists()


class TestPromptStamp:
    @pytest.mark.asyncio
    async def test_stamps_prompt_for_agent_tool(
        self, store, registry, invoker, notifier, write_task
    ):
        path = write_task(
            make_task(
                "agent",
                scheduled="2030-01-01T10:00:00+08:00",
                tool_name="AgentAssistant",
                arguments={"prompt": "summarize the news", "agent": "ava"},
                interval=86400,
            )
        )

        await _executor(store, registry, invoker, notifier).run(store.read(path), path)

        [(_, arguments)] = invoker.calls
        assert arguments["prompt"] == (
            "[Scheduled: 2030-01-01 10:00:00] summarize the news"
        )
        assert arguments["agent"] == "ava"
        # The renewed file keeps the original prompt
        assert store.read(path).arguments["prompt"] == "summarize the news"

    @pytest.mark.asyncio
    async def test_other_tools_untouched(
        self, store, registry, invoker, notifier, write_task
    ):
        path = write_task(make_task("a", arguments={"prompt": "hi"}))

        await _executor(store, registry, invoker, notifier).run(store.read(path), path)

        assert invoker.calls == [("Echo", {"prompt": "hi"})]

    @pytest.mark.asyncio
    async def test_configurable_tool_list(
        self, store, registry, invoker, notifier, write_task
    ):
        path = write_task(make_task("a", arguments={"prompt": "hi"}))
        executor = _executor(
            store, registry, invoker, notifier, stamp_prompt_tools=["Echo"]
        )

        await executor.run(store.read(path), path)

        assert invoker.calls[0][1]["prompt"].startswith("[Scheduled: ")
