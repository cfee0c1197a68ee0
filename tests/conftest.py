"""Shared test fixtures and factories."""

import asyncio
import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from chime.config.paths import ENV_VAR, get_chime_home
from chime.scheduling.store import TaskStore
from chime.scheduling.types import ExecutionEvent

# =============================================================================
# Environment
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_home(monkeypatch, tmp_path: Path) -> Path:
    """Point CHIME_HOME at a temp dir so nothing touches ~/.chime."""
    home = tmp_path / "chime-home"
    monkeypatch.setenv(ENV_VAR, str(home))
    monkeypatch.delenv("CHIME_TASKS_DIR", raising=False)
    monkeypatch.delenv("CHIME_LOG_LEVEL", raising=False)
    monkeypatch.chdir(tmp_path)
    get_chime_home.cache_clear()
    yield home
    get_chime_home.cache_clear()


# =============================================================================
# Task Store Fixtures
# =============================================================================


@pytest.fixture
def tasks_dir(tmp_path: Path) -> Path:
    directory = tmp_path.resolve() / "tasks"
    directory.mkdir()
    return directory


@pytest.fixture
def store(tasks_dir: Path) -> TaskStore:
    return TaskStore(tasks_dir)


def iso(moment: datetime, offset: str = "+08:00") -> str:
    """Render an instant as task time text in ``offset``, keeping microseconds."""
    sign = 1 if offset[0] == "+" else -1
    delta = timedelta(hours=int(offset[1:3]), minutes=int(offset[4:6])) * sign
    local = moment.astimezone(UTC) + delta
    return local.strftime("%Y-%m-%dT%H:%M:%S.%f") + offset


def in_seconds(seconds: float) -> str:
    """Canonical time ``seconds`` from now (negative for the past)."""
    return iso(datetime.now(UTC) + timedelta(seconds=seconds))


def make_task(
    task_id: str = "t1",
    scheduled: str = "2030-01-01T10:00:00+08:00",
    tool_name: str = "Echo",
    arguments: Any = None,
    interval: Any = None,
    **extra: Any,
) -> dict[str, Any]:
    data: dict[str, Any] = {"taskId": task_id, "scheduledLocalTime": scheduled}
    if interval is not None:
        data["interval"] = interval
    data["tool_call"] = {
        "tool_name": tool_name,
        "arguments": {"text": "hello"} if arguments is None else arguments,
    }
    data.update(extra)
    return data


@pytest.fixture
def write_task(tasks_dir: Path) -> Callable[..., Path]:
    """Write a task file directly, the way an external writer would."""

    def _write(data: dict[str, Any] | str, name: str | None = None) -> Path:
        if isinstance(data, dict):
            text = json.dumps(data)
            name = name or f"{data.get('taskId', 'task')}.json"
        else:
            text = data
            name = name or "task.json"
        path = tasks_dir / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


# =============================================================================
# Collaborator Fakes
# =============================================================================


class FakeInvoker:
    """Tool backend that records calls and returns a canned result."""

    def __init__(
        self,
        result: Any = "done",
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.result = result
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, Any]] = []
        self.on_invoke: Callable[[str, Any], None] | None = None

    async def invoke(self, tool_name: str, arguments: Any) -> Any:
        self.calls.append((tool_name, arguments))
        if self.on_invoke is not None:
            self.on_invoke(tool_name, arguments)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class RecordingNotifier:
    """Notifier that keeps every event."""

    def __init__(self) -> None:
        self.events: list[ExecutionEvent] = []

    def report(self, event: ExecutionEvent) -> None:
        self.events.append(event)

    @property
    def errors(self) -> list[ExecutionEvent]:
        return [e for e in self.events if e.status == "error"]

    @property
    def successes(self) -> list[ExecutionEvent]:
        return [e for e in self.events if e.status == "success"]


class FakeClock:
    """Controllable clock; starts at the real current time."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


async def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    """Poll until ``predicate`` holds, failing the test after ``timeout``."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


# =============================================================================
# CLI Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})
