"""Root pytest configuration for all tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from agentfleet.config import reset_config
from agentfleet.errors import ExternalCollaboratorError
from agentfleet.logging import reset_logging

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


class FakeClock:
    """Settable clock for tests that need to move time forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 17, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def state_dir(tmp_path):
    return tmp_path / ".agentfleet"


@pytest.fixture(autouse=True)
def _isolate_global_state(monkeypatch, tmp_path):
    """Keep AF_* environment, user config and one-shot logging state out of tests."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for var in (
        "AF_LOG",
        "AF_STATE_DIR",
        "AF_CHECK_INTERVAL",
        "AF_STALL_TIMEOUT",
        "AF_CAPTURE_LINES",
        "AF_LOCK_TIMEOUT",
    ):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    reset_logging()
    yield
    reset_config()
    reset_logging()


class FakeTerminal:
    """In-memory TerminalSessions: session handle -> current output."""

    def __init__(self) -> None:
        self.sessions: dict[str, str] = {}
        self.sent: list[tuple[str, str]] = []
        self.terminated: list[str] = []
        self.failing: set[str] = set()

    def _check(self, handle: str) -> None:
        if handle in self.failing:
            raise ExternalCollaboratorError(f"terminal failure for {handle}")

    async def session_exists(self, handle: str) -> bool:
        return handle in self.sessions

    async def capture_output(self, handle: str, max_lines: int) -> str:
        self._check(handle)
        if handle not in self.sessions:
            raise ExternalCollaboratorError(f"no session {handle}")
        return self.sessions[handle]

    async def send_text(self, handle: str, text: str) -> None:
        self._check(handle)
        self.sent.append((handle, text))

    async def terminate_session(self, handle: str) -> None:
        self._check(handle)
        self.terminated.append(handle)
        self.sessions.pop(handle, None)


class FakeNotifier:
    """Notifier that records every call."""

    def __init__(self, result: bool = True) -> None:
        self.calls: list[tuple[str, str, str | None]] = []
        self.result = result

    async def notify(self, event_type: str, message: str, agent_name: str | None = None) -> bool:
        self.calls.append((event_type, message, agent_name))
        return self.result

    def events(self) -> list[tuple[str, str | None]]:
        return [(event, agent) for event, _, agent in self.calls]


@pytest.fixture
def terminal() -> FakeTerminal:
    return FakeTerminal()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()
