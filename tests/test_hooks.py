"""Tests for the tool-use hooks."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from agentfleet.agents import AgentRegistry, AgentStatus
from agentfleet.errors import AgentNotFoundError, InvalidTransitionError
from agentfleet.hooks import (
    HookEvent,
    agent_complete,
    extract_file_paths,
    post_tool,
    pre_tool,
)
from agentfleet.locks import LockManager


@pytest.fixture
def registry(state_dir: Path, clock) -> AgentRegistry:
    registry = AgentRegistry(state_dir, clock=clock)
    registry.create("dev", "S1")
    registry.create("qa", "S2")
    return registry


@pytest.fixture
def locks(state_dir: Path, tmp_path: Path, clock) -> LockManager:
    return LockManager(state_dir, cwd=str(tmp_path), clock=clock)


def edit_event(session_id: str, path: str, tool: str = "Edit", cwd: str | None = None) -> HookEvent:
    return HookEvent(session_id=session_id, tool_name=tool, tool_input={"file_path": path}, cwd=cwd)


class TestHookEvent:
    """Tests for hook payload parsing."""

    def test_from_json(self) -> None:
        event = HookEvent.from_json(
            json.dumps(
                {
                    "session_id": "S1",
                    "cwd": "/work",
                    "hook_event_name": "PreToolUse",
                    "tool_name": "Write",
                    "tool_input": {"file_path": "a.py", "content": "x"},
                }
            )
        )
        assert event.session_id == "S1"
        assert event.tool_name == "Write"
        assert event.tool_input["file_path"] == "a.py"
        assert event.cwd == "/work"

    def test_tool_arguments_alias(self) -> None:
        event = HookEvent.from_dict(
            {"session_id": "S1", "tool_name": "Read", "tool_arguments": {"file_path": "/a"}}
        )
        assert event.tool_input == {"file_path": "/a"}

    @pytest.mark.parametrize("text", ["", "   ", "[1, 2]", "{bad", '{"tool_name": "Edit"}'])
    def test_invalid_payloads(self, text: str) -> None:
        with pytest.raises(ValueError):
            HookEvent.from_json(text)


class TestExtractFilePaths:
    """Tests for mapping tool calls to locked paths."""

    @pytest.mark.parametrize("tool", ["Edit", "MultiEdit", "Write", "Read"])
    def test_file_tools(self, tool: str) -> None:
        assert extract_file_paths(tool, {"file_path": "/p/a.py"}) == ["/p/a.py"]

    def test_notebook_path(self) -> None:
        assert extract_file_paths("NotebookEdit", {"notebook_path": "/p/n.ipynb"}) == [
            "/p/n.ipynb"
        ]

    def test_relative_uses_cwd(self) -> None:
        assert extract_file_paths("Edit", {"file_path": "src/a.py"}, "/work") == [
            "/work/src/a.py"
        ]

    @pytest.mark.parametrize(
        "tool, args",
        [("Bash", {"command": "ls"}), (None, {}), ("Edit", {}), ("Edit", {"file_path": 3})],
    )
    def test_no_paths(self, tool, args) -> None:
        assert extract_file_paths(tool, args) == []


class TestPreTool:
    """Tests for lock acquisition before a tool call."""

    def test_acquires_with_agent_name(self, locks, registry, tmp_path: Path) -> None:
        target = str(tmp_path / "a.py")

        result = pre_tool(edit_event("S1", target), locks, registry)

        assert result.allowed
        assert result.paths == [target]
        record = locks.check(target)
        assert record.owner_agent_name == "dev"
        assert record.operation == "Edit"

    def test_blocks_on_foreign_lock(self, locks, registry, tmp_path: Path) -> None:
        target = str(tmp_path / "a.py")
        pre_tool(edit_event("S1", target), locks, registry)

        result = pre_tool(edit_event("S2", target, tool="Write"), locks, registry)

        assert not result.allowed
        assert target in result.message
        assert "Write" in result.message
        assert locks.check(target).owner_session_id == "S1"

    def test_reentrant_for_same_session(self, locks, registry, tmp_path: Path) -> None:
        target = str(tmp_path / "a.py")
        pre_tool(edit_event("S1", target), locks, registry)
        assert pre_tool(edit_event("S1", target, tool="Read"), locks, registry).allowed

    def test_unregistered_session_still_locks(self, locks, registry, tmp_path: Path) -> None:
        target = str(tmp_path / "a.py")
        assert pre_tool(edit_event("S9", target), locks, registry).allowed
        assert locks.check(target).owner_agent_name is None

    def test_non_file_tool_is_allowed(self, locks, registry) -> None:
        event = HookEvent(session_id="S1", tool_name="Bash", tool_input={"command": "ls"})
        assert pre_tool(event, locks, registry).allowed
        assert locks.list_locks() == []


class TestPostTool:
    """Tests for lock release after a tool call."""

    def test_releases_own_lock(self, locks, registry, tmp_path: Path) -> None:
        target = str(tmp_path / "a.py")
        pre_tool(edit_event("S1", target), locks, registry)

        result = post_tool(edit_event("S1", target), locks, rng=lambda: 1.0)

        assert result.paths == [target]
        assert locks.check(target) is None

    def test_does_not_release_foreign_lock(self, locks, registry, tmp_path: Path) -> None:
        target = str(tmp_path / "a.py")
        pre_tool(edit_event("S1", target), locks, registry)

        result = post_tool(edit_event("S2", target), locks, rng=lambda: 1.0)

        assert result.paths == []
        assert locks.check(target).owner_session_id == "S1"

    def test_occasional_cleanup(self, locks, registry, clock, tmp_path: Path) -> None:
        stale = str(tmp_path / "stale.py")
        locks.acquire(stale, "S2", "Edit")
        clock.advance(minutes=30)
        target = str(tmp_path / "a.py")
        pre_tool(edit_event("S1", target), locks, registry)

        post_tool(edit_event("S1", target), locks, rng=lambda: 0.0)

        assert locks.check(stale) is None


class TestAgentComplete:
    """Tests for the completion hook."""

    @pytest.mark.asyncio
    async def test_marks_idle_and_notifies(self, registry, notifier, clock) -> None:
        registry.update_status("dev", AgentStatus.WORKING)
        registry.set_task("dev", "Fix login")
        clock.advance(minutes=3)

        result = await agent_complete(HookEvent(session_id="S1"), registry, notifier)

        record = registry.find("dev")
        assert record.status is AgentStatus.IDLE
        assert record.current_task == "Fix login"
        assert record.last_activity == clock.now
        assert notifier.events() == [("agent_completed", "dev")]
        assert "dev" in result.message

    @pytest.mark.asyncio
    async def test_unknown_session(self, registry, notifier) -> None:
        with pytest.raises(AgentNotFoundError):
            await agent_complete(HookEvent(session_id="S9"), registry, notifier)
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_stalled_agent_cannot_complete(self, registry, notifier) -> None:
        registry.update_status("dev", AgentStatus.WORKING)
        registry.update_status("dev", AgentStatus.STALLED)
        with pytest.raises(InvalidTransitionError):
            await agent_complete(HookEvent(session_id="S1"), registry, notifier)
