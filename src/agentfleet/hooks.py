"""Tool-use hooks run by agent sessions.

The agent host invokes a hook command around every tool call and once when
an agent finishes its task, passing a JSON object on stdin::

    {"session_id": "...", "cwd": "...", "hook_event_name": "PreToolUse",
     "tool_name": "Edit", "tool_input": {"file_path": "src/app.py", ...}}

``pre_tool`` takes a lock on every file the tool will touch and refuses the
call if any is held by another session. ``post_tool`` releases them.
``agent_complete`` marks the agent Idle and tells the orchestrator.
"""

from __future__ import annotations

import json
import os
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from agentfleet.agents.registry import AgentRegistry
from agentfleet.agents.schema import AgentStatus
from agentfleet.errors import AgentNotFoundError
from agentfleet.locks.manager import LockManager
from agentfleet.logging import get_logger
from agentfleet.notify.protocol import Notifier

log = get_logger("hooks")

FILE_WRITING_TOOLS = frozenset({"Edit", "MultiEdit", "Write", "NotebookEdit"})
FILE_READING_TOOLS = frozenset({"Read", "NotebookRead"})
LOCKING_TOOLS = FILE_WRITING_TOOLS | FILE_READING_TOOLS

# Chance that a post-tool hook also sweeps expired locks
CLEANUP_PROBABILITY = 0.1


@dataclass
class HookEvent:
    """Parsed hook payload."""

    session_id: str
    tool_name: str | None = None
    tool_input: dict[str, Any] = field(default_factory=dict)
    cwd: str | None = None
    hook_event_name: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HookEvent:
        session_id = data.get("session_id")
        if not session_id:
            raise ValueError("Hook data has no session_id")
        tool_input = data.get("tool_input") or data.get("tool_arguments") or {}
        return cls(
            session_id=str(session_id),
            tool_name=data.get("tool_name") or None,
            tool_input=tool_input if isinstance(tool_input, dict) else {},
            cwd=data.get("cwd") or None,
            hook_event_name=data.get("hook_event_name"),
        )

    @classmethod
    def from_json(cls, text: str) -> HookEvent:
        if not text.strip():
            raise ValueError("No hook data received on stdin")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid hook JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Hook data must be a JSON object")
        return cls.from_dict(data)


@dataclass
class HookResult:
    """Outcome of a hook. ``allowed`` False blocks the tool call."""

    allowed: bool = True
    message: str = ""
    paths: list[str] = field(default_factory=list)


def extract_file_paths(
    tool_name: str | None,
    tool_input: dict[str, Any],
    cwd: str | None = None,
) -> list[str]:
    """Absolute paths a file tool will touch; empty for other tools."""
    if tool_name not in LOCKING_TOOLS:
        return []
    path = tool_input.get("file_path") or tool_input.get("notebook_path")
    if not path or not isinstance(path, str):
        return []
    if cwd and not os.path.isabs(path):
        path = os.path.join(cwd, path)
    return [os.path.abspath(path)]


def _agent_name(registry: AgentRegistry, session_id: str) -> str | None:
    agent = registry.find_by_session(session_id)
    return agent.name if agent else None


def pre_tool(event: HookEvent, locks: LockManager, registry: AgentRegistry) -> HookResult:
    """Lock every file the tool will touch, all or nothing."""
    paths = extract_file_paths(event.tool_name, event.tool_input, event.cwd)
    if not paths:
        return HookResult()

    agent_name = _agent_name(registry, event.session_id)
    acquired: list[str] = []
    for path in paths:
        result = locks.acquire(path, event.session_id, event.tool_name or "", agent_name)
        if not result.granted:
            for held in acquired:
                locks.release(held, event.session_id)
            log.info("Blocked %s on %s: %s", event.tool_name, path, result.reason)
            return HookResult(
                allowed=False,
                message=(
                    f"Failed to acquire lock for file {path}, cannot proceed with "
                    f"{event.tool_name} operation ({result.reason}). "
                    "Please wait for a short time and then try again."
                ),
                paths=acquired,
            )
        acquired.append(path)
        log.debug("Acquired lock: %s", path)

    return HookResult(paths=acquired)


def post_tool(
    event: HookEvent,
    locks: LockManager,
    *,
    cleanup_probability: float = CLEANUP_PROBABILITY,
    rng: Callable[[], float] = random.random,
) -> HookResult:
    """Release the locks taken by ``pre_tool``; sometimes sweep expired locks."""
    paths = extract_file_paths(event.tool_name, event.tool_input, event.cwd)
    released: list[str] = []
    for path in paths:
        if locks.release(path, event.session_id):
            released.append(path)
            log.debug("Released lock: %s", path)
        else:
            log.warning("Could not release lock: %s (not owned or already released)", path)

    if paths and rng() < cleanup_probability:
        cleaned = locks.cleanup_expired()
        if cleaned:
            log.info("Cleaned up %d expired lock(s)", cleaned)

    return HookResult(paths=released)


async def agent_complete(
    event: HookEvent,
    registry: AgentRegistry,
    notifier: Notifier,
) -> HookResult:
    """Mark the session's agent Idle and notify the orchestrator.

    The agent's current task is kept so it still shows what it last did.

    Raises:
        AgentNotFoundError: If no agent owns the session.
        InvalidTransitionError: If the agent is Stalled.
    """
    agent = registry.find_by_session(event.session_id)
    if agent is None:
        raise AgentNotFoundError(f"session {event.session_id}")

    registry.update_status(agent.name, AgentStatus.IDLE)
    await notifier.notify("agent_completed", "Agent task completed successfully", agent.name)
    return HookResult(message=f"Agent '{agent.name}' marked as idle and orchestrator notified")
