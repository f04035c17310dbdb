"""Recovery of stalled and crashed agents.

Both recovery paths end in the same state: the agent's locks released, its
registry record removed and the orchestrator notified. Every step runs even
when an earlier one fails, so a second recovery of the same agent (or one
racing with an explicit close) finishes quietly.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from agentfleet.agents.registry import AgentRegistry
from agentfleet.locks.manager import LockManager
from agentfleet.logging import get_logger
from agentfleet.notify.protocol import Notifier
from agentfleet.terminal.protocol import TerminalSessions

log = get_logger("recovery")

RecoveryReason = Literal["stalled", "crashed"]

# Returned by a failed recovery step
_FAILED: Any = object()


@dataclass
class RecoveryReport:
    """What a recovery run did, step by step."""

    agent_name: str
    reason: RecoveryReason
    session_id: str | None = None
    terminated: bool = False
    locks_released: int = 0
    removed: bool = False
    notified: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        """True if no step failed."""
        return not self.warnings

    def to_dict(self) -> dict[str, Any]:
        return {
            "agentName": self.agent_name,
            "reason": self.reason,
            "sessionId": self.session_id,
            "terminated": self.terminated,
            "locksReleased": self.locks_released,
            "removed": self.removed,
            "notified": self.notified,
            "warnings": list(self.warnings),
        }


class RecoveryCoordinator:
    """Terminates dead agents and reclaims what they held.

    Never raises: failures are logged as warnings and collected on the
    returned ``RecoveryReport``.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        locks: LockManager,
        terminal: TerminalSessions,
        notifier: Notifier,
        *,
        exit_text: str = "/exit",
        grace_seconds: float = 2.0,
    ) -> None:
        """Initialize the coordinator.

        Args:
            registry: Agent registry to remove records from
            locks: Lock manager to release the agent's locks from
            terminal: Terminal sessions; the agent name is the session handle
            notifier: Orchestrator notifier
            exit_text: Text typed into a stalled session to ask it to exit
            grace_seconds: Wait between the exit request and forced termination
        """
        self._registry = registry
        self._locks = locks
        self._terminal = terminal
        self._notifier = notifier
        self._exit_text = exit_text
        self._grace_seconds = grace_seconds

    async def handle_stalled(self, agent_name: str) -> RecoveryReport:
        """Stop a stalled agent's session, then reclaim its resources."""
        log.info("Recovering stalled agent '%s'", agent_name)
        report = RecoveryReport(agent_name=agent_name, reason="stalled")
        await self._lookup_session(report)

        await self._step(
            report, "request exit", self._terminal.send_text, agent_name, self._exit_text
        )
        await asyncio.sleep(self._grace_seconds)
        terminated = await self._step(
            report, "terminate session", self._terminal.terminate_session, agent_name
        )
        report.terminated = terminated is not _FAILED

        await self._reclaim(report, "Agent was stalled and has been cleaned up")
        return report

    async def handle_crashed(self, agent_name: str) -> RecoveryReport:
        """Reclaim the resources of an agent whose session is already gone."""
        log.info("Recovering crashed agent '%s'", agent_name)
        report = RecoveryReport(agent_name=agent_name, reason="crashed")
        await self._lookup_session(report)
        await self._reclaim(report, "Agent crashed unexpectedly")
        return report

    async def _reclaim(self, report: RecoveryReport, message: str) -> None:
        name = report.agent_name
        if report.session_id:
            released = await self._step(
                report, "release locks", self._locks.release_all, report.session_id
            )
            if released is not _FAILED:
                report.locks_released = released
        else:
            self._warn(report, "release locks", "no session recorded for agent")

        removed = await self._step(report, "remove record", self._registry.remove, name)
        report.removed = removed is True

        event = "agent_stalled" if report.reason == "stalled" else "agent_crashed"
        notified = await self._step(report, "notify", self._notifier.notify, event, message, name)
        report.notified = notified is True

        log.info(
            "Recovery of '%s' (%s) done: %d lock(s) released, removed=%s, notified=%s, %d warning(s)",
            name,
            report.reason,
            report.locks_released,
            report.removed,
            report.notified,
            len(report.warnings),
        )

    async def _lookup_session(self, report: RecoveryReport) -> None:
        record = await self._step(
            report, "look up session", self._registry.find, report.agent_name
        )
        if record is not _FAILED and record is not None:
            report.session_id = record.session_id

    async def _step(
        self,
        report: RecoveryReport,
        description: str,
        func: Callable[..., Any | Awaitable[Any]],
        *args: Any,
    ) -> Any:
        """Run one recovery step; on failure record a warning and return _FAILED."""
        try:
            result = func(*args)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        except Exception as e:
            self._warn(report, description, str(e) or type(e).__name__)
            return _FAILED

    @staticmethod
    def _warn(report: RecoveryReport, step: str, detail: str) -> None:
        message = f"{step}: {detail}"
        report.warnings.append(message)
        log.warning("Recovery of '%s': %s", report.agent_name, message)
