"""Notifier implementations."""

from __future__ import annotations

from agentfleet.clock import Clock, utc_now
from agentfleet.errors import ExternalCollaboratorError
from agentfleet.logging import get_logger
from agentfleet.notify.protocol import NotificationType
from agentfleet.terminal.protocol import TerminalSessions

log = get_logger("notify")


def format_fallback(event_type: str, message: str, agent_name: str | None) -> str:
    line = f"[ORCHESTRATOR NOTIFICATION] {event_type.upper()}: {message}"
    if agent_name:
        line += f" (Agent: {agent_name})"
    return line


def format_notification(
    event_type: str,
    message: str,
    agent_name: str | None,
    timestamp: str,
) -> str:
    """Multi-line block typed into the orchestrator window."""
    lines = [
        "AGENT NOTIFICATION",
        f"Time: {timestamp}",
        f"Type: {event_type.upper().replace('_', ' ')}",
    ]
    if agent_name:
        lines.append(f"Agent: {agent_name}")
    lines.append(f"Message: {message}")
    lines.append("=" * 40)
    return "\n".join(lines)


class LogNotifier:
    """Writes notifications to the log only."""

    async def notify(
        self,
        event_type: NotificationType,
        message: str,
        agent_name: str | None = None,
    ) -> bool:
        log.info(format_fallback(event_type, message, agent_name))
        return True


class TerminalNotifier:
    """Types notifications into the orchestrator's terminal session.

    When the orchestrator session is missing or the terminal fails, the
    notification is logged instead and ``notify`` returns False.
    """

    def __init__(
        self,
        terminal: TerminalSessions,
        orchestrator_session: str = "orchestrator",
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._terminal = terminal
        self._orchestrator = orchestrator_session
        self._clock = clock

    async def notify(
        self,
        event_type: NotificationType,
        message: str,
        agent_name: str | None = None,
    ) -> bool:
        try:
            if not await self._terminal.session_exists(self._orchestrator):
                log.warning("Orchestrator session '%s' not found", self._orchestrator)
                log.warning(format_fallback(event_type, message, agent_name))
                return False
            text = format_notification(
                event_type, message, agent_name, self._clock().isoformat()
            )
            await self._terminal.send_text(self._orchestrator, text)
        except ExternalCollaboratorError as e:
            log.warning("Failed to notify orchestrator: %s", e)
            log.warning(format_fallback(event_type, message, agent_name))
            return False

        log.info("Notification sent to orchestrator session '%s'", self._orchestrator)
        return True
