"""Protocol and event types for orchestrator notifications."""

from __future__ import annotations

from typing import Literal, Protocol, get_args

NotificationType = Literal["agent_completed", "agent_stalled", "agent_crashed", "general"]

NOTIFICATION_TYPES: tuple[str, ...] = get_args(NotificationType)


class Notifier(Protocol):
    """Delivers events to the orchestrator.

    Implementations:
    - TerminalNotifier: types a message block into the orchestrator window
    - LogNotifier: log line only
    """

    async def notify(
        self,
        event_type: NotificationType,
        message: str,
        agent_name: str | None = None,
    ) -> bool:
        """Send an event. Returns False if only the fallback log line was written."""
        ...
