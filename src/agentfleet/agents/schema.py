"""Data schemas for the agent registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from agentfleet.clock import parse_timestamp, utc_now


class AgentStatus(Enum):
    """Lifecycle status of an agent.

    Values are the integer codes used in the persisted registry document.
    """

    IDLE = 0  # Provisioned, no work assigned
    WORKING = 1  # Assigned work by the orchestrator
    STALLED = 2  # Watchdog saw no output change past the stall timeout

    @property
    def label(self) -> str:
        return self.name.capitalize()

    def __str__(self) -> str:
        return self.label

    @classmethod
    def parse(cls, value: str | int) -> AgentStatus:
        """Accept a label ("Working", "working") or an integer code."""
        if isinstance(value, int):
            return cls(value)
        text = value.strip()
        if text.isdigit():
            return cls(int(text))
        try:
            return cls[text.upper()]
        except KeyError:
            valid = ", ".join(s.label for s in cls)
            raise ValueError(f"Invalid status '{value}'. Valid statuses: {valid}") from None


# Allowed status changes. Removal is handled separately by the registry.
TRANSITIONS: dict[AgentStatus, frozenset[AgentStatus]] = {
    AgentStatus.IDLE: frozenset({AgentStatus.WORKING}),
    AgentStatus.WORKING: frozenset({AgentStatus.IDLE, AgentStatus.STALLED}),
    AgentStatus.STALLED: frozenset(),
}

# Statuses from which recovery may remove an agent
RECLAIMABLE = frozenset({AgentStatus.WORKING, AgentStatus.STALLED})


@dataclass
class AgentRecord:
    """One agent in the registry."""

    name: str
    session_id: str
    status: AgentStatus = AgentStatus.IDLE
    last_activity: datetime = field(default_factory=utc_now)
    current_task: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "sessionId": self.session_id,
            "status": self.status.value,
            "lastActivity": self.last_activity.isoformat(),
            "currentTask": self.current_task,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentRecord:
        last_activity = data.get("lastActivity")
        return cls(
            name=data["name"],
            session_id=data["sessionId"],
            status=AgentStatus(int(data.get("status", 0))),
            last_activity=parse_timestamp(last_activity) if last_activity else utc_now(),
            current_task=data.get("currentTask") or "",
        )
