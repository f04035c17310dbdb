"""Error taxonomy for agent coordination.

Only some of these are ever raised. Lock conflicts and ownership mismatches
are reported as negative results (``AcquireResult.granted is False``,
``LockManager.release() -> False``); the classes exist so callers and log
lines can name the condition.
"""

from __future__ import annotations


class AgentFleetError(Exception):
    """Base class for all agentfleet errors."""


class AcquisitionConflict(AgentFleetError):
    """Resource is held by another session and the lock has not expired."""


class OwnershipMismatch(AgentFleetError):
    """Release attempted by a session that does not own the lock."""


class AgentNotFoundError(AgentFleetError, KeyError):
    """No agent with the given name exists in the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Agent '{self.name}' not found"


class DuplicateNameError(AgentFleetError):
    """An agent with the given name already exists."""

    def __init__(self, name: str, session_id: str) -> None:
        super().__init__(name, session_id)
        self.name = name
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Agent '{self.name}' already exists with session ID: {self.session_id}"


class InvalidTransitionError(AgentFleetError):
    """Requested registry transition is not allowed by the status state machine."""

    def __init__(self, name: str, current: object, requested: str) -> None:
        super().__init__(name, current, requested)
        self.name = name
        self.current = current
        self.requested = requested

    def __str__(self) -> str:
        return f"Agent '{self.name}' cannot go from {self.current} to {self.requested}"


class ExternalCollaboratorError(AgentFleetError):
    """A terminal-session or notification call failed."""


class PersistenceError(AgentFleetError):
    """Durable storage could not be read or written."""
