"""agentfleet: file locks, agent registry and liveness watchdog for coding-agent fleets."""

__version__ = "0.1.0"

# Public API
from agentfleet.agents import AgentRecord, AgentRegistry, AgentStatus
from agentfleet.config import Config, get_config, load_config
from agentfleet.errors import (
    AgentFleetError,
    AgentNotFoundError,
    DuplicateNameError,
    ExternalCollaboratorError,
    InvalidTransitionError,
    PersistenceError,
)
from agentfleet.locks import AcquireResult, LockManager, LockRecord
from agentfleet.notify import LogNotifier, Notifier, TerminalNotifier
from agentfleet.recovery import RecoveryCoordinator, RecoveryReport
from agentfleet.terminal import TerminalSessions, TmuxSessions
from agentfleet.watchdog import Verdict, Watchdog, WatchState, evaluate

__all__ = [
    # Locks
    "AcquireResult",
    "LockManager",
    "LockRecord",
    # Agents
    "AgentRecord",
    "AgentRegistry",
    "AgentStatus",
    # Watchdog and recovery
    "RecoveryCoordinator",
    "RecoveryReport",
    "Verdict",
    "Watchdog",
    "WatchState",
    "evaluate",
    # Collaborators
    "LogNotifier",
    "Notifier",
    "TerminalNotifier",
    "TerminalSessions",
    "TmuxSessions",
    # Config
    "Config",
    "get_config",
    "load_config",
    # Errors
    "AgentFleetError",
    "AgentNotFoundError",
    "DuplicateNameError",
    "ExternalCollaboratorError",
    "InvalidTransitionError",
    "PersistenceError",
]
