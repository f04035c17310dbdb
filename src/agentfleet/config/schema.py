"""Configuration schema dataclasses for agentfleet.

Defines the structure of configuration at all levels (system, user, project).
Every field has a default so partial configs merge together cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class WatchdogConfig:
    """Liveness watchdog configuration.

    Example config.yaml:
        watchdog:
          check_interval_seconds: 30
          stall_timeout_minutes: 5
          capture_lines: 100
    """

    check_interval_seconds: float = 30.0  # Seconds between sweeps
    stall_timeout_minutes: float = 5.0  # Unchanged output for this long = stalled
    capture_lines: int = 100  # Tail window compared between ticks


@dataclass
class LockConfig:
    """File lock configuration."""

    timeout_minutes: float = 10.0  # Locks older than this may be reclaimed
    mutate_timeout_seconds: float = 10.0  # Max wait on the deletion file lock


@dataclass
class RecoveryConfig:
    """Stalled agent termination settings."""

    exit_text: str = "/exit"  # Sent to the session before force-terminating
    grace_seconds: float = 2.0  # Wait between graceful exit and force kill


@dataclass
class NotifyConfig:
    """Notification settings."""

    orchestrator_session: str = "orchestrator"  # Window that receives notices


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0..4, overrides level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object."""

    state_dir: str = ".agentfleet"  # Relative to the workspace root
    watchdog: WatchdogConfig = field(default_factory=WatchdogConfig)
    locks: LockConfig = field(default_factory=LockConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unknown top-level keys, kept for forward compatibility
    extra: dict[str, Any] = field(default_factory=dict)
