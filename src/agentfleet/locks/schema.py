"""Data schemas for file locks."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from agentfleet.clock import parse_timestamp


def canonical_path(resource_key: str, cwd: str | None = None) -> str:
    """Absolute, normalized form of a resource path.

    Relative paths resolve against ``cwd`` (default: process cwd). Symlinks
    are not followed, so two links to one file are two resources.
    """
    path = os.path.expanduser(resource_key)
    if not os.path.isabs(path):
        path = os.path.join(cwd or os.getcwd(), path)
    return os.path.normpath(os.path.abspath(path))


@dataclass(frozen=True)
class LockRecord:
    """A mutual-exclusion claim on one resource path."""

    resource_key: str  # Canonical absolute path
    owner_session_id: str
    owner_agent_name: str | None
    acquired_at: datetime
    operation: str = ""

    def age_seconds(self, now: datetime) -> float:
        return (now - self.acquired_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "ownerSessionId": self.owner_session_id,
            "ownerAgentName": self.owner_agent_name,
            "filePath": self.resource_key,
            "acquiredAt": self.acquired_at.isoformat(),
            "operation": self.operation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LockRecord:
        return cls(
            resource_key=data["filePath"],
            owner_session_id=data["ownerSessionId"],
            owner_agent_name=data.get("ownerAgentName"),
            acquired_at=parse_timestamp(data["acquiredAt"]),
            operation=data.get("operation") or "",
        )

    @classmethod
    def from_legacy_dict(cls, data: dict[str, Any]) -> LockRecord:
        """Read an entry of the old shared ``file_locks.json`` document."""
        return cls(
            resource_key=data["filePath"],
            owner_session_id=data["sessionId"],
            owner_agent_name=data.get("agentName"),
            acquired_at=parse_timestamp(data["lockTime"]),
            operation=data.get("operation") or "",
        )


@dataclass(frozen=True)
class AcquireResult:
    """Outcome of an acquire attempt.

    A refused acquisition is a normal result, not an error: ``granted`` is
    False and ``reason`` names the current owner.
    """

    granted: bool
    reason: str | None = None
    record: LockRecord | None = None

    def __bool__(self) -> bool:
        return self.granted
