"""Persisted agent registry with a status state machine."""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from filelock import FileLock, Timeout

from agentfleet.agents.schema import (
    RECLAIMABLE,
    TRANSITIONS,
    AgentRecord,
    AgentStatus,
)
from agentfleet.clock import Clock, utc_now
from agentfleet.errors import (
    AgentNotFoundError,
    DuplicateNameError,
    InvalidTransitionError,
    PersistenceError,
)
from agentfleet.logging import get_logger

log = get_logger("agents")

T = TypeVar("T")

REGISTRY_FILENAME = "agents.json"


class AgentRegistry:
    """Durable collection of agent records.

    The registry is a single JSON document, ``<state_dir>/agents.json``::

        {"agents": [{"name": ..., "sessionId": ..., "status": 0|1|2,
                     "lastActivity": ISO-8601, "currentTask": ...}]}

    Every mutation is a read-modify-write held under a ``FileLock`` on
    ``agents.lock`` so concurrent CLI invocations and the watchdog do not
    lose each other's updates. The document is replaced atomically.

    Status changes follow ``TRANSITIONS``; removal is split into
    ``remove()`` (recovery, from Working or Stalled) and ``close()``
    (explicit close, from Idle only).
    """

    def __init__(
        self,
        state_dir: str | Path,
        *,
        lock_timeout: float = 10.0,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the registry.

        Args:
            state_dir: Directory holding agents.json (created on first write)
            lock_timeout: Seconds to wait for the registry file lock
            clock: Source of timezone-aware "now", injectable for tests
        """
        self._dir = Path(state_dir)
        self._path = self._dir / REGISTRY_FILENAME
        self._lock_path = self._path.with_suffix(".lock")
        self._lock_timeout = lock_timeout
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    # -- storage -----------------------------------------------------------

    def _load(self) -> list[AgentRecord]:
        if not self._path.exists():
            return []
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
            return [AgentRecord.from_dict(item) for item in data.get("agents", [])]
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise PersistenceError(f"Cannot read agent registry {self._path}: {e}") from e

    def _save(self, records: list[AgentRecord]) -> None:
        temp_path = self._path.with_name(f"{self._path.name}.{os.getpid()}.tmp")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump({"agents": [r.to_dict() for r in records]}, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self._path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise PersistenceError(f"Cannot write agent registry {self._path}: {e}") from e

    def _atomic_update(self, modifier: Callable[[list[AgentRecord]], tuple[bool, T]]) -> T:
        """Read-modify-write under the registry file lock.

        ``modifier`` mutates the list in place and returns ``(changed, result)``;
        the document is only rewritten when ``changed`` is true.
        """
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            lock = FileLock(self._lock_path, timeout=self._lock_timeout)
            with lock:
                records = self._load()
                changed, result = modifier(records)
                if changed:
                    self._save(records)
                return result
        except Timeout as e:
            raise PersistenceError(f"Timed out waiting for registry lock {self._lock_path}") from e
        except OSError as e:
            raise PersistenceError(f"Registry lock failed: {e}") from e

    # -- queries -------------------------------------------------------------

    def find(self, name: str) -> AgentRecord | None:
        """Get an agent by name, or None."""
        for record in self._load():
            if record.name == name:
                return record
        return None

    def find_by_session(self, session_id: str) -> AgentRecord | None:
        """Get the agent owning a session, or None."""
        for record in self._load():
            if record.session_id == session_id:
                return record
        return None

    def list_all(self) -> list[AgentRecord]:
        return self._load()

    def list_by_status(self, status: AgentStatus) -> list[AgentRecord]:
        return [r for r in self._load() if r.status is status]

    # -- mutations -----------------------------------------------------------

    def create(self, name: str, session_id: str, current_task: str = "") -> AgentRecord:
        """Register a newly provisioned agent as Idle.

        Raises:
            DuplicateNameError: If the name is already registered.
        """
        record = AgentRecord(
            name=name,
            session_id=session_id,
            status=AgentStatus.IDLE,
            last_activity=self._clock(),
            current_task=current_task,
        )

        def modifier(records: list[AgentRecord]) -> tuple[bool, AgentRecord]:
            for existing in records:
                if existing.name == name:
                    raise DuplicateNameError(name, existing.session_id)
            records.append(record)
            return True, record

        created = self._atomic_update(modifier)
        log.info("Agent '%s' registered (session %s)", name, session_id)
        return created

    def update_status(self, name: str, status: AgentStatus) -> AgentRecord:
        """Move an agent to ``status`` and refresh its last activity.

        Setting the current status again is allowed and only refreshes the
        timestamp.

        Raises:
            AgentNotFoundError: If the agent is not registered.
            InvalidTransitionError: If the state machine forbids the change.
        """

        def modifier(records: list[AgentRecord]) -> tuple[bool, AgentRecord]:
            record = _require(records, name)
            if status is not record.status and status not in TRANSITIONS[record.status]:
                raise InvalidTransitionError(name, record.status, status.label)
            record.status = status
            record.last_activity = self._clock()
            return True, record

        updated = self._atomic_update(modifier)
        log.debug("Agent '%s' status -> %s", name, status.label)
        return updated

    def touch(self, name: str) -> AgentRecord:
        """Refresh last activity without changing status."""

        def modifier(records: list[AgentRecord]) -> tuple[bool, AgentRecord]:
            record = _require(records, name)
            record.last_activity = self._clock()
            return True, record

        return self._atomic_update(modifier)

    def set_task(self, name: str, task: str) -> AgentRecord:
        """Record the task description shown for an agent."""

        def modifier(records: list[AgentRecord]) -> tuple[bool, AgentRecord]:
            record = _require(records, name)
            record.current_task = task
            return True, record

        return self._atomic_update(modifier)

    def remove(self, name: str) -> bool:
        """Remove a Working or Stalled agent (recovery path).

        Returns:
            False if the agent is absent.

        Raises:
            InvalidTransitionError: If the agent is Idle; use close().
        """
        return self._remove(name, RECLAIMABLE)

    def close(self, name: str) -> bool:
        """Remove an Idle agent (explicit close).

        Returns:
            False if the agent is absent.

        Raises:
            InvalidTransitionError: If the agent is not Idle.
        """
        return self._remove(name, frozenset({AgentStatus.IDLE}))

    def _remove(self, name: str, allowed: frozenset[AgentStatus]) -> bool:
        def modifier(records: list[AgentRecord]) -> tuple[bool, bool]:
            for index, record in enumerate(records):
                if record.name != name:
                    continue
                if record.status not in allowed:
                    raise InvalidTransitionError(name, record.status, "removed")
                del records[index]
                return True, True
            return False, False

        removed = self._atomic_update(modifier)
        if removed:
            log.info("Agent '%s' removed from registry", name)
        return removed


def _require(records: list[AgentRecord], name: str) -> AgentRecord:
    for record in records:
        if record.name == name:
            return record
    raise AgentNotFoundError(name)
