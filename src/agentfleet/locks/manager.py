"""File lock manager for coordinating edits across agent processes.

Each held lock is one sentinel JSON file in ``<state_dir>/locks/``. A lock is
taken by hard-linking a fully written temp file to the sentinel name:
``os.link`` fails with FileExistsError when the sentinel already exists, so
two processes racing on an unheld path cannot both win, and a reader never
sees a half-written sentinel.

Deleting sentinels (release, expiry reclaim, cleanup) happens under one
``FileLock`` so that reclaiming an expired lock cannot delete a lock that
another process created a moment later.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import os
import uuid
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from filelock import FileLock, Timeout

from agentfleet.clock import Clock, utc_now
from agentfleet.errors import PersistenceError
from agentfleet.locks.schema import AcquireResult, LockRecord, canonical_path
from agentfleet.logging import get_logger

if TYPE_CHECKING:
    from agentfleet.agents.registry import AgentRegistry

log = get_logger("locks")

LOCKS_DIRNAME = "locks"
_MUTATE_LOCK = ".mutate.lock"
_SENTINEL_SUFFIX = ".json"
_UNREADABLE_OWNER = "<unreadable>"

# Attempts at create -> inspect -> reclaim before reporting contention
_MAX_ACQUIRE_ATTEMPTS = 3


class LockManager:
    """Grants and revokes reentrant, time-bounded locks on resource paths.

    Responsibilities:
    - Atomic acquisition of unheld paths
    - Reentrant acquisition for the owning session
    - Reclaiming expired locks held by other sessions
    - Owner-checked release and bulk release for a dead session
    - Expiry sweeps
    """

    def __init__(
        self,
        state_dir: str | Path,
        *,
        timeout_minutes: float = 10.0,
        mutate_timeout: float = 10.0,
        cwd: str | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the lock manager.

        Args:
            state_dir: Workspace state directory; sentinels live in its locks/
            timeout_minutes: Age after which a lock may be reclaimed
            mutate_timeout: Seconds to wait for the deletion file lock
            cwd: Directory for resolving relative resource paths
            clock: Source of timezone-aware "now", injectable for tests
        """
        self._dir = Path(state_dir) / LOCKS_DIRNAME
        self._timeout = timedelta(minutes=timeout_minutes)
        self._mutate_timeout = mutate_timeout
        self._cwd = cwd
        self._clock = clock

    @property
    def locks_dir(self) -> Path:
        return self._dir

    @property
    def timeout_minutes(self) -> float:
        return self._timeout.total_seconds() / 60

    def canonicalize(self, resource_key: str) -> str:
        return canonical_path(resource_key, self._cwd)

    def sentinel_path(self, resource_key: str) -> Path:
        """Sentinel file for an already canonical resource key."""
        digest = hashlib.sha256(resource_key.encode("utf-8")).hexdigest()[:40]
        return self._dir / f"{digest}{_SENTINEL_SUFFIX}"

    # -- acquisition -------------------------------------------------------

    def acquire(
        self,
        resource_key: str,
        owner_session_id: str,
        operation: str,
        owner_agent_name: str | None = None,
    ) -> AcquireResult:
        """Try to take the lock on ``resource_key`` for a session.

        Args:
            resource_key: Path to lock (canonicalized first)
            owner_session_id: Session requesting the lock
            operation: Why the lock is being taken
            owner_agent_name: Agent name, stored for diagnostics

        Returns:
            AcquireResult. ``granted`` is False when another session holds a
            live lock; ``reason`` names that session and when it locked.

        Raises:
            PersistenceError: If the locks directory cannot be written.
        """
        key = self.canonicalize(resource_key)
        path = self.sentinel_path(key)
        self._ensure_dir()

        existing: LockRecord | None = None
        for _ in range(_MAX_ACQUIRE_ATTEMPTS):
            record = LockRecord(
                resource_key=key,
                owner_session_id=owner_session_id,
                owner_agent_name=owner_agent_name,
                acquired_at=self._clock(),
                operation=operation,
            )
            if self._create_exclusive(path, record):
                log.debug("Lock acquired: %s by %s (%s)", key, owner_session_id, operation)
                return AcquireResult(granted=True, record=record)

            existing = self._read(path)
            if existing is None:
                # Released between our create and read
                continue

            if existing.owner_session_id == owner_session_id:
                return AcquireResult(granted=True, record=existing)

            if not self.is_expired(existing):
                return AcquireResult(granted=False, reason=_conflict_reason(existing))

            self._reclaim(path, existing)

        if existing is not None:
            return AcquireResult(granted=False, reason=_conflict_reason(existing))
        return AcquireResult(granted=False, reason=f"Lock on '{key}' is contended")

    def import_record(self, record: LockRecord) -> bool:
        """Store an existing record as-is. False if the path is already locked."""
        self._ensure_dir()
        return self._create_exclusive(self.sentinel_path(record.resource_key), record)

    def _create_exclusive(self, path: Path, record: LockRecord) -> bool:
        temp_path = path.with_name(f".{path.stem}.{os.getpid()}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            with open(temp_path, "x", encoding="utf-8") as f:
                json.dump(record.to_dict(), f, indent=2)
            try:
                os.link(temp_path, path)
            except FileExistsError:
                return False
            return True
        except OSError as e:
            raise PersistenceError(f"Cannot create lock file {path}: {e}") from e
        finally:
            with contextlib.suppress(FileNotFoundError):
                temp_path.unlink()

    def _reclaim(self, path: Path, seen: LockRecord) -> bool:
        """Delete an expired sentinel, unless it changed since we read it."""
        with self._mutating():
            current = self._read(path)
            if current is None:
                return True
            if current != seen or not self.is_expired(current):
                return False
            self._unlink(path)
        log.info(
            "Reclaimed expired lock on %s from session %s (acquired %s)",
            seen.resource_key,
            seen.owner_session_id,
            seen.acquired_at.isoformat(),
        )
        return True

    # -- release -------------------------------------------------------------

    def release(self, resource_key: str, owner_session_id: str) -> bool:
        """Release a lock held by ``owner_session_id``.

        Returns:
            False if there is no lock or another session owns it.
        """
        key = self.canonicalize(resource_key)
        path = self.sentinel_path(key)
        with self._mutating():
            current = self._read(path)
            if current is None:
                return False
            if current.owner_session_id != owner_session_id:
                log.debug(
                    "Release of %s by %s refused: owned by %s",
                    key,
                    owner_session_id,
                    current.owner_session_id,
                )
                return False
            self._unlink(path)
        log.debug("Lock released: %s by %s", key, owner_session_id)
        return True

    def release_all(self, owner_session_id: str) -> int:
        """Release every lock held by a session. Returns the number released."""
        released = 0
        with self._mutating():
            for path, record in self._iter_records():
                if record.owner_session_id == owner_session_id:
                    self._unlink(path)
                    released += 1
        if released:
            log.info("Released %d lock(s) for session %s", released, owner_session_id)
        return released

    def release_for_agent(self, agent_name: str, registry: AgentRegistry) -> int:
        """Release all locks of an agent, found through its registry session.

        Returns 0 when the agent is not registered.
        """
        agent = registry.find(agent_name)
        if agent is None:
            log.warning("Agent '%s' not found in registry; no locks released", agent_name)
            return 0
        return self.release_all(agent.session_id)

    def cleanup_expired(self, timeout_minutes: float | None = None) -> int:
        """Delete locks older than ``timeout_minutes`` (default: configured).

        Returns:
            Number of locks deleted.
        """
        now = self._clock()
        removed = 0
        with self._mutating():
            for path, record in self._iter_records():
                if self.is_expired(record, timeout_minutes, now=now):
                    self._unlink(path)
                    removed += 1
        if removed:
            log.info("Cleaned up %d expired lock(s)", removed)
        return removed

    # -- queries -------------------------------------------------------------

    def check(self, resource_key: str) -> LockRecord | None:
        """Current lock on a path, or None."""
        key = self.canonicalize(resource_key)
        return self._read(self.sentinel_path(key))

    def list_locks(self) -> list[LockRecord]:
        """Snapshot of all current locks, oldest first."""
        records = [record for _, record in self._iter_records()]
        return sorted(records, key=lambda r: r.acquired_at)

    list = list_locks

    def is_expired(
        self,
        record: LockRecord,
        timeout_minutes: float | None = None,
        *,
        now: datetime | None = None,
    ) -> bool:
        timeout = self._timeout if timeout_minutes is None else timedelta(minutes=timeout_minutes)
        return (now or self._clock()) - record.acquired_at > timeout

    # -- storage -------------------------------------------------------------

    def _ensure_dir(self) -> None:
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create locks directory {self._dir}: {e}") from e

    @contextlib.contextmanager
    def _mutating(self) -> Iterator[None]:
        self._ensure_dir()
        lock = FileLock(self._dir / _MUTATE_LOCK, timeout=self._mutate_timeout)
        try:
            lock.acquire()
        except Timeout as e:
            raise PersistenceError(f"Timed out waiting for {self._dir / _MUTATE_LOCK}") from e
        try:
            yield
        finally:
            lock.release()

    def _read(self, path: Path) -> LockRecord | None:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return LockRecord.from_dict(data)
        except FileNotFoundError:
            return None
        except (ValueError, KeyError, TypeError) as e:
            return self._unreadable(path, e)
        except OSError as e:
            raise PersistenceError(f"Cannot read lock file {path}: {e}") from e

    def _unreadable(self, path: Path, error: Exception) -> LockRecord | None:
        """Stand-in record for a damaged sentinel, aged by file mtime."""
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return None
        log.warning("Unreadable lock file %s: %s", path, error)
        return LockRecord(
            resource_key=str(path),
            owner_session_id=_UNREADABLE_OWNER,
            owner_agent_name=None,
            acquired_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
            operation="",
        )

    def _iter_records(self) -> Iterator[tuple[Path, LockRecord]]:
        if not self._dir.exists():
            return
        try:
            paths = sorted(self._dir.glob(f"*{_SENTINEL_SUFFIX}"))
        except OSError as e:
            raise PersistenceError(f"Cannot list locks directory {self._dir}: {e}") from e
        for path in paths:
            record = self._read(path)
            if record is not None:
                yield path, record

    def _unlink(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceError(f"Cannot delete lock file {path}: {e}") from e


def _conflict_reason(record: LockRecord) -> str:
    owner = f"session '{record.owner_session_id}'"
    if record.owner_agent_name:
        owner += f" (agent '{record.owner_agent_name}')"
    return f"File locked by {owner} since {record.acquired_at.isoformat()}"
