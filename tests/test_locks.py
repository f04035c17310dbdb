"""Tests for the cross-process file lock manager."""

from __future__ import annotations

import json
import os
import threading
from datetime import timedelta
from pathlib import Path

import pytest

from agentfleet.agents import AgentRegistry
from agentfleet.errors import PersistenceError
from agentfleet.locks import (
    LockManager,
    LockRecord,
    canonical_path,
    migrate_legacy_locks,
    read_legacy_locks,
)


@pytest.fixture
def manager(state_dir: Path, tmp_path: Path, clock) -> LockManager:
    return LockManager(state_dir, timeout_minutes=10, cwd=str(tmp_path), clock=clock)


def sentinel_files(manager: LockManager) -> list[Path]:
    return sorted(manager.locks_dir.glob("*.json"))


class TestCanonicalPath:
    """Tests for resource path canonicalization."""

    def test_relative_resolves_against_cwd(self, tmp_path: Path) -> None:
        assert canonical_path("src/main.py", str(tmp_path)) == str(tmp_path / "src" / "main.py")

    def test_dot_segments_collapse(self, tmp_path: Path) -> None:
        assert canonical_path("src/../a.py", str(tmp_path)) == str(tmp_path / "a.py")

    def test_absolute_unchanged(self, tmp_path: Path) -> None:
        target = str(tmp_path / "a.py")
        assert canonical_path(target, "/elsewhere") == target


class TestLockRecord:
    """Tests for LockRecord serialization."""

    def test_to_dict_keys(self, clock) -> None:
        record = LockRecord("/p/a.py", "S1", "dev", clock(), "Edit")
        d = record.to_dict()
        assert d == {
            "ownerSessionId": "S1",
            "ownerAgentName": "dev",
            "filePath": "/p/a.py",
            "acquiredAt": clock().isoformat(),
            "operation": "Edit",
        }

    def test_from_dict_accepts_z_suffix(self) -> None:
        record = LockRecord.from_dict(
            {
                "ownerSessionId": "S1",
                "ownerAgentName": None,
                "filePath": "/p/a.py",
                "acquiredAt": "2026-01-17T10:00:00Z",
            }
        )
        assert record.acquired_at.tzinfo is not None
        assert record.operation == ""

    def test_from_legacy_dict(self) -> None:
        record = LockRecord.from_legacy_dict(
            {
                "sessionId": "S9",
                "agentName": "qa",
                "lockTime": "2026-01-17T09:00:00.000Z",
                "operation": "Write",
                "filePath": "/p/b.py",
            }
        )
        assert record.owner_session_id == "S9"
        assert record.owner_agent_name == "qa"
        assert record.resource_key == "/p/b.py"


class TestAcquire:
    """Tests for LockManager.acquire."""

    def test_grants_free_path(self, manager: LockManager, tmp_path: Path) -> None:
        result = manager.acquire("a.py", "S1", "Edit", owner_agent_name="dev")

        assert result.granted
        assert result
        assert result.record.resource_key == str(tmp_path / "a.py")
        assert len(sentinel_files(manager)) == 1

        data = json.loads(sentinel_files(manager)[0].read_text(encoding="utf-8"))
        assert data["ownerSessionId"] == "S1"
        assert data["ownerAgentName"] == "dev"
        assert data["operation"] == "Edit"

    def test_reentrant_keeps_acquired_at(self, manager: LockManager, clock) -> None:
        first = manager.acquire("a.py", "S1", "Edit")
        clock.advance(minutes=3)
        second = manager.acquire("a.py", "S1", "Write")

        assert second.granted
        assert second.record.acquired_at == first.record.acquired_at
        assert second.record.operation == "Edit"
        assert len(sentinel_files(manager)) == 1

    def test_conflict_names_owner(self, manager: LockManager, clock) -> None:
        first = manager.acquire("a.py", "S1", "Edit", owner_agent_name="dev")
        clock.advance(minutes=1)

        result = manager.acquire("a.py", "S2", "Edit")

        assert not result.granted
        assert not result
        assert "S1" in result.reason
        assert "dev" in result.reason
        assert first.record.acquired_at.isoformat() in result.reason
        assert manager.check("a.py").owner_session_id == "S1"

    def test_relative_and_absolute_are_one_resource(
        self, manager: LockManager, tmp_path: Path
    ) -> None:
        manager.acquire("src/../a.py", "S1", "Edit")
        result = manager.acquire(str(tmp_path / "a.py"), "S2", "Edit")
        assert not result.granted

    def test_reclaims_expired_lock(self, manager: LockManager, clock) -> None:
        manager.acquire("a.py", "S1", "Edit")
        clock.advance(minutes=11)

        result = manager.acquire("a.py", "S2", "Edit")

        assert result.granted
        current = manager.check("a.py")
        assert current.owner_session_id == "S2"
        assert current.acquired_at == clock.now
        assert len(sentinel_files(manager)) == 1

    def test_lock_at_exact_timeout_is_not_expired(self, manager: LockManager, clock) -> None:
        manager.acquire("a.py", "S1", "Edit")
        clock.advance(minutes=10)
        assert not manager.acquire("a.py", "S2", "Edit").granted

    def test_unreadable_sentinel_is_reclaimed_once_old(
        self, manager: LockManager, clock, tmp_path: Path
    ) -> None:
        key = manager.canonicalize("a.py")
        path = manager.sentinel_path(key)
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        stale = (clock.now - timedelta(hours=1)).timestamp()
        os.utime(path, (stale, stale))

        record = manager.check("a.py")
        assert record.owner_session_id == "<unreadable>"

        result = manager.acquire("a.py", "S1", "Edit")
        assert result.granted
        assert manager.check("a.py").owner_session_id == "S1"

    def test_unwritable_state_dir_raises(self, tmp_path: Path, clock) -> None:
        blocker = tmp_path / "state"
        blocker.write_text("not a directory", encoding="utf-8")
        manager = LockManager(blocker, cwd=str(tmp_path), clock=clock)

        with pytest.raises(PersistenceError):
            manager.acquire("a.py", "S1", "Edit")

    def test_concurrent_acquire_has_one_winner(self, state_dir: Path, tmp_path: Path) -> None:
        """Many managers racing on one free path: exactly one is granted."""
        contenders = 8
        barrier = threading.Barrier(contenders)
        results: dict[str, bool] = {}
        errors: list[BaseException] = []

        def contend(session_id: str) -> None:
            manager = LockManager(state_dir, cwd=str(tmp_path))
            try:
                barrier.wait()
                results[session_id] = manager.acquire("shared.py", session_id, "Edit").granted
            except BaseException as e:  # pragma: no cover - surfaced below
                errors.append(e)

        threads = [
            threading.Thread(target=contend, args=(f"S{i}",)) for i in range(contenders)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert not errors
        winners = [session for session, granted in results.items() if granted]
        assert len(winners) == 1
        owner = LockManager(state_dir, cwd=str(tmp_path)).check("shared.py")
        assert owner.owner_session_id == winners[0]


class TestRelease:
    """Tests for release, release_all and release_for_agent."""

    def test_owner_releases(self, manager: LockManager) -> None:
        manager.acquire("a.py", "S1", "Edit")
        assert manager.release("a.py", "S1") is True
        assert manager.check("a.py") is None
        assert sentinel_files(manager) == []

    def test_non_owner_cannot_release(self, manager: LockManager) -> None:
        manager.acquire("a.py", "S1", "Edit")
        assert manager.release("a.py", "S2") is False
        assert manager.check("a.py").owner_session_id == "S1"

    def test_release_absent_is_false(self, manager: LockManager) -> None:
        assert manager.release("a.py", "S1") is False

    def test_release_all_is_selective_and_idempotent(self, manager: LockManager) -> None:
        manager.acquire("a.py", "S1", "Edit")
        manager.acquire("b.py", "S1", "Edit")
        manager.acquire("c.py", "S2", "Edit")

        assert manager.release_all("S1") == 2
        assert manager.release_all("S1") == 0

        remaining = manager.list_locks()
        assert [r.owner_session_id for r in remaining] == ["S2"]

    def test_release_for_agent(self, manager: LockManager, state_dir: Path, clock) -> None:
        registry = AgentRegistry(state_dir, clock=clock)
        registry.create("dev", "S1")
        manager.acquire("a.py", "S1", "Edit", owner_agent_name="dev")
        manager.acquire("b.py", "S2", "Edit")

        assert manager.release_for_agent("dev", registry) == 1
        assert manager.release_for_agent("ghost", registry) == 0
        assert manager.check("b.py") is not None


class TestCleanupAndQueries:
    """Tests for cleanup_expired, list_locks and check."""

    def test_cleanup_removes_only_expired(self, manager: LockManager, clock) -> None:
        manager.acquire("old.py", "S1", "Edit")
        clock.advance(minutes=20)
        manager.acquire("new.py", "S2", "Edit")

        assert manager.cleanup_expired(10) == 1
        assert manager.check("old.py") is None
        assert manager.check("new.py") is not None

        result = manager.acquire("old.py", "S3", "Write")
        assert result.granted
        assert manager.check("old.py").owner_session_id == "S3"

    def test_cleanup_with_zero_timeout(self, manager: LockManager, clock) -> None:
        manager.acquire("a.py", "S1", "Edit")
        manager.acquire("b.py", "S2", "Edit")
        clock.advance(seconds=1)

        assert manager.cleanup_expired(0) == 2
        assert manager.list_locks() == []

    def test_cleanup_on_missing_dir(self, manager: LockManager) -> None:
        assert manager.cleanup_expired() == 0

    def test_list_is_oldest_first(self, manager: LockManager, clock) -> None:
        manager.acquire("b.py", "S1", "Edit")
        clock.advance(minutes=1)
        manager.acquire("a.py", "S2", "Edit")

        keys = [Path(r.resource_key).name for r in manager.list()]
        assert keys == ["b.py", "a.py"]

    def test_is_expired(self, manager: LockManager, clock) -> None:
        record = manager.acquire("a.py", "S1", "Edit").record
        assert not manager.is_expired(record)
        assert manager.is_expired(record, now=clock.now + timedelta(minutes=11))
        assert manager.is_expired(record, 1, now=clock.now + timedelta(minutes=2))


class TestLegacyMigration:
    """Tests for importing the old shared lock document."""

    def write_legacy(self, path: Path, locks: dict) -> None:
        path.write_text(json.dumps({"locks": locks, "blockedAgents": []}), encoding="utf-8")

    def test_migrates_and_renames(self, manager: LockManager, tmp_path: Path) -> None:
        legacy = tmp_path / "file_locks.json"
        target = str(tmp_path / "a.py")
        self.write_legacy(
            legacy,
            {
                target: {
                    "sessionId": "S1",
                    "agentName": "dev",
                    "lockTime": "2026-01-17T09:55:00.000Z",
                    "operation": "Edit",
                    "filePath": target,
                }
            },
        )

        assert migrate_legacy_locks(legacy, manager) == 1

        assert not legacy.exists()
        assert (tmp_path / "file_locks.json.migrated").exists()
        record = manager.check(target)
        assert record.owner_session_id == "S1"
        assert record.owner_agent_name == "dev"
        assert record.acquired_at.minute == 55

    def test_existing_sentinel_wins(self, manager: LockManager, tmp_path: Path) -> None:
        target = str(tmp_path / "a.py")
        manager.acquire(target, "S2", "Write")
        legacy = tmp_path / "file_locks.json"
        self.write_legacy(
            legacy,
            {
                target: {
                    "sessionId": "S1",
                    "agentName": None,
                    "lockTime": "2026-01-17T09:55:00Z",
                    "operation": "Edit",
                    "filePath": target,
                }
            },
        )

        assert migrate_legacy_locks(legacy, manager) == 0
        assert manager.check(target).owner_session_id == "S2"

    def test_missing_legacy_file(self, manager: LockManager, tmp_path: Path) -> None:
        assert migrate_legacy_locks(tmp_path / "nope.json", manager) == 0

    @pytest.mark.parametrize(
        "document", ["[]", "42", '{"locks": ["a.py"]}', '{"blockedAgents": []}']
    )
    def test_document_without_locks_object(
        self, manager: LockManager, tmp_path: Path, document: str
    ) -> None:
        legacy = tmp_path / "file_locks.json"
        legacy.write_text(document, encoding="utf-8")

        with pytest.raises(PersistenceError):
            migrate_legacy_locks(legacy, manager)
        assert legacy.exists()

    def test_read_skips_malformed_entries(self, tmp_path: Path) -> None:
        legacy = tmp_path / "file_locks.json"
        self.write_legacy(
            legacy,
            {
                "/p/good.py": {"sessionId": "S1", "lockTime": "2026-01-17T09:00:00Z"},
                "/p/bad.py": {"agentName": "x"},
                "/p/junk.py": "not an object",
            },
        )

        records = read_legacy_locks(legacy)
        assert [r.resource_key for r in records] == ["/p/good.py"]
