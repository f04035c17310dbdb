"""Import of the older shared-document lock format.

Earlier deployments kept every lock in one ``file_locks.json``::

    {"locks": {"/abs/path": {"sessionId": ..., "agentName": ...,
                             "lockTime": ISO-8601, "operation": ...,
                             "filePath": "/abs/path"}},
     "blockedAgents": [...]}

That document had no cross-process safety. ``migrate_legacy_locks`` moves
its entries into per-lock sentinel files and renames the document so it is
not read again.
"""

from __future__ import annotations

import json
from pathlib import Path

from agentfleet.errors import PersistenceError
from agentfleet.locks.manager import LockManager
from agentfleet.locks.schema import LockRecord
from agentfleet.logging import get_logger

log = get_logger("locks.legacy")

MIGRATED_SUFFIX = ".migrated"


def read_legacy_locks(legacy_path: str | Path) -> list[LockRecord]:
    """Parse a legacy lock document. Malformed entries are skipped."""
    path = Path(legacy_path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return []
    except (OSError, ValueError) as e:
        raise PersistenceError(f"Cannot read legacy lock file {path}: {e}") from e

    locks = data.get("locks") if isinstance(data, dict) else None
    if not isinstance(locks, dict):
        raise PersistenceError(f"Legacy lock file {path} has no \"locks\" object")

    records: list[LockRecord] = []
    for key, entry in locks.items():
        if not isinstance(entry, dict):
            continue
        entry = {"filePath": key, **entry}
        try:
            records.append(LockRecord.from_legacy_dict(entry))
        except (KeyError, ValueError) as e:
            log.warning("Skipping legacy lock %s: %s", key, e)
    return records


def migrate_legacy_locks(legacy_path: str | Path, manager: LockManager) -> int:
    """Move legacy locks into the sentinel store.

    A path that already has a sentinel keeps it; the legacy entry is dropped.
    Original acquisition times are preserved so expiry still applies.

    Returns:
        Number of locks imported.
    """
    path = Path(legacy_path)
    if not path.exists():
        return 0

    imported = 0
    for record in read_legacy_locks(path):
        key = manager.canonicalize(record.resource_key)
        record = LockRecord(
            resource_key=key,
            owner_session_id=record.owner_session_id,
            owner_agent_name=record.owner_agent_name,
            acquired_at=record.acquired_at,
            operation=record.operation,
        )
        if manager.import_record(record):
            imported += 1
        else:
            log.info("Legacy lock on %s superseded by existing lock", key)

    try:
        path.rename(path.with_name(path.name + MIGRATED_SUFFIX))
    except OSError as e:
        raise PersistenceError(f"Cannot rename legacy lock file {path}: {e}") from e

    log.info("Migrated %d legacy lock(s) from %s", imported, path)
    return imported
