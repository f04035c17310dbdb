"""Cross-process file locks for agents editing a shared tree.

Example usage:

    from agentfleet.locks import LockManager

    locks = LockManager(state_dir="/project/.agentfleet")
    result = locks.acquire("src/main.py", session_id, "Edit", owner_agent_name="dev")
    if not result.granted:
        print(result.reason)
    ...
    locks.release("src/main.py", session_id)
"""

from agentfleet.locks.legacy import migrate_legacy_locks, read_legacy_locks
from agentfleet.locks.manager import LockManager
from agentfleet.locks.schema import AcquireResult, LockRecord, canonical_path

__all__ = [
    "AcquireResult",
    "LockManager",
    "LockRecord",
    "canonical_path",
    "migrate_legacy_locks",
    "read_legacy_locks",
]
