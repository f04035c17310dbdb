"""Agent registry: durable agent records and their status state machine.

Example usage:

    from agentfleet.agents import AgentRegistry, AgentStatus

    registry = AgentRegistry(state_dir="/project/.agentfleet")
    registry.create("dev", session_id="4f1c...")
    registry.update_status("dev", AgentStatus.WORKING)
    working = registry.list_by_status(AgentStatus.WORKING)
"""

from agentfleet.agents.registry import AgentRegistry
from agentfleet.agents.schema import (
    RECLAIMABLE,
    TRANSITIONS,
    AgentRecord,
    AgentStatus,
)

__all__ = [
    "AgentRecord",
    "AgentRegistry",
    "AgentStatus",
    "RECLAIMABLE",
    "TRANSITIONS",
]
