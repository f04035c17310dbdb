"""Recovery of stalled and crashed agents."""

from agentfleet.recovery.coordinator import RecoveryCoordinator, RecoveryReport

__all__ = ["RecoveryCoordinator", "RecoveryReport"]
