"""Liveness watchdog for working agents."""

from agentfleet.watchdog.state import AgentObservation, Verdict, WatchState, evaluate
from agentfleet.watchdog.watchdog import Watchdog

__all__ = ["AgentObservation", "Verdict", "WatchState", "Watchdog", "evaluate"]
