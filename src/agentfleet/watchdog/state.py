"""Per-agent observation state and the stall decision.

``evaluate`` is a pure function of the previous ``WatchState`` and one new
output snapshot; the watchdog loop owns the state and performs the I/O.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType


class Verdict(Enum):
    """Decision for one agent on one tick."""

    BASELINE = "baseline"  # First observation; nothing to compare against
    ACTIVE = "active"  # Output changed since last tick
    INACTIVE = "inactive"  # Unchanged, still within the stall timeout
    STALLED = "stalled"  # Unchanged for longer than the stall timeout


@dataclass(frozen=True)
class AgentObservation:
    """Last output seen for an agent and when it last changed."""

    snapshot: str
    last_activity_observed: datetime

    def inactive_for(self, now: datetime) -> timedelta:
        return now - self.last_activity_observed


@dataclass(frozen=True)
class WatchState:
    """Immutable map of agent name to its last observation."""

    observations: Mapping[str, AgentObservation] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __len__(self) -> int:
        return len(self.observations)

    def __contains__(self, name: object) -> bool:
        return name in self.observations

    def get(self, name: str) -> AgentObservation | None:
        return self.observations.get(name)

    def with_observation(self, name: str, observation: AgentObservation) -> WatchState:
        updated = dict(self.observations)
        updated[name] = observation
        return WatchState(MappingProxyType(updated))

    def without(self, name: str) -> WatchState:
        if name not in self.observations:
            return self
        updated = {k: v for k, v in self.observations.items() if k != name}
        return WatchState(MappingProxyType(updated))

    def retain(self, names: Iterable[str]) -> WatchState:
        """Keep only entries for ``names``."""
        keep = set(names)
        if keep.issuperset(self.observations):
            return self
        return WatchState(
            MappingProxyType({k: v for k, v in self.observations.items() if k in keep})
        )


def evaluate(
    state: WatchState,
    name: str,
    snapshot: str,
    now: datetime,
    stall_timeout: timedelta,
) -> tuple[WatchState, Verdict]:
    """Judge one agent's new output snapshot.

    Returns the next state and the verdict. A STALLED verdict drops the
    agent's entry, so an agent is reported stalled once; if it keeps being
    observed afterwards it starts again from a fresh baseline.
    """
    previous = state.get(name)
    if previous is None:
        return state.with_observation(name, AgentObservation(snapshot, now)), Verdict.BASELINE

    if snapshot != previous.snapshot:
        return state.with_observation(name, AgentObservation(snapshot, now)), Verdict.ACTIVE

    if previous.inactive_for(now) > stall_timeout:
        return state.without(name), Verdict.STALLED

    return state, Verdict.INACTIVE
