"""Polling watchdog for working agents.

Each tick reads the Working agents from the registry and, per agent:
a missing session is a crash and goes straight to recovery; otherwise the
last lines of output are compared with the previous tick's. Changed output
refreshes the agent's last activity; output unchanged for longer than the
stall timeout marks the agent Stalled and runs stall recovery.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

from agentfleet.agents.registry import AgentRegistry
from agentfleet.agents.schema import AgentStatus
from agentfleet.clock import Clock, utc_now
from agentfleet.logging import get_logger
from agentfleet.recovery.coordinator import RecoveryCoordinator
from agentfleet.terminal.protocol import TerminalSessions
from agentfleet.watchdog.state import Verdict, WatchState, evaluate

log = get_logger("watchdog")

CRASHED = "crashed"
ERROR = "error"


class Watchdog:
    """Detects stalled and crashed agents and hands them to recovery.

    Example:
        watchdog = Watchdog(registry, TmuxSessions(), recovery)
        task = asyncio.create_task(watchdog.run())
        ...
        watchdog.stop()
        await task
    """

    def __init__(
        self,
        registry: AgentRegistry,
        terminal: TerminalSessions,
        recovery: RecoveryCoordinator,
        *,
        check_interval_seconds: float = 30.0,
        stall_timeout_minutes: float = 5.0,
        capture_lines: int = 100,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the watchdog.

        Args:
            registry: Source of Working agents
            terminal: Terminal sessions; the agent name is the session handle
            recovery: Handles stalled and crashed agents
            check_interval_seconds: Seconds between ticks
            stall_timeout_minutes: Unchanged-output time after which an agent is stalled
            capture_lines: Lines of output compared between ticks
            clock: Source of timezone-aware "now", injectable for tests
        """
        self._registry = registry
        self._terminal = terminal
        self._recovery = recovery
        self._interval = check_interval_seconds
        self._stall_timeout = timedelta(minutes=stall_timeout_minutes)
        self._capture_lines = capture_lines
        self._clock = clock

        self._state = WatchState()
        self._running = False
        self._stopping = asyncio.Event()

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def check_interval_seconds(self) -> float:
        return self._interval

    def is_running(self) -> bool:
        return self._running

    async def tick(self) -> dict[str, str]:
        """Check every Working agent once.

        Returns:
            Outcome per agent name: a Verdict value, "crashed" or "error".
        """
        working = self._registry.list_by_status(AgentStatus.WORKING)
        names = [agent.name for agent in working]
        if names:
            log.debug("Monitoring %d working agent(s)", len(names))

        outcomes: dict[str, str] = {}
        for name in names:
            try:
                outcomes[name] = await self._check_agent(name)
            except Exception as e:
                log.error("Error checking agent '%s': %s", name, e)
                outcomes[name] = ERROR

        self._state = self._state.retain(names)
        return outcomes

    async def _check_agent(self, name: str) -> str:
        if not await self._terminal.session_exists(name):
            log.warning("Session for agent '%s' not found; agent may have crashed", name)
            self._state = self._state.without(name)
            await self._recovery.handle_crashed(name)
            return CRASHED

        snapshot = await self._terminal.capture_output(name, self._capture_lines)
        now = self._clock()
        previous = self._state.get(name)
        self._state, verdict = evaluate(self._state, name, snapshot, now, self._stall_timeout)

        if verdict is Verdict.BASELINE:
            log.debug("Baseline captured for agent '%s'", name)
        elif verdict is Verdict.ACTIVE:
            self._registry.touch(name)
            log.debug("Agent '%s' is active", name)
        elif verdict is Verdict.INACTIVE:
            log.debug(
                "Agent '%s' inactive for %.1f minutes",
                name,
                previous.inactive_for(now).total_seconds() / 60,
            )
        else:
            log.warning(
                "Agent '%s' stalled: no output change for %.1f minutes",
                name,
                previous.inactive_for(now).total_seconds() / 60,
            )
            self._registry.update_status(name, AgentStatus.STALLED)
            await self._recovery.handle_stalled(name)

        return verdict.value

    async def run(self) -> None:
        """Tick until stop() is called or the task is cancelled."""
        if self._running:
            log.warning("Watchdog already running")
            return

        self._running = True
        log.info(
            "Watchdog started (interval: %.1fs, stall timeout: %.1f min)",
            self._interval,
            self._stall_timeout.total_seconds() / 60,
        )

        try:
            while not self._stopping.is_set():
                try:
                    await self.tick()
                except Exception as e:
                    log.error("Watchdog tick failed: %s", e)

                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            log.info("Watchdog cancelled")
            raise
        finally:
            # Consume the stop request so the watchdog can be started again
            self._stopping.clear()
            self._running = False
            log.info("Watchdog stopped")

    def stop(self) -> None:
        """Ask the loop to exit; an in-progress tick finishes first."""
        self._stopping.set()
