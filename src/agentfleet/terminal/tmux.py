"""Terminal sessions backed by tmux windows.

Each agent runs in a tmux window named after the agent, so the session
handle passed to these methods is the window name.
"""

from __future__ import annotations

import asyncio

from agentfleet.logging import get_logger
from agentfleet.terminal.protocol import CommandRunner
from agentfleet.terminal.result import CommandResult
from agentfleet.terminal.subprocess_runner import SubprocessRunner

log = get_logger("terminal.tmux")

# Exit codes meaning the tmux binary itself could not be run
_LAUNCH_FAILURES = (126, 127)


class TmuxSessions:
    """TerminalSessions implementation driving the ``tmux`` CLI."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        *,
        tmux: str = "tmux",
        submit_key: str = "Enter",
        submit_delay: float = 0.5,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the tmux backend.

        Args:
            runner: Command runner (default: SubprocessRunner)
            tmux: tmux executable
            submit_key: Key sent after typed text to submit it
            submit_delay: Seconds between typing text and submitting
            timeout: Per-command timeout in seconds
        """
        self._runner = runner or SubprocessRunner()
        self._tmux = tmux
        self._submit_key = submit_key
        self._submit_delay = submit_delay
        self._timeout = timeout

    async def _tmux_cmd(self, *args: str) -> CommandResult:
        return await self._runner.run([self._tmux, *args], timeout=self._timeout)

    async def list_windows(self) -> list[str]:
        """Names of the windows in the current tmux session.

        An unreachable tmux server means there are no windows.
        """
        result = await self._tmux_cmd("list-windows", "-F", "#{window_name}")
        if not result.success:
            if result.exit_code in _LAUNCH_FAILURES or result.status == "timeout":
                result.check()
            log.debug("tmux list-windows failed: %s", result.output.strip())
            return []
        return [line.strip() for line in result.output.splitlines() if line.strip()]

    async def session_exists(self, handle: str) -> bool:
        return handle in await self.list_windows()

    async def capture_output(self, handle: str, max_lines: int) -> str:
        result = await self._tmux_cmd("capture-pane", "-t", handle, "-S", f"-{max_lines}", "-p")
        return result.check().output.strip()

    async def send_text(self, handle: str, text: str) -> None:
        (await self._tmux_cmd("send-keys", "-t", handle, "-l", text)).check()
        await asyncio.sleep(self._submit_delay)
        (await self._tmux_cmd("send-keys", "-t", handle, self._submit_key)).check()
        log.debug("Sent %d chars to %s", len(text), handle)

    async def terminate_session(self, handle: str) -> None:
        (await self._tmux_cmd("kill-window", "-t", handle)).check()
        log.info("Killed tmux window %s", handle)


