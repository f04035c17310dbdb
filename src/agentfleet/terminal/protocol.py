"""Protocols for the terminal-session collaborator."""

from __future__ import annotations

from typing import Protocol

from agentfleet.terminal.result import CommandResult


class CommandRunner(Protocol):
    """Runs an external command and captures its output.

    Implementations:
    - SubprocessRunner: asyncio subprocess execution
    """

    async def run(
        self,
        args: list[str],
        timeout: float | None = 30.0,
        output_limit: int = 200_000,
    ) -> CommandResult:
        """Run ``args`` (argv list, no shell) and return the result."""
        ...


class TerminalSessions(Protocol):
    """Access to the interactive sessions agents run in.

    A session handle is opaque to callers; for tmux it is the window name.
    Methods raise ExternalCollaboratorError when the terminal backend fails.

    Implementations:
    - TmuxSessions: tmux windows in the current server
    """

    async def session_exists(self, handle: str) -> bool:
        """True if the session is still running."""
        ...

    async def capture_output(self, handle: str, max_lines: int) -> str:
        """Last ``max_lines`` lines of the session's visible output."""
        ...

    async def send_text(self, handle: str, text: str) -> None:
        """Type ``text`` into the session and submit it."""
        ...

    async def terminate_session(self, handle: str) -> None:
        """Kill the session."""
        ...
