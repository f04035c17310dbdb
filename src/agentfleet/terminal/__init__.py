"""Terminal session access for agent windows.

Example usage:

    from agentfleet.terminal import TmuxSessions

    sessions = TmuxSessions()
    if await sessions.session_exists("dev"):
        tail = await sessions.capture_output("dev", max_lines=100)
"""

from agentfleet.terminal.protocol import CommandRunner, TerminalSessions
from agentfleet.terminal.result import CommandResult
from agentfleet.terminal.subprocess_runner import SubprocessRunner
from agentfleet.terminal.tmux import TmuxSessions

__all__ = [
    "CommandResult",
    "CommandRunner",
    "SubprocessRunner",
    "TerminalSessions",
    "TmuxSessions",
]
