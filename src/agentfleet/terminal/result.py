"""Command execution result dataclass."""

from __future__ import annotations

from dataclasses import dataclass

from agentfleet.errors import ExternalCollaboratorError


@dataclass
class CommandResult:
    """Result of running one external command.

    Attributes:
        command: The command line that was executed.
        exit_code: Process exit code (0 = success), or None if killed on timeout.
        output: Combined stdout/stderr output (may be truncated).
        status: "ok", "error" or "timeout".
        duration_ms: Execution duration in milliseconds.
    """

    command: str
    exit_code: int | None
    output: str
    status: str  # "ok", "error", "timeout"
    duration_ms: float

    @property
    def success(self) -> bool:
        """True if command completed with exit code 0."""
        return self.exit_code == 0

    def check(self) -> CommandResult:
        """Return self, or raise ExternalCollaboratorError if the command failed."""
        if not self.success:
            detail = self.output.strip().splitlines()[-1:] or [self.status]
            raise ExternalCollaboratorError(
                f"`{self.command}` failed ({self.status}, exit={self.exit_code}): {detail[0]}"
            )
        return self

    def __repr__(self) -> str:
        if self.success:
            lines = self.output.count("\n") + 1 if self.output else 0
            return f"<CommandResult ok, {lines} lines>"
        return f"<CommandResult {self.status}, exit={self.exit_code}>"
