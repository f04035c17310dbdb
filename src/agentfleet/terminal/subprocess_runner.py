"""Subprocess-based command runner used by the tmux backend."""

from __future__ import annotations

import asyncio
import os
import shlex
import time

from agentfleet.terminal.result import CommandResult


class SubprocessRunner:
    """Run external commands with asyncio subprocess.

    Never raises for a failing command; launch errors become results with
    the conventional shell exit codes (127 not found, 126 not permitted).
    """

    def __init__(self, env: dict[str, str] | None = None) -> None:
        """Initialize the runner.

        Args:
            env: Extra environment variables for every command.
        """
        self._env = env

    async def run(
        self,
        args: list[str],
        timeout: float | None = 30.0,
        output_limit: int = 200_000,
    ) -> CommandResult:
        """Run a command and capture merged stdout/stderr.

        Args:
            args: Program and arguments; no shell is involved.
            timeout: Timeout in seconds. None for no timeout.
            output_limit: Maximum characters of output to keep.
        """
        start_time = time.perf_counter()
        full_command = shlex.join(args)

        process_env = os.environ.copy()
        if self._env:
            process_env.update(self._env)

        def elapsed() -> float:
            return (time.perf_counter() - start_time) * 1000

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=process_env,
            )
        except FileNotFoundError:
            return CommandResult(full_command, 127, f"Command not found: {args[0]}", "error", elapsed())
        except PermissionError:
            return CommandResult(full_command, 126, f"Permission denied: {args[0]}", "error", elapsed())
        except OSError as e:
            return CommandResult(full_command, 1, f"OS error: {e}", "error", elapsed())

        try:
            stdout_data, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            try:
                process.kill()
                await process.wait()
            except ProcessLookupError:
                pass
            return CommandResult(
                full_command, None, f"Command timed out after {timeout}s", "timeout", elapsed()
            )

        output = stdout_data.decode("utf-8", errors="replace")
        if len(output) > output_limit:
            # Keep the tail; pane captures matter most at the bottom
            output = output[-output_limit:]

        exit_code = process.returncode
        return CommandResult(
            command=full_command,
            exit_code=exit_code,
            output=output,
            status="ok" if exit_code == 0 else "error",
            duration_ms=elapsed(),
        )
