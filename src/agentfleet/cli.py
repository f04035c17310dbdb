"""Command-line interface for agentfleet."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import signal
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TextIO

from agentfleet import __version__
from agentfleet.agents import AgentRegistry, AgentStatus
from agentfleet.clock import utc_now
from agentfleet.config import Config, load_config, resolve_state_dir
from agentfleet.errors import AgentFleetError, AgentNotFoundError
from agentfleet.hooks import HookEvent, agent_complete, post_tool, pre_tool
from agentfleet.locks import LockManager, LockRecord, migrate_legacy_locks
from agentfleet.logging import get_logger, setup_logging
from agentfleet.notify import TerminalNotifier
from agentfleet.recovery import RecoveryCoordinator
from agentfleet.terminal import TmuxSessions
from agentfleet.watchdog import Watchdog

log = get_logger("cli")


def _non_negative(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0: {value!r}")
    return number


def _positive(value: str) -> float:
    number = _non_negative(value)
    if number == 0:
        raise argparse.ArgumentTypeError(f"must be > 0: {value!r}")
    return number


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="agentfleet",
        description="Coordinate a fleet of coding agents: file locks, registry, watchdog",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be repeated)",
    )
    parser.add_argument(
        "--root",
        type=Path,
        default=None,
        help="Workspace root (default: current directory)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # Locks
    acquire = subparsers.add_parser("acquire", help="Acquire a file lock")
    acquire.add_argument("path", help="File to lock")
    acquire.add_argument("session_id", help="Session taking the lock")
    acquire.add_argument("owner_name", nargs="?", help="Agent name, for diagnostics")
    acquire.add_argument("--operation", default="cli", help="Why the lock is taken")

    release = subparsers.add_parser("release", help="Release a file lock")
    release.add_argument("path", help="Locked file")
    release.add_argument("session_id", help="Session that holds the lock")

    cleanup = subparsers.add_parser("cleanup", help="Delete expired locks")
    cleanup.add_argument(
        "timeout_minutes",
        nargs="?",
        type=_non_negative,
        help="Age in minutes after which a lock is expired (default: configured)",
    )

    list_parser = subparsers.add_parser("list", help="List current locks")
    list_parser.add_argument("--json", action="store_true", help="Print JSON")

    release_agent = subparsers.add_parser("release-agent", help="Release all locks of an agent")
    release_agent.add_argument("agent_name", help="Registered agent name")

    check = subparsers.add_parser("check", help="Show who holds the lock on a file")
    check.add_argument("path", help="File to check")

    migrate = subparsers.add_parser(
        "migrate-locks", help="Import locks from a legacy file_locks.json"
    )
    migrate.add_argument("legacy_file", type=Path, help="Legacy lock document")

    # Agents
    agents = subparsers.add_parser("agents", help="List registered agents")
    agents.add_argument("--status", help="Only agents with this status")
    agents.add_argument("--json", action="store_true", help="Print JSON")

    status = subparsers.add_parser("status", help="Show one agent")
    status.add_argument("name", help="Agent name")

    set_status = subparsers.add_parser("set-status", help="Change an agent's status")
    set_status.add_argument("name", help="Agent name")
    set_status.add_argument("status", help="Idle or Working")
    set_status.add_argument("--task", help="Also set the current task")

    close = subparsers.add_parser("close", help="Remove an idle agent")
    close.add_argument("name", help="Agent name")

    register = subparsers.add_parser("register", help="Register a new idle agent")
    register.add_argument("name", help="Agent name")
    register.add_argument("session_id", help="Agent session ID")
    register.add_argument("--task", default="", help="Initial task description")

    # Watchdog
    watchdog = subparsers.add_parser("watchdog", help="Monitor working agents")
    watchdog.add_argument(
        "--check-interval",
        type=_positive,
        help="Seconds between checks (default: 30)",
    )
    watchdog.add_argument(
        "--stall-timeout",
        type=_positive,
        help="Minutes of unchanged output before an agent is stalled (default: 5)",
    )

    # Hooks
    hook = subparsers.add_parser("hook", help="Run an agent tool-use hook (JSON on stdin)")
    hook.add_argument("event", choices=["pre-tool", "post-tool", "complete"])

    return parser


@dataclass
class Workspace:
    """Config and stores resolved for one CLI invocation."""

    root: Path
    config: Config
    state_dir: Path
    registry: AgentRegistry
    locks: LockManager

    @classmethod
    def open(cls, root: Path | None, config: Config | None = None) -> Workspace:
        root = (root or Path.cwd()).resolve()
        config = config or load_config(root)
        state_dir = resolve_state_dir(config, root)
        return cls(
            root=root,
            config=config,
            state_dir=state_dir,
            registry=AgentRegistry(state_dir, lock_timeout=config.locks.mutate_timeout_seconds),
            locks=LockManager(
                state_dir,
                timeout_minutes=config.locks.timeout_minutes,
                mutate_timeout=config.locks.mutate_timeout_seconds,
            ),
        )


def _format_lock(record: LockRecord) -> str:
    age_minutes = record.age_seconds(utc_now()) / 60
    owner = record.owner_session_id
    if record.owner_agent_name:
        owner += f" ({record.owner_agent_name})"
    operation = f" [{record.operation}]" if record.operation else ""
    return f"{record.resource_key}  {owner}{operation}  {age_minutes:.1f} min"


def _print_json(data: Any, out: TextIO) -> None:
    json.dump(data, out, indent=2)
    out.write("\n")


def _fail(message: str, err: TextIO) -> int:
    print(f"Error: {message}", file=err)
    return 1


def _dispatch(
    parsed: argparse.Namespace,
    ws: Workspace,
    stdin: TextIO,
    out: TextIO,
    err: TextIO,
) -> int:
    command = parsed.command

    if command == "acquire":
        result = ws.locks.acquire(
            parsed.path, parsed.session_id, parsed.operation, parsed.owner_name
        )
        if not result.granted:
            return _fail(result.reason or "lock not granted", err)
        print(f"Lock acquired: {result.record.resource_key}", file=out)
        return 0

    if command == "release":
        if not ws.locks.release(parsed.path, parsed.session_id):
            return _fail(
                f"No lock on {ws.locks.canonicalize(parsed.path)} held by session "
                f"'{parsed.session_id}'",
                err,
            )
        print(f"Lock released: {ws.locks.canonicalize(parsed.path)}", file=out)
        return 0

    if command == "cleanup":
        removed = ws.locks.cleanup_expired(parsed.timeout_minutes)
        print(f"Cleaned up {removed} expired lock(s)", file=out)
        return 0

    if command == "list":
        records = ws.locks.list_locks()
        if parsed.json:
            _print_json([r.to_dict() for r in records], out)
        elif not records:
            print("No active locks", file=out)
        else:
            for record in records:
                print(_format_lock(record), file=out)
        return 0

    if command == "release-agent":
        if ws.registry.find(parsed.agent_name) is None:
            return _fail(str(AgentNotFoundError(parsed.agent_name)), err)
        released = ws.locks.release_for_agent(parsed.agent_name, ws.registry)
        print(f"Released {released} lock(s) for agent '{parsed.agent_name}'", file=out)
        return 0

    if command == "check":
        record = ws.locks.check(parsed.path)
        if record is None:
            print(f"Not locked: {ws.locks.canonicalize(parsed.path)}", file=out)
        else:
            print(_format_lock(record), file=out)
        return 0

    if command == "migrate-locks":
        imported = migrate_legacy_locks(parsed.legacy_file, ws.locks)
        print(f"Migrated {imported} lock(s) from {parsed.legacy_file}", file=out)
        return 0

    if command == "agents":
        if parsed.status:
            records = ws.registry.list_by_status(AgentStatus.parse(parsed.status))
        else:
            records = ws.registry.list_all()
        if parsed.json:
            _print_json([r.to_dict() for r in records], out)
        elif not records:
            print("No agents registered", file=out)
        else:
            for agent in records:
                task = f"  {agent.current_task}" if agent.current_task else ""
                print(f"{agent.name}  {agent.status.label}  {agent.session_id}{task}", file=out)
        return 0

    if command == "status":
        agent = ws.registry.find(parsed.name)
        if agent is None:
            return _fail(str(AgentNotFoundError(parsed.name)), err)
        _print_json(agent.to_dict(), out)
        return 0

    if command == "set-status":
        new_status = AgentStatus.parse(parsed.status)
        if new_status is AgentStatus.STALLED:
            return _fail("Only the watchdog marks agents Stalled", err)
        if parsed.task is not None:
            ws.registry.set_task(parsed.name, parsed.task)
        agent = ws.registry.update_status(parsed.name, new_status)
        print(f"Agent '{agent.name}' status set to {agent.status.label}", file=out)
        return 0

    if command == "close":
        if not ws.registry.close(parsed.name):
            return _fail(str(AgentNotFoundError(parsed.name)), err)
        print(f"Agent '{parsed.name}' closed", file=out)
        return 0

    if command == "register":
        agent = ws.registry.create(parsed.name, parsed.session_id, parsed.task)
        print(f"Agent '{agent.name}' registered", file=out)
        return 0

    if command == "watchdog":
        return asyncio.run(_run_watchdog(ws, parsed.check_interval, parsed.stall_timeout))

    if command == "hook":
        return _run_hook(parsed.event, ws, stdin, out, err)

    return 1


def _build_recovery(ws: Workspace) -> tuple[TmuxSessions, TerminalNotifier, RecoveryCoordinator]:
    terminal = TmuxSessions()
    notifier = TerminalNotifier(terminal, ws.config.notify.orchestrator_session)
    recovery = RecoveryCoordinator(
        ws.registry,
        ws.locks,
        terminal,
        notifier,
        exit_text=ws.config.recovery.exit_text,
        grace_seconds=ws.config.recovery.grace_seconds,
    )
    return terminal, notifier, recovery


async def _run_watchdog(
    ws: Workspace,
    check_interval: float | None,
    stall_timeout: float | None,
) -> int:
    terminal, _, recovery = _build_recovery(ws)
    settings = ws.config.watchdog
    watchdog = Watchdog(
        ws.registry,
        terminal,
        recovery,
        check_interval_seconds=check_interval or settings.check_interval_seconds,
        stall_timeout_minutes=stall_timeout or settings.stall_timeout_minutes,
        capture_lines=settings.capture_lines,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, watchdog.stop)
        except (NotImplementedError, RuntimeError):
            # No signal handlers on this platform/thread; Ctrl+C cancels instead
            pass

    await watchdog.run()
    return 0


def _run_hook(event: str, ws: Workspace, stdin: TextIO, out: TextIO, err: TextIO) -> int:
    hook_event = HookEvent.from_json(stdin.read())

    if event == "pre-tool":
        result = pre_tool(hook_event, ws.locks, ws.registry)
    elif event == "post-tool":
        result = post_tool(hook_event, ws.locks)
    else:
        _, notifier, _ = _build_recovery(ws)
        result = asyncio.run(agent_complete(hook_event, ws.registry, notifier))

    if not result.allowed:
        return _fail(result.message, err)
    if result.message:
        print(result.message, file=out)
    return 0


def run_cli(
    args: Sequence[str],
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    """Run the CLI with the given arguments. Returns the exit code."""
    stdin = stdin or sys.stdin
    out = stdout or sys.stdout
    err = stderr or sys.stderr

    parser = create_parser()
    try:
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            parsed = parser.parse_args(args)
    except SystemExit as e:
        # argparse exits 0 for --help/--version and 2 on usage errors
        return 0 if not e.code else 1

    if parsed.command is None:
        parser.print_help(out)
        return 1

    try:
        ws = Workspace.open(parsed.root)

        verbose = parsed.verbose or None
        quiet_default = ws.config.logging.level is None and ws.config.logging.verbose is None
        if verbose is None and quiet_default and parsed.command != "watchdog":
            verbose = 1  # Warnings only for one-shot commands
        setup_logging(ws.config.logging, verbose=verbose)

        return _dispatch(parsed, ws, stdin, out, err)
    except (AgentFleetError, ValueError) as e:
        log.debug("Command %s failed", parsed.command, exc_info=True)
        return _fail(str(e), err)


def main() -> None:
    """Console script entry point."""
    sys.exit(run_cli(sys.argv[1:]))
