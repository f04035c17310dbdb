"""Logging for agentfleet.

Everything logs under the ``agentfleet`` logger. One-shot CLI commands stay
quiet unless asked; the watchdog runs at info and names the agent in every
line it writes. ``-v`` counts map to error, warning, info, verbose and trace.
A log file can be set in config or with AF_LOG.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentfleet.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("agentfleet")

_initialized = False

_LEVEL_MAP = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# --verbose=N to log levels (0=errors only, 4=everything)
_VERBOSITY_MAP = {
    0: logging.ERROR,
    1: logging.WARNING,
    2: logging.INFO,
    3: VERBOSE,
    4: TRACE,
}


class _LowercaseLevelFormatter(logging.Formatter):
    """Formatter that emits lowercase level names."""

    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def resolve_level(config: LoggingConfig | None, verbose: int | None = None) -> int:
    """Pick the effective log level.

    An explicit ``verbose`` count wins, then ``config.verbose``, then
    ``config.level``. Defaults to INFO.
    """
    if verbose is not None:
        return _VERBOSITY_MAP.get(verbose, TRACE)
    if config:
        if config.verbose is not None:
            return _VERBOSITY_MAP.get(config.verbose, TRACE)
        if config.level:
            return _LEVEL_MAP.get(config.level.upper(), logging.INFO)
    return logging.INFO


def setup_logging(
    config: LoggingConfig | None = None,
    *,
    verbose: int | None = None,
    stderr: bool = True,
) -> None:
    """Install handlers on the ``agentfleet`` logger.

    Only the first call has an effect; use reset_logging() to start over.

    Args:
        config: Logging section of the loaded config (level, verbose, file).
        verbose: ``-v`` count from the command line, overrides config.
        stderr: Also log to stderr. The watchdog and CLI want this; library
            callers embedding agentfleet usually pass False.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    level = resolve_level(config, verbose)
    logger.setLevel(level)

    log_path = config.file if config and config.file else os.environ.get("AF_LOG")
    if log_path:
        try:
            _attach(logging.FileHandler(os.path.expanduser(log_path), encoding="utf-8"), level)
        except OSError as e:
            # Unwritable log path: fall back to stderr
            print(f"[agentfleet] Failed to open log file: {e}", file=sys.stderr)
            stderr = True

    if stderr:
        _attach(logging.StreamHandler(sys.stderr), level)


def reset_logging() -> None:
    """Drop all handlers and allow setup_logging() to run again (tests)."""
    global _initialized
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    _initialized = False


def _attach(handler: logging.Handler, level: int) -> None:
    # HH:MM:SS level: message
    handler.setFormatter(
        _LowercaseLevelFormatter("%(asctime)s %(levelname)s: %(message)s", datefmt="%H:%M:%S")
    )
    handler.setLevel(level)
    logger.addHandler(handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """Child of the ``agentfleet`` logger, e.g. ``get_logger("locks")``.

    Returns the package logger itself when ``name`` is empty.
    """
    return logger.getChild(name) if name else logger
