"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Config caching with reset support
- Conversion from dict to the typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from agentfleet.config.merge import merge_configs
from agentfleet.config.paths import get_config_paths
from agentfleet.config.schema import (
    Config,
    LockConfig,
    LoggingConfig,
    NotifyConfig,
    RecoveryConfig,
    WatchdogConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("agentfleet.config")

_cached_config: Config | None = None

# env var -> (section, key, converter)
_ENV_NUMBERS: dict[str, tuple[str, str, type]] = {
    "AF_CHECK_INTERVAL": ("watchdog", "check_interval_seconds", float),
    "AF_STALL_TIMEOUT": ("watchdog", "stall_timeout_minutes", float),
    "AF_CAPTURE_LINES": ("watchdog", "capture_lines", int),
    "AF_LOCK_TIMEOUT": ("locks", "timeout_minutes", float),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build a config dict from AF_* environment variables."""
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("AF_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    state_dir = os.environ.get("AF_STATE_DIR")
    if state_dir:
        overrides["state_dir"] = state_dir

    for var, (section, key, convert) in _ENV_NUMBERS.items():
        raw = os.environ.get(var)
        if not raw:
            continue
        try:
            value = convert(raw)
        except ValueError:
            _log.warning("Ignoring %s=%r: not a number", var, raw)
            continue
        overrides.setdefault(section, {})[key] = value

    return overrides


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged dict to the typed Config dataclass."""
    wd = _section(data, "watchdog")
    watchdog = WatchdogConfig(
        check_interval_seconds=float(wd.get("check_interval_seconds", 30.0)),
        stall_timeout_minutes=float(wd.get("stall_timeout_minutes", 5.0)),
        capture_lines=int(wd.get("capture_lines", 100)),
    )

    lk = _section(data, "locks")
    locks = LockConfig(
        timeout_minutes=float(lk.get("timeout_minutes", 10.0)),
        mutate_timeout_seconds=float(lk.get("mutate_timeout_seconds", 10.0)),
    )

    rc = _section(data, "recovery")
    recovery = RecoveryConfig(
        exit_text=str(rc.get("exit_text", "/exit")),
        grace_seconds=float(rc.get("grace_seconds", 2.0)),
    )

    nt = _section(data, "notify")
    notify = NotifyConfig(
        orchestrator_session=str(nt.get("orchestrator_session", "orchestrator")),
    )

    lg = _section(data, "logging")
    logging_config = LoggingConfig(
        level=lg.get("level"),
        verbose=lg.get("verbose"),
        file=lg.get("file"),
    )

    known_keys = {"state_dir", "watchdog", "locks", "recovery", "notify", "logging"}
    extra = {k: v for k, v in data.items() if k not in known_keys}

    return Config(
        state_dir=str(data.get("state_dir", ".agentfleet")),
        watchdog=watchdog,
        locks=locks,
        recovery=recovery,
        notify=notify,
        logging=logging_config,
        extra=extra,
    )


def load_config(root: str | Path | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables (AF_*)
    2. Project config ($root/.agentfleet/config.yaml)
    3. User config
    4. System config

    Args:
        root: Workspace root for the project-level config.
        reload: Force reload even if cached.

    Returns:
        Merged Config object.
    """
    global _cached_config

    if _cached_config is not None and not reload and root is None:
        return _cached_config

    layers: list[dict[str, Any]] = []
    for path in get_config_paths(root):
        layer = load_yaml_file(path)
        if layer:
            _log.debug("Loaded config from %s", path)
            layers.append(layer)

    env_layer = env_overrides()
    if env_layer:
        layers.append(env_layer)

    config = dict_to_config(merge_configs(*layers))

    # Cache only global config (no root)
    if root is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Reset cached config. Useful for tests."""
    global _cached_config
    _cached_config = None


def resolve_state_dir(config: Config, root: str | Path) -> Path:
    """Absolute directory holding the registry document and lock files."""
    state_dir = Path(config.state_dir).expanduser()
    if not state_dir.is_absolute():
        state_dir = Path(root) / state_dir
    return state_dir.resolve()
