"""Configuration management for agentfleet.

Hierarchical YAML configuration with:
- System-level config (/etc/agentfleet/ or %PROGRAMDATA%)
- User-level config (~/.config/agentfleet/ or ~/.agentfleet/)
- Project-level config ($root/.agentfleet/)
- Environment variable overrides (highest priority)

Example usage:
    from agentfleet.config import load_config, resolve_state_dir

    config = load_config(root="/path/to/project")
    print(config.watchdog.stall_timeout_minutes)
    state_dir = resolve_state_dir(config, "/path/to/project")
"""

from agentfleet.config.loader import (
    get_config,
    load_config,
    reset_config,
    resolve_state_dir,
)
from agentfleet.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from agentfleet.config.schema import (
    Config,
    LockConfig,
    LoggingConfig,
    NotifyConfig,
    RecoveryConfig,
    WatchdogConfig,
)

__all__ = [
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    "resolve_state_dir",
    "LockConfig",
    "LoggingConfig",
    "NotifyConfig",
    "RecoveryConfig",
    "WatchdogConfig",
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
]
