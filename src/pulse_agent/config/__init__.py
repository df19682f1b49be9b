"""
pulse-agent config package public API.

Purpose
- Export the INI store, settings loader, and their error types.
"""

from pulse_agent.config.loader import ENV_PREFIX, ConfigLoadError, Settings, load_config
from pulse_agent.config.store import (
    DATE_FORMAT,
    ConfigReadError,
    ConfigWriteError,
    IniStore,
    config_file_path,
    home_dir,
    internal_config_file_path,
    resources_dir,
)

__all__ = [
    "ConfigLoadError",
    "ConfigReadError",
    "ConfigWriteError",
    "DATE_FORMAT",
    "ENV_PREFIX",
    "IniStore",
    "Settings",
    "config_file_path",
    "home_dir",
    "internal_config_file_path",
    "load_config",
    "resources_dir",
]
