"""Stable constants shared across the agent."""

from __future__ import annotations

from typing import Final

# File names under the user's home directory (or ``PULSE_HOME``).
DEFAULT_CONFIG_FILE: Final[str] = ".pulse.cfg"
DEFAULT_INTERNAL_CONFIG_FILE: Final[str] = ".pulse-internal.cfg"
DEFAULT_RESOURCES_DIR: Final[str] = ".pulse"
DEFAULT_LOG_FILE: Final[str] = "pulse.log"
DEFAULT_QUEUE_FILE: Final[str] = "offline_heartbeats.sqlite3"
PROJECT_FILE: Final[str] = ".pulse-project"
HOME_ENV: Final[str] = "PULSE_HOME"

# Remote API.
DEFAULT_API_URL: Final[str] = "https://api.pulse-agent.dev/api/v1"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 120.0

# Offline sync.
SYNC_SEND_LIMIT: Final[int] = 25
SYNC_MAX_DEFAULT: Final[int] = 1000

# Config sections.
SETTINGS_SECTION: Final[str] = "settings"
INTERNAL_SECTION: Final[str] = "internal"
PROJECT_MAP_SECTION: Final[str] = "projectmap"

__all__ = [
    "DEFAULT_API_URL",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_INTERNAL_CONFIG_FILE",
    "DEFAULT_LOG_FILE",
    "DEFAULT_QUEUE_FILE",
    "DEFAULT_RESOURCES_DIR",
    "DEFAULT_TIMEOUT_SECONDS",
    "HOME_ENV",
    "INTERNAL_SECTION",
    "PROJECT_FILE",
    "PROJECT_MAP_SECTION",
    "SETTINGS_SECTION",
    "SYNC_MAX_DEFAULT",
    "SYNC_SEND_LIMIT",
]
