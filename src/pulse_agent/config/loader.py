"""
pulse-agent — runtime settings loader.

Purpose
- Resolve effective settings from CLI flags, ``PULSE_`` environment
  variables, the ``[settings]`` section of the INI config, and defaults.

Functional requirements
- Precedence: CLI > env > file > defaults, per key.
- Unparseable config files raise ``ConfigLoadError``; a missing file is
  treated as empty unless it was given explicitly.
- Boolean/int/float coercion errors name the key and its source.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from pulse_agent.config.store import (
    ConfigReadError,
    IniStore,
    config_file_path,
    internal_config_file_path,
)
from pulse_agent.constants import PROJECT_MAP_SECTION, SETTINGS_SECTION

ENV_PREFIX: Final[str] = "PULSE_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or a value cannot be coerced."""


@dataclass(frozen=True, slots=True)
class Settings:
    """Layered view over CLI, environment, and config file values."""

    config_path: Path
    internal_config_path: Path
    cli: Mapping[str, object] = field(default_factory=dict)
    environ: Mapping[str, str] = field(default_factory=dict)
    file_values: Mapping[str, str] = field(default_factory=dict)
    project_map: tuple[tuple[str, str], ...] = ()

    def raw(self, key: str) -> tuple[object, str] | None:
        """Return ``(value, source)`` for the highest-precedence layer setting ``key``."""

        cli_value = self.cli.get(key)
        if cli_value is not None:
            return cli_value, "cli"
        env_value = self.environ.get(_env_name(key))
        if env_value is not None and env_value.strip():
            return env_value, _env_name(key)
        file_value = self.file_values.get(key)
        if file_value is not None and file_value.strip():
            return file_value, f"{self.config_path}"
        return None

    def get_str(self, key: str, default: str | None = None) -> str | None:
        found = self.raw(key)
        if found is None:
            return default
        value = str(found[0]).strip()
        return value or default

    def get_bool(self, key: str, default: bool = False) -> bool:
        found = self.raw(key)
        if found is None:
            return default
        value, source = found
        if isinstance(value, bool):
            return value
        lowered = str(value).strip().lower()
        if lowered in _BOOLEAN_TRUE:
            return True
        if lowered in _BOOLEAN_FALSE:
            return False
        raise ConfigLoadError(
            f"{key} ({source}) must be a boolean (true/false/1/0/yes/no/on/off)"
        )

    def get_int(self, key: str, default: int | None = None) -> int | None:
        found = self.raw(key)
        if found is None:
            return default
        value, source = found
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        try:
            return int(str(value).strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{key} ({source}) must be an integer") from exc

    def get_float(self, key: str, default: float | None = None) -> float | None:
        found = self.raw(key)
        if found is None:
            return default
        value, source = found
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        try:
            return float(str(value).strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{key} ({source}) must be a number") from exc

    def get_list(self, key: str) -> tuple[str, ...]:
        """Return a multi-line (or list-valued CLI) setting as stripped entries."""

        found = self.raw(key)
        if found is None:
            return ()
        value = found[0]
        if isinstance(value, (list, tuple)):
            items = [str(item) for item in value]
        else:
            items = str(value).splitlines()
        return tuple(item.strip() for item in items if item.strip())

    def config_store(self) -> IniStore:
        return IniStore(self.config_path)

    def internal_store(self) -> IniStore:
        return IniStore(self.internal_config_path)


def load_config(
    config_path: str | Path | None = None,
    *,
    internal_config_path: str | Path | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
    skip_file: bool = False,
) -> Settings:
    """Load effective settings with precedence CLI > env > file > defaults."""

    env_map = dict(os.environ if environ is None else environ)
    explicit = config_path is not None
    resolved = config_file_path(str(config_path) if explicit else None, env_map)
    internal = internal_config_file_path(
        str(internal_config_path) if internal_config_path is not None else None, env_map
    )

    file_values: dict[str, str] = {}
    project_map: tuple[tuple[str, str], ...] = ()
    if not skip_file:
        if explicit and not resolved.exists():
            raise ConfigLoadError(f"config file not found: {resolved}")
        try:
            parser = IniStore(resolved).load()
        except ConfigReadError as exc:
            raise ConfigLoadError(str(exc)) from exc
        if parser.has_section(SETTINGS_SECTION):
            file_values = dict(parser.items(SETTINGS_SECTION))
        if parser.has_section(PROJECT_MAP_SECTION):
            project_map = tuple(parser.items(PROJECT_MAP_SECTION))

    return Settings(
        config_path=resolved,
        internal_config_path=internal,
        cli={key: value for key, value in (cli_overrides or {}).items() if value is not None},
        environ=env_map,
        file_values=file_values,
        project_map=project_map,
    )


def _env_name(key: str) -> str:
    return ENV_PREFIX + key.replace("-", "_").upper()


__all__ = ["ConfigLoadError", "ENV_PREFIX", "Settings", "load_config"]
