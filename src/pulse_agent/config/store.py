"""
pulse-agent — INI config file store.

Purpose
- Read and write single keys of the main config (``~/.pulse.cfg``) and the
  internal state file (``~/.pulse-internal.cfg``).

Functional requirements
- Missing files and missing sections read as ``None``.
- Writes merge into the existing file and replace it atomically
  (temp file in the same directory, fsync, ``os.replace``).
- Every write failure surfaces as ``ConfigWriteError``.
"""

from __future__ import annotations

import configparser
import contextlib
import io
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Final

from pulse_agent.constants import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_INTERNAL_CONFIG_FILE,
    DEFAULT_RESOURCES_DIR,
    HOME_ENV,
)

# Timestamps persisted in the internal file (backoff_at).
DATE_FORMAT: Final[str] = "%Y-%m-%dT%H:%M:%S%z"


class ConfigReadError(OSError):
    """Raised when an existing config file cannot be read or parsed."""


class ConfigWriteError(OSError):
    """Raised when a config file cannot be written."""


def home_dir(environ: Mapping[str, str] | None = None) -> Path:
    """Return ``$PULSE_HOME`` when set, else the user's home directory."""

    env = os.environ if environ is None else environ
    override = env.get(HOME_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home()


def config_file_path(explicit: str | None = None, environ: Mapping[str, str] | None = None) -> Path:
    if explicit:
        return Path(explicit).expanduser()
    return home_dir(environ) / DEFAULT_CONFIG_FILE


def internal_config_file_path(
    explicit: str | None = None, environ: Mapping[str, str] | None = None
) -> Path:
    if explicit:
        return Path(explicit).expanduser()
    return home_dir(environ) / DEFAULT_INTERNAL_CONFIG_FILE


def resources_dir(environ: Mapping[str, str] | None = None) -> Path:
    return home_dir(environ) / DEFAULT_RESOURCES_DIR


class IniStore:
    """Key/value access to one INI file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> configparser.ConfigParser:
        """Parse the file; a missing file yields an empty parser."""

        parser = _new_parser()
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return parser
        except OSError as exc:
            raise ConfigReadError(f"failed to read config file {self.path}: {exc}") from exc
        try:
            parser.read_string(text, source=str(self.path))
        except configparser.Error as exc:
            raise ConfigReadError(f"failed to parse config file {self.path}: {exc}") from exc
        return parser

    def read(self, section: str, key: str) -> str | None:
        parser = self.load()
        if not parser.has_option(section, key):
            return None
        value = parser.get(section, key).strip()
        return value or None

    def write(self, section: str, values: Mapping[str, str]) -> None:
        """Merge ``values`` into ``section`` and atomically replace the file."""

        try:
            parser = self.load()
        except ConfigReadError as exc:
            raise ConfigWriteError(str(exc)) from exc
        if not parser.has_section(section):
            parser.add_section(section)
        for key, value in values.items():
            parser.set(section, key, value)

        buffer = io.StringIO()
        parser.write(buffer)
        try:
            _replace_file(self.path, buffer.getvalue())
        except OSError as exc:
            raise ConfigWriteError(f"failed to write config file {self.path}: {exc}") from exc

    def remove(self, section: str, *keys: str) -> None:
        try:
            parser = self.load()
        except ConfigReadError as exc:
            raise ConfigWriteError(str(exc)) from exc
        if not parser.has_section(section):
            return
        for key in keys:
            parser.remove_option(section, key)

        buffer = io.StringIO()
        parser.write(buffer)
        try:
            _replace_file(self.path, buffer.getvalue())
        except OSError as exc:
            raise ConfigWriteError(f"failed to write config file {self.path}: {exc}") from exc


def _new_parser() -> configparser.ConfigParser:
    # Values may contain regexes and ``%``; no interpolation.
    return configparser.ConfigParser(interpolation=None)


def _replace_file(target: Path, text: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target.parent),
    )
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as file_handle:
            file_handle.write(text)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


__all__ = [
    "ConfigReadError",
    "ConfigWriteError",
    "DATE_FORMAT",
    "IniStore",
    "config_file_path",
    "home_dir",
    "internal_config_file_path",
    "resources_dir",
]
