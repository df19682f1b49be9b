"""Write one or more ``key value`` pairs to a section of the main config file."""

from __future__ import annotations

from collections.abc import Sequence

from pulse_agent.config.loader import Settings
from pulse_agent.config.store import ConfigWriteError
from pulse_agent.constants import SETTINGS_SECTION
from pulse_agent.main import ExitCode
from pulse_agent.supervisor import CommandError


def parse_pairs(items: Sequence[str]) -> dict[str, str]:
    """``["a", "1", "b", "2"]`` -> ``{"a": "1", "b": "2"}``; odd length is an error."""

    if not items or len(items) % 2 != 0:
        raise ValueError("config-write expects KEY VALUE pairs")
    pairs: dict[str, str] = {}
    for index in range(0, len(items), 2):
        key = items[index].strip()
        if not key:
            raise ValueError("config-write keys must not be empty")
        pairs[key] = items[index + 1].strip()
    return pairs


def run(settings: Settings) -> int:
    section = settings.get_str("config_section", SETTINGS_SECTION) or SETTINGS_SECTION
    try:
        pairs = parse_pairs(settings.get_list("config_write"))
    except ValueError as exc:
        raise CommandError(int(ExitCode.ERR_CONFIG_FILE_WRITE), str(exc)) from exc

    try:
        settings.config_store().write(section, pairs)
    except ConfigWriteError as exc:
        raise CommandError(int(ExitCode.ERR_CONFIG_FILE_WRITE), str(exc)) from exc
    return int(ExitCode.SUCCESS)


__all__ = ["parse_pairs", "run"]
