"""Print one value from the main config file."""

from __future__ import annotations

import sys
from typing import TextIO

from pulse_agent.config.loader import Settings
from pulse_agent.config.store import ConfigReadError
from pulse_agent.constants import SETTINGS_SECTION
from pulse_agent.main import ExitCode
from pulse_agent.supervisor import CommandError


def run(settings: Settings, *, stdout: TextIO | None = None) -> int:
    section = settings.get_str("config_section", SETTINGS_SECTION) or SETTINGS_SECTION
    key = settings.get_str("config_read")
    if not key:
        raise CommandError(int(ExitCode.ERR_CONFIG_FILE_READ), "no config key given")

    try:
        value = settings.config_store().read(section, key)
    except ConfigReadError as exc:
        raise CommandError(int(ExitCode.ERR_CONFIG_FILE_READ), str(exc)) from exc
    if value is None:
        raise CommandError(
            int(ExitCode.ERR_CONFIG_FILE_READ),
            f"given section and key {section}.{key} not found",
        )

    print(value, file=stdout if stdout is not None else sys.stdout)
    return int(ExitCode.SUCCESS)


__all__ = ["run"]
