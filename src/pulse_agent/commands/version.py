"""``version`` and ``user-agent`` commands."""

from __future__ import annotations

import sys
from typing import TextIO

from pulse_agent import __version__
from pulse_agent.config.loader import Settings
from pulse_agent.heartbeat.models import user_agent
from pulse_agent.main import ExitCode


def run(settings: Settings, *, stdout: TextIO | None = None) -> int:
    print(f"pulse {__version__}", file=stdout if stdout is not None else sys.stdout)
    return int(ExitCode.SUCCESS)


def run_user_agent(settings: Settings, *, stdout: TextIO | None = None) -> int:
    print(user_agent(settings.get_str("plugin")), file=stdout if stdout is not None else sys.stdout)
    return int(ExitCode.SUCCESS)


__all__ = ["run", "run_user_agent"]
