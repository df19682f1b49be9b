"""Print the number of heartbeats waiting in the offline queue."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

from pulse_agent.config.loader import Settings
from pulse_agent.main import ExitCode
from pulse_agent.offline.queue import OfflineQueue, OfflineQueueError
from pulse_agent.offline.save import queue_path_for
from pulse_agent.supervisor import CommandError

logger = logging.getLogger(__name__)


def run(settings: Settings, *, stdout: TextIO | None = None) -> int:
    try:
        count = OfflineQueue(queue_path_for(settings)).count()
    except OfflineQueueError as exc:
        raise CommandError(
            int(ExitCode.ERR_GENERIC), f"failed to count offline heartbeats: {exc}"
        ) from exc

    print(count, file=stdout if stdout is not None else sys.stdout)
    return int(ExitCode.SUCCESS)


__all__ = ["run"]
