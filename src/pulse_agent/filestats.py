"""File statistics detection (total lines in file)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import Final

from pulse_agent.heartbeat.handle import Handle, HandleOption
from pulse_agent.heartbeat.models import EntityType, Heartbeat, Result
from pulse_agent.remote import is_remote

logger = logging.getLogger(__name__)

# Files larger than this are not line-counted.
MAX_FILE_SIZE_SUPPORTED: Final[int] = 2 * 1024 * 1024
_CHUNK_SIZE: Final[int] = 32 * 1024


@dataclass(frozen=True, slots=True)
class FileStatsConfig:
    lines_in_file: int | None = None


def with_detection(config: FileStatsConfig | None = None) -> HandleOption:
    cfg = config or FileStatsConfig()

    def option(next_handle: Handle) -> Handle:
        def handle(heartbeats: list[Heartbeat]) -> list[Result]:
            logger.debug("execute filestats detection")
            return next_handle([_detect(heartbeat, cfg) for heartbeat in heartbeats])

        return handle

    return option


def count_lines(path: str) -> int:
    count = 0
    with open(path, "rb") as handle:
        while chunk := handle.read(_CHUNK_SIZE):
            count += chunk.count(b"\n")
    return count


def _detect(heartbeat: Heartbeat, config: FileStatsConfig) -> Heartbeat:
    if heartbeat.entity_type is not EntityType.FILE or heartbeat.lines is not None:
        return heartbeat
    if config.lines_in_file is not None:
        return replace(heartbeat, lines=config.lines_in_file)
    if is_remote(heartbeat.entity):
        return heartbeat

    path = heartbeat.local_file or heartbeat.entity
    try:
        size = os.stat(path).st_size
    except OSError as exc:
        logger.warning("failed to retrieve file stats of file %r: %s", path, exc)
        return heartbeat
    if size > MAX_FILE_SIZE_SUPPORTED:
        logger.debug(
            "file %r exceeds max file size of %d bytes. Lines won't be counted",
            path,
            MAX_FILE_SIZE_SUPPORTED,
        )
        return heartbeat

    try:
        lines = count_lines(path)
    except OSError as exc:
        logger.warning("failed to detect the total number of lines in file %r: %s", path, exc)
        return heartbeat
    return replace(heartbeat, lines=lines)


__all__ = ["FileStatsConfig", "MAX_FILE_SIZE_SUPPORTED", "count_lines", "with_detection"]
