"""Remote (ssh/sftp) entity detection."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Final

from pulse_agent.heartbeat.handle import Handle, HandleOption
from pulse_agent.heartbeat.models import EntityType, Heartbeat, Result

logger = logging.getLogger(__name__)

REMOTE_ADDRESS_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)^(?P<scheme>ssh|sftp)://"
    r"(?:(?P<credentials>[^@/]+)@)?"
    r"(?P<host>[^:/@]+)"
    r"(?::(?P<port>\d+))?"
    r"(?P<path>/.*)?$"
)


def is_remote(entity: str) -> bool:
    return REMOTE_ADDRESS_PATTERN.match(entity) is not None


def strip_credentials(entity: str) -> str:
    """Drop ``user:password@`` from a remote address, keep everything else."""

    match = REMOTE_ADDRESS_PATTERN.match(entity)
    if match is None or match.group("credentials") is None:
        return entity
    start, end = match.span("credentials")
    return entity[:start] + entity[end + 1 :]


def with_detection() -> HandleOption:
    """Strip credentials from remote file entities before any other stage sees them."""

    def option(next_handle: Handle) -> Handle:
        def handle(heartbeats: list[Heartbeat]) -> list[Result]:
            logger.debug("execute remote detection")
            out: list[Heartbeat] = []
            for heartbeat in heartbeats:
                if heartbeat.entity_type is EntityType.FILE and is_remote(heartbeat.entity):
                    heartbeat = replace(
                        heartbeat,
                        entity=strip_credentials(heartbeat.entity),
                        local_file=None,
                    )
                out.append(heartbeat)
            return next_handle(out)

        return handle

    return option


__all__ = [
    "REMOTE_ADDRESS_PATTERN",
    "is_remote",
    "strip_credentials",
    "with_detection",
]
