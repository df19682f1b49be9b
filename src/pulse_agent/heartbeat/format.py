"""Entity path normalization stage."""

from __future__ import annotations

import logging
import os
from dataclasses import replace

from pulse_agent.heartbeat.handle import Handle, HandleOption
from pulse_agent.heartbeat.models import EntityType, Heartbeat, Result
from pulse_agent.remote import is_remote

logger = logging.getLogger(__name__)


def format_path(path: str) -> str:
    """Expand ``~`` and make ``path`` absolute with forward slashes."""

    expanded = os.path.expanduser(path)
    absolute = os.path.abspath(expanded)
    return absolute.replace("\\", "/")


def with_formatting() -> HandleOption:
    """Normalize local file entities; leave remote and non-file entities untouched."""

    def option(next_handle: Handle) -> Handle:
        def handle(heartbeats: list[Heartbeat]) -> list[Result]:
            logger.debug("execute heartbeat formatting")
            return next_handle([_format(heartbeat) for heartbeat in heartbeats])

        return handle

    return option


def _format(heartbeat: Heartbeat) -> Heartbeat:
    if heartbeat.entity_type is not EntityType.FILE or is_remote(heartbeat.entity):
        return heartbeat
    local_file = heartbeat.local_file
    if local_file:
        local_file = format_path(local_file)
    project_path_override = heartbeat.project_path_override
    if project_path_override:
        project_path_override = format_path(project_path_override)
    return replace(
        heartbeat,
        entity=format_path(heartbeat.entity),
        local_file=local_file,
        project_path_override=project_path_override,
    )


__all__ = ["format_path", "with_formatting"]
