"""
pulse-agent — heartbeat sanitization stage.

Purpose
- Redact file names, project metadata, and branch names the user asked to
  hide. Runs last among enrichment stages so nothing unsanitized reaches the
  API or the offline queue.

Rules
- ``hide_file_names`` match: entity becomes ``HIDDEN<ext>``; line/cursor/line
  count cleared.
- ``hide_project_names`` match: same as above plus branch cleared.
- ``hide_branch_names`` match: branch cleared.
- ``hide_project_folder``: entity made relative to the project root.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, replace
from pathlib import Path, PurePosixPath
from typing import Final

from pulse_agent.heartbeat.handle import Handle, HandleOption
from pulse_agent.heartbeat.models import EntityType, Heartbeat, Result
from pulse_agent.remote import is_remote

logger = logging.getLogger(__name__)

HIDDEN_ENTITY: Final[str] = "HIDDEN"


@dataclass(frozen=True, slots=True)
class SanitizeConfig:
    file_patterns: tuple[re.Pattern[str], ...] = ()
    project_patterns: tuple[re.Pattern[str], ...] = ()
    branch_patterns: tuple[re.Pattern[str], ...] = ()
    hide_project_folder: bool = False


def with_sanitization(config: SanitizeConfig) -> HandleOption:
    def option(next_handle: Handle) -> Handle:
        def handle(heartbeats: list[Heartbeat]) -> list[Result]:
            logger.debug("execute heartbeat sanitization")
            return next_handle([sanitize(heartbeat, config) for heartbeat in heartbeats])

        return handle

    return option


def should_sanitize(value: str, patterns: Sequence[re.Pattern[str]]) -> bool:
    return any(pattern.search(value) for pattern in patterns)


def sanitize(heartbeat: Heartbeat, config: SanitizeConfig) -> Heartbeat:
    entity = heartbeat.entity

    if config.hide_project_folder and heartbeat.entity_type is EntityType.FILE:
        heartbeat = _relative_to_project(heartbeat)

    if should_sanitize(entity, config.project_patterns):
        return replace(_hide_entity(heartbeat), branch=None)

    if should_sanitize(entity, config.file_patterns):
        heartbeat = _hide_entity(heartbeat)

    if heartbeat.branch is not None and should_sanitize(entity, config.branch_patterns):
        heartbeat = replace(heartbeat, branch=None)

    return heartbeat


def _hide_entity(heartbeat: Heartbeat) -> Heartbeat:
    entity = heartbeat.entity
    if heartbeat.entity_type is EntityType.FILE:
        entity = HIDDEN_ENTITY + PurePosixPath(entity.replace("\\", "/")).suffix
    return replace(
        heartbeat,
        entity=entity,
        local_file=None,
        line_number=None,
        cursor_position=None,
        lines=None,
    )


def _relative_to_project(heartbeat: Heartbeat) -> Heartbeat:
    if is_remote(heartbeat.entity):
        return heartbeat

    from pulse_agent.project import detect_from_files

    root = heartbeat.project_path_override
    if root is None:
        info = detect_from_files(heartbeat.local_file or heartbeat.entity)
        root = str(info.root) if info.root is not None else None
    if root is None:
        return heartbeat
    try:
        relative = Path(heartbeat.entity).relative_to(root)
    except ValueError:
        return heartbeat
    return replace(heartbeat, entity=relative.as_posix())


__all__ = [
    "HIDDEN_ENTITY",
    "SanitizeConfig",
    "sanitize",
    "should_sanitize",
    "with_sanitization",
]
