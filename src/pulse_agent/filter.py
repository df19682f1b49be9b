"""
pulse-agent — heartbeat filtering stage.

Purpose
- Drop heartbeats the user does not want tracked before any enrichment
  stage touches the file system for them.

Rules (evaluated per heartbeat, first match wins)
- Entity matches an include pattern: keep.
- Entity matches an exclude pattern: drop.
- Local file entity does not exist on disk: drop (unsaved buffer).
- ``include_only_with_project_file`` and no project file in any ancestor
  directory: drop.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from pulse_agent.constants import PROJECT_FILE
from pulse_agent.heartbeat.handle import Handle, HandleOption
from pulse_agent.heartbeat.models import EntityType, Heartbeat, Result
from pulse_agent.remote import is_remote

logger = logging.getLogger(__name__)


class FilteredError(ValueError):
    """Raised by ``check`` with the reason a heartbeat was skipped."""


@dataclass(frozen=True, slots=True)
class FilterConfig:
    exclude: tuple[re.Pattern[str], ...] = ()
    include: tuple[re.Pattern[str], ...] = ()
    include_only_with_project_file: bool = False


def with_filtering(config: FilterConfig) -> HandleOption:
    """Return a stage that drops filtered heartbeats and delegates the rest."""

    def option(next_handle: Handle) -> Handle:
        def handle(heartbeats: list[Heartbeat]) -> list[Result]:
            logger.debug("execute heartbeat filtering")
            kept: list[Heartbeat] = []
            for heartbeat in heartbeats:
                try:
                    check(heartbeat, config)
                except FilteredError as exc:
                    logger.debug("%s", exc)
                    continue
                kept.append(heartbeat)
            if not kept:
                logger.debug("no heartbeats left after filtering, abort heartbeat handling")
                return []
            return next_handle(kept)

        return handle

    return option


def check(heartbeat: Heartbeat, config: FilterConfig) -> None:
    """Raise ``FilteredError`` when ``heartbeat`` must be skipped."""

    entity = heartbeat.entity
    if _matches_any(entity, config.include):
        return
    pattern = _first_match(entity, config.exclude)
    if pattern is not None:
        raise FilteredError(
            f"skipping because matches exclude pattern {pattern.pattern!r}: {entity}"
        )

    if heartbeat.entity_type is not EntityType.FILE or is_remote(entity):
        return

    local = heartbeat.local_file or entity
    if not os.path.isfile(local):
        raise FilteredError(f"skipping because of non-existing file {local!r}")

    if config.include_only_with_project_file and find_project_file(local) is None:
        raise FilteredError(f"skipping because missing {PROJECT_FILE} file in parent path")


def find_project_file(path: str | Path) -> Path | None:
    """Return the nearest project file above ``path``, if any."""

    current = Path(path).resolve()
    if current.is_file():
        current = current.parent
    for directory in (current, *current.parents):
        candidate = directory / PROJECT_FILE
        if candidate.is_file():
            return candidate
    return None


def compile_patterns(raw: Sequence[str]) -> tuple[re.Pattern[str], ...]:
    """Compile user patterns; ``true`` matches everything, invalid regexes are skipped."""

    compiled: list[re.Pattern[str]] = []
    for item in raw:
        text = item.strip()
        if not text:
            continue
        if text.lower() == "true":
            compiled.append(re.compile(".*"))
            continue
        if text.lower() == "false":
            continue
        try:
            compiled.append(re.compile(text, re.IGNORECASE))
        except re.error as exc:
            logger.warning("failed to compile pattern %r: %s", text, exc)
    return tuple(compiled)


def _matches_any(value: str, patterns: Sequence[re.Pattern[str]]) -> bool:
    return _first_match(value, patterns) is not None


def _first_match(value: str, patterns: Sequence[re.Pattern[str]]) -> re.Pattern[str] | None:
    for pattern in patterns:
        if pattern.search(value):
            return pattern
    return None


__all__ = [
    "FilterConfig",
    "FilteredError",
    "check",
    "compile_patterns",
    "find_project_file",
    "with_filtering",
]
