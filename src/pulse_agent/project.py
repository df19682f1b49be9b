"""
pulse-agent — project and branch detection.

Detection order per heartbeat
1. ``project_override`` names the project (branch still detected).
2. Project file (``.pulse-project``): first line project, optional second line branch.
3. Git: repository folder name, branch from ``HEAD``.
4. ``[projectmap]`` patterns (regex against the entity, ``{0}``-style group refs).
5. ``project_alternate``.

When project names must be hidden, a generated name is written to a project
file in the detected root so the obfuscated name stays stable across runs.
"""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Final

from pulse_agent.constants import PROJECT_FILE
from pulse_agent.heartbeat.handle import Handle, HandleOption
from pulse_agent.heartbeat.models import EntityType, Heartbeat, Result
from pulse_agent.remote import is_remote

logger = logging.getLogger(__name__)

_ADJECTIVES: Final[tuple[str, ...]] = (
    "amber", "brisk", "calm", "dusty", "eager", "fuzzy", "gentle", "hollow",
    "icy", "jolly", "keen", "lucky", "misty", "noble", "olive", "proud",
)
_NOUNS: Final[tuple[str, ...]] = (
    "anchor", "badger", "canyon", "delta", "ember", "falcon", "glacier", "harbor",
    "island", "jasper", "kettle", "lagoon", "meadow", "nebula", "orchard", "pine",
)


@dataclass(frozen=True, slots=True)
class ProjectInfo:
    project: str | None = None
    branch: str | None = None
    root: Path | None = None
    from_project_file: bool = False


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    map_patterns: tuple[tuple[re.Pattern[str], str], ...] = ()
    hide_project_names: tuple[re.Pattern[str], ...] = ()


def with_detection(config: ProjectConfig | None = None) -> HandleOption:
    cfg = config or ProjectConfig()

    def option(next_handle: Handle) -> Handle:
        def handle(heartbeats: list[Heartbeat]) -> list[Result]:
            logger.debug("execute project detection")
            return next_handle([_detect(heartbeat, cfg) for heartbeat in heartbeats])

        return handle

    return option


def with_filtering(*, exclude_unknown_project: bool) -> HandleOption:
    """Drop heartbeats without a project when ``exclude_unknown_project`` is set."""

    def option(next_handle: Handle) -> Handle:
        def handle(heartbeats: list[Heartbeat]) -> list[Result]:
            logger.debug("execute project filtering")
            if not exclude_unknown_project:
                return next_handle(heartbeats)
            kept = [heartbeat for heartbeat in heartbeats if heartbeat.project]
            for heartbeat in heartbeats:
                if not heartbeat.project:
                    logger.debug("skipping because of unknown project: %s", heartbeat.entity)
            if not kept:
                return []
            return next_handle(kept)

        return handle

    return option


def detect_from_files(path: str | Path) -> ProjectInfo:
    """Detect project and branch from a project file or git metadata."""

    start = Path(path)
    directory = start if start.is_dir() else start.parent
    for candidate in (directory, *directory.parents):
        project_file = candidate / PROJECT_FILE
        if project_file.is_file():
            return _read_project_file(project_file)
        dot_git = candidate / ".git"
        if dot_git.exists():
            return ProjectInfo(
                project=candidate.name or None,
                branch=_git_branch(dot_git),
                root=candidate,
            )
    return ProjectInfo()


def detect_from_map(entity: str, patterns: Sequence[tuple[re.Pattern[str], str]]) -> str | None:
    for pattern, template in patterns:
        match = pattern.search(entity)
        if match is None:
            continue
        try:
            name = template.format(*match.groups())
        except (IndexError, KeyError, ValueError) as exc:
            logger.warning("invalid project map template %r: %s", template, exc)
            continue
        name = name.strip()
        if name:
            return name
    return None


def generate_project_name() -> str:
    rng = random.SystemRandom()
    return f"{rng.choice(_ADJECTIVES)}-{rng.choice(_NOUNS)}-{rng.randint(10, 99)}"


def write_project_file(root: Path, project: str, branch: str | None = None) -> None:
    lines = [project]
    if branch:
        lines.append(branch)
    (root / PROJECT_FILE).write_text("\n".join(lines) + "\n", encoding="utf-8")


def _detect(heartbeat: Heartbeat, config: ProjectConfig) -> Heartbeat:
    if heartbeat.entity_type is not EntityType.FILE or is_remote(heartbeat.entity):
        project = heartbeat.project_override or heartbeat.project or heartbeat.project_alternate
        return replace(heartbeat, project=project)

    path = heartbeat.project_path_override or heartbeat.local_file or heartbeat.entity
    info = detect_from_files(path)

    project = heartbeat.project_override or info.project
    if project is None:
        project = detect_from_map(heartbeat.entity, config.map_patterns)
    if project is None:
        project = heartbeat.project_alternate
    branch = heartbeat.branch or info.branch

    if (
        project is not None
        and heartbeat.project_override is None
        and not info.from_project_file
        and info.root is not None
        and _matches_any(heartbeat.entity, config.hide_project_names)
    ):
        obfuscated = generate_project_name()
        try:
            write_project_file(info.root, obfuscated)
        except OSError as exc:
            logger.warning("failed to save obfuscated project name: %s", exc)
        project = obfuscated

    return replace(heartbeat, project=project, branch=branch)


def _read_project_file(path: Path) -> ProjectInfo:
    try:
        lines = [line.strip() for line in path.read_text(encoding="utf-8").splitlines()]
    except OSError as exc:
        logger.warning("failed to read project file %s: %s", path, exc)
        return ProjectInfo(root=path.parent)
    project = lines[0] if lines and lines[0] else path.parent.name
    branch = lines[1] if len(lines) > 1 and lines[1] else None
    if branch is None:
        dot_git = path.parent / ".git"
        if dot_git.exists():
            branch = _git_branch(dot_git)
    return ProjectInfo(project=project, branch=branch, root=path.parent, from_project_file=True)


def _git_branch(dot_git: Path) -> str | None:
    git_dir = dot_git
    if dot_git.is_file():
        # worktrees and submodules: ``gitdir: <path>``
        try:
            content = dot_git.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        if not content.startswith("gitdir:"):
            return None
        git_dir = Path(content.removeprefix("gitdir:").strip())
        if not git_dir.is_absolute():
            git_dir = dot_git.parent / git_dir
    try:
        head = (git_dir / "HEAD").read_text(encoding="utf-8").strip()
    except OSError:
        return None
    if head.startswith("ref: "):
        return head.removeprefix("ref: ").removeprefix("refs/heads/") or None
    return None


def _matches_any(value: str, patterns: Sequence[re.Pattern[str]]) -> bool:
    return any(pattern.search(value) for pattern in patterns)


__all__ = [
    "ProjectConfig",
    "ProjectInfo",
    "detect_from_files",
    "detect_from_map",
    "generate_project_name",
    "with_detection",
    "with_filtering",
    "write_project_file",
]
