"""
pulse-agent — command parameters.

Purpose
- Turn layered ``Settings`` into typed parameter groups (API, offline,
  heartbeat) and build the enrichment stages shared by the send and offline
  save paths.

Functional requirements
- API key must be present and well-formed for the send path (``AuthError``).
- Heartbeat parameters require an entity; time defaults to now.
- ``--extra-heartbeats`` reads a JSON array from stdin; malformed entries are
  logged and skipped.
"""

from __future__ import annotations

import json
import logging
import re
import sys
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Final, TextIO

from pulse_agent import filestats, language, project, remote
from pulse_agent.api.client import AuthError
from pulse_agent.config.loader import Settings
from pulse_agent.constants import DEFAULT_API_URL, DEFAULT_TIMEOUT_SECONDS, SYNC_MAX_DEFAULT
from pulse_agent.filter import FilterConfig, compile_patterns, with_filtering
from pulse_agent.heartbeat.format import with_formatting
from pulse_agent.heartbeat.handle import HandleOption
from pulse_agent.heartbeat.models import Category, EntityType, Heartbeat, user_agent
from pulse_agent.heartbeat.sanitize import SanitizeConfig, with_sanitization
from pulse_agent.project import ProjectConfig

logger = logging.getLogger(__name__)

_API_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)^(waka_)?[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$"
)

# Keys accepted in ``--extra-heartbeats`` entries mapped to Heartbeat fields.
_EXTRA_FIELD_ALIASES: Final[Mapping[str, str]] = {
    "alternate_language": "language_alternate",
    "alternate_project": "project_alternate",
    "category": "category",
    "cursorpos": "cursor_position",
    "entity": "entity",
    "entity_type": "entity_type",
    "is_write": "is_write",
    "language": "language",
    "lineno": "line_number",
    "lines": "lines",
    "local_file": "local_file",
    "project": "project_override",
    "project_folder": "project_path_override",
    "time": "time",
    "type": "entity_type",
}


class ParamsError(ValueError):
    """Raised when required command parameters are missing or invalid."""


@dataclass(frozen=True, slots=True)
class ApiParams:
    key: str | None
    url: str = DEFAULT_API_URL
    plugin: str | None = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    hostname: str | None = None
    disable_ssl_verify: bool = False

    @property
    def user_agent(self) -> str:
        return user_agent(self.plugin)


@dataclass(frozen=True, slots=True)
class OfflineParams:
    disabled: bool = False
    queue_file: str | None = None
    sync_max: int = SYNC_MAX_DEFAULT


@dataclass(frozen=True, slots=True)
class HeartbeatParams:
    entity: str
    time: float
    entity_type: EntityType = EntityType.FILE
    category: Category = Category.CODING
    is_write: bool | None = None
    line_number: int | None = None
    cursor_position: int | None = None
    language: str | None = None
    language_alternate: str | None = None
    local_file: str | None = None
    project_alternate: str | None = None
    project_override: str | None = None
    project_path_override: str | None = None
    extra_heartbeats: tuple[Mapping[str, object], ...] = ()


@dataclass(frozen=True, slots=True)
class PipelineParams:
    """Configuration of the enrichment stages."""

    filter: FilterConfig = field(default_factory=FilterConfig)
    sanitize: SanitizeConfig = field(default_factory=SanitizeConfig)
    project: ProjectConfig = field(default_factory=ProjectConfig)
    exclude_unknown_project: bool = False
    lines_in_file: int | None = None


@dataclass(frozen=True, slots=True)
class Params:
    api: ApiParams
    offline: OfflineParams
    pipeline: PipelineParams = field(default_factory=PipelineParams)
    heartbeat: HeartbeatParams | None = None


def load_params(
    settings: Settings,
    *,
    with_heartbeat: bool = True,
    require_api_key: bool = True,
    stdin: TextIO | None = None,
) -> Params:
    return Params(
        api=load_api_params(settings, require_key=require_api_key),
        offline=load_offline_params(settings),
        pipeline=load_pipeline_params(settings),
        heartbeat=load_heartbeat_params(settings, stdin=stdin) if with_heartbeat else None,
    )


def load_api_params(settings: Settings, *, require_key: bool = True) -> ApiParams:
    key = settings.get_str("api_key")
    if require_key:
        if not key:
            raise AuthError("api key not found or empty")
        if not _API_KEY_PATTERN.match(key):
            raise AuthError("invalid api key format")

    url = settings.get_str("api_url", DEFAULT_API_URL) or DEFAULT_API_URL
    if not url.startswith(("http://", "https://")):
        raise ParamsError(f"invalid api url {url!r}")

    timeout = settings.get_float("timeout", DEFAULT_TIMEOUT_SECONDS)
    if timeout is None or timeout <= 0:
        timeout = DEFAULT_TIMEOUT_SECONDS

    return ApiParams(
        key=key,
        url=url.rstrip("/"),
        plugin=settings.get_str("plugin"),
        timeout=timeout,
        hostname=settings.get_str("hostname"),
        disable_ssl_verify=settings.get_bool("no_ssl_verify"),
    )


def load_offline_params(settings: Settings) -> OfflineParams:
    disabled = settings.get_bool("disable_offline") or not settings.get_bool("offline", True)
    sync_max = settings.get_int("sync_offline_activity", SYNC_MAX_DEFAULT)
    if sync_max is None or sync_max < 0:
        raise ParamsError("sync_offline_activity must be zero or a positive integer")
    return OfflineParams(
        disabled=disabled,
        queue_file=settings.get_str("offline_queue_file"),
        sync_max=sync_max,
    )


def load_heartbeat_params(settings: Settings, *, stdin: TextIO | None = None) -> HeartbeatParams:
    entity = settings.get_str("entity")
    if not entity:
        raise ParamsError("failed to retrieve entity")

    timestamp = settings.get_float("time")
    if timestamp is None or timestamp <= 0:
        timestamp = time.time()

    try:
        entity_type = EntityType(settings.get_str("entity_type", EntityType.FILE.value))
    except ValueError as exc:
        raise ParamsError(f"invalid entity type: {exc}") from exc
    try:
        category = Category(settings.get_str("category", Category.CODING.value))
    except ValueError as exc:
        raise ParamsError(f"invalid category: {exc}") from exc

    is_write: bool | None = None
    if settings.raw("write") is not None:
        is_write = settings.get_bool("write")

    extra: tuple[Mapping[str, object], ...] = ()
    if settings.get_bool("extra_heartbeats"):
        extra = read_extra_heartbeats(stdin if stdin is not None else sys.stdin)

    return HeartbeatParams(
        entity=entity,
        time=timestamp,
        entity_type=entity_type,
        category=category,
        is_write=is_write,
        line_number=settings.get_int("lineno"),
        cursor_position=settings.get_int("cursorpos"),
        language=settings.get_str("language"),
        language_alternate=settings.get_str("alternate_language"),
        local_file=settings.get_str("local_file"),
        project_alternate=settings.get_str("alternate_project"),
        project_override=settings.get_str("project"),
        project_path_override=settings.get_str("project_folder"),
        extra_heartbeats=extra,
    )


def load_pipeline_params(settings: Settings) -> PipelineParams:
    hide_project_names = compile_patterns(settings.get_list("hide_project_names"))
    return PipelineParams(
        filter=FilterConfig(
            exclude=compile_patterns(settings.get_list("exclude")),
            include=compile_patterns(settings.get_list("include")),
            include_only_with_project_file=settings.get_bool("include_only_with_project_file"),
        ),
        sanitize=SanitizeConfig(
            file_patterns=compile_patterns(settings.get_list("hide_file_names")),
            project_patterns=hide_project_names,
            branch_patterns=compile_patterns(settings.get_list("hide_branch_names")),
            hide_project_folder=settings.get_bool("hide_project_folder"),
        ),
        project=ProjectConfig(
            map_patterns=compile_project_map(settings.project_map),
            hide_project_names=hide_project_names,
        ),
        exclude_unknown_project=settings.get_bool("exclude_unknown_project"),
        lines_in_file=settings.get_int("lines_in_file"),
    )


def read_extra_heartbeats(stream: TextIO) -> tuple[Mapping[str, object], ...]:
    raw = stream.read()
    if not raw.strip():
        return ()
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.error("failed to parse extra heartbeats json: %s", exc)
        return ()
    if not isinstance(parsed, list):
        logger.error("extra heartbeats must be a JSON array, got %s", type(parsed).__name__)
        return ()
    return tuple(item for item in parsed if isinstance(item, Mapping))


def compile_project_map(
    entries: Sequence[tuple[str, str]],
) -> tuple[tuple[re.Pattern[str], str], ...]:
    compiled: list[tuple[re.Pattern[str], str]] = []
    for pattern, template in entries:
        try:
            compiled.append((re.compile(pattern, re.IGNORECASE), template.strip()))
        except re.error as exc:
            logger.warning("failed to compile project map pattern %r: %s", pattern, exc)
    return tuple(compiled)


def build_heartbeats(params: Params) -> list[Heartbeat]:
    """Build the main heartbeat plus any extra heartbeats from stdin."""

    if params.heartbeat is None:
        raise ParamsError("heartbeat parameters not loaded")
    hb = params.heartbeat
    agent = params.api.user_agent

    heartbeats = [
        Heartbeat(
            entity=hb.entity,
            time=hb.time,
            entity_type=hb.entity_type,
            category=hb.category,
            is_write=hb.is_write,
            line_number=hb.line_number,
            cursor_position=hb.cursor_position,
            language=hb.language,
            language_alternate=hb.language_alternate,
            project_alternate=hb.project_alternate,
            project_override=hb.project_override,
            project_path_override=hb.project_path_override,
            local_file=hb.local_file,
            user_agent=agent,
        )
    ]

    if hb.extra_heartbeats:
        logger.debug("include %d extra heartbeat(s) from stdin", len(hb.extra_heartbeats))
    for entry in hb.extra_heartbeats:
        values = {
            _EXTRA_FIELD_ALIASES[key]: value
            for key, value in entry.items()
            if key in _EXTRA_FIELD_ALIASES and value is not None
        }
        values["user_agent"] = agent
        try:
            heartbeats.append(Heartbeat.from_dict(values))
        except ValueError as exc:
            logger.warning("skipping invalid extra heartbeat: %s", exc)

    return heartbeats


def init_handle_options(params: Params) -> list[HandleOption]:
    """Enrichment stages shared by the send and offline save paths, in order."""

    pipeline = params.pipeline
    return [
        with_formatting(),
        with_filtering(pipeline.filter),
        remote.with_detection(),
        filestats.with_detection(filestats.FileStatsConfig(lines_in_file=pipeline.lines_in_file)),
        language.with_detection(),
        project.with_detection(pipeline.project),
        project.with_filtering(exclude_unknown_project=pipeline.exclude_unknown_project),
        with_sanitization(pipeline.sanitize),
    ]


__all__ = [
    "ApiParams",
    "HeartbeatParams",
    "OfflineParams",
    "Params",
    "PipelineParams",
    "ParamsError",
    "build_heartbeats",
    "compile_project_map",
    "init_handle_options",
    "load_api_params",
    "load_heartbeat_params",
    "load_offline_params",
    "load_params",
    "load_pipeline_params",
    "read_extra_heartbeats",
]
