"""Heartbeat value objects with strict validation and canonical serialization."""

from __future__ import annotations

import json
import math
import platform
from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import StrEnum
from typing import NoReturn

from pulse_agent import __version__

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_MAX_ENTITY = 4096

# Fields used while the heartbeat travels through the handler chain only.
_INTERNAL_FIELDS = frozenset(
    {
        "language_alternate",
        "local_file",
        "project_alternate",
        "project_override",
        "project_path_override",
    }
)


class EntityType(StrEnum):
    FILE = "file"
    APP = "app"
    DOMAIN = "domain"


class Category(StrEnum):
    CODING = "coding"
    BUILDING = "building"
    INDEXING = "indexing"
    DEBUGGING = "debugging"
    RUNNING_TESTS = "running tests"
    WRITING_TESTS = "writing tests"
    MANUAL_TESTING = "manual testing"
    CODE_REVIEWING = "code reviewing"
    BROWSING = "browsing"
    DESIGNING = "designing"
    COMMUNICATING = "communicating"
    MEETING = "meeting"
    PLANNING = "planning"
    RESEARCHING = "researching"
    LEARNING = "learning"


class ResultStatus(StrEnum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Heartbeat:
    """One observed activity event.

    Instances are immutable; pipeline stages derive modified copies with
    ``dataclasses.replace``.
    """

    entity: str
    time: float
    entity_type: EntityType = EntityType.FILE
    category: Category = Category.CODING
    is_write: bool | None = None
    line_number: int | None = None
    cursor_position: int | None = None
    lines: int | None = None
    language: str | None = None
    language_alternate: str | None = None
    project: str | None = None
    project_alternate: str | None = None
    project_override: str | None = None
    project_path_override: str | None = None
    branch: str | None = None
    local_file: str | None = None
    user_agent: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.entity, str) or not self.entity.strip():
            _fail("Heartbeat.entity", "must be a non-empty string")
        if len(self.entity) > _MAX_ENTITY:
            _fail("Heartbeat.entity", f"must be <= {_MAX_ENTITY} characters")
        if isinstance(self.time, bool) or not isinstance(self.time, (int, float)):
            _fail("Heartbeat.time", f"expected number, got {type(self.time).__name__}")
        if not math.isfinite(self.time) or self.time <= 0:
            _fail("Heartbeat.time", "must be a positive finite epoch timestamp")
        object.__setattr__(self, "entity_type", EntityType(self.entity_type))
        object.__setattr__(self, "category", Category(self.category))
        for name in ("line_number", "cursor_position", "lines"):
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                _fail(f"Heartbeat.{name}", f"expected integer, got {type(value).__name__}")

    def id(self) -> str:
        """Stable identity used as the offline queue key."""

        return "-".join(
            (
                f"{self.time:f}",
                self.entity,
                self.entity_type.value,
                self.category.value,
                self.project or "",
                self.branch or "",
                str(bool(self.is_write)).lower(),
            )
        )

    def to_dict(self) -> dict[str, JSONValue]:
        """Full representation, including chain-only fields (offline queue storage)."""

        out: dict[str, JSONValue] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, StrEnum):
                value = value.value
            out[item.name] = value
        return out

    def to_payload(self) -> dict[str, JSONValue]:
        """Wire representation sent to the remote API."""

        return {
            key: value
            for key, value in self.to_dict().items()
            if key not in _INTERNAL_FIELDS and value is not None
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Heartbeat:
        if not isinstance(data, Mapping):
            _fail("Heartbeat", f"expected object, got {type(data).__name__}")
        known = {item.name for item in fields(cls)}
        unknown = sorted(str(key) for key in data if key not in known)
        if unknown:
            _fail("Heartbeat", f"unexpected fields: {unknown}")
        for required in ("entity", "time"):
            if required not in data:
                _fail("Heartbeat", f"missing required field {required!r}")
        try:
            return cls(**{str(key): value for key, value in data.items()})
        except (TypeError, ValueError) as exc:
            if isinstance(exc, ValueError) and str(exc).startswith("Heartbeat"):
                raise
            _fail("Heartbeat", str(exc))

    @classmethod
    def from_json(cls, raw: str) -> Heartbeat:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail("Heartbeat", f"invalid JSON: {exc}")
        return cls.from_dict(parsed)


@dataclass(frozen=True, slots=True)
class Result:
    """Outcome of submitting one heartbeat."""

    status: ResultStatus
    heartbeat: Heartbeat
    message: str | None = None

    @property
    def accepted(self) -> bool:
        return self.status is ResultStatus.ACCEPTED


def user_agent(plugin: str | None = None) -> str:
    """Return the user agent string sent with every heartbeat."""

    system = platform.system().lower() or "unknown"
    release = platform.release() or "unknown"
    machine = platform.machine().lower() or "unknown"
    python = platform.python_version()
    suffix = plugin.strip() if plugin and plugin.strip() else "Unknown/0"
    return f"pulse/{__version__} ({system}-{release}-{machine}) python{python} {suffix}"


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "Category",
    "EntityType",
    "Heartbeat",
    "JSONValue",
    "Result",
    "ResultStatus",
    "user_agent",
]
