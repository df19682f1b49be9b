"""Shared deterministic builders for delivery-path tests."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from pulse_agent.config import ConfigWriteError, Settings, load_config
from pulse_agent.heartbeat.models import EntityType, Heartbeat, Result, ResultStatus

FIXED_TIME: Final[float] = 1_700_000_000.0
FIXED_NOW: Final[datetime] = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)
VALID_API_KEY: Final[str] = "waka_00000000-0000-4000-8000-000000000000"


def make_heartbeat(index: int = 0, **overrides: object) -> Heartbeat:
    values: dict[str, object] = {
        "entity": f"app-{index}",
        "time": FIXED_TIME + index,
        "entity_type": EntityType.APP,
    }
    values.update(overrides)
    return Heartbeat(**values)  # type: ignore[arg-type]


def make_settings(tmp_path: Path, **cli: object) -> Settings:
    """Settings rooted in ``tmp_path`` with no config file and an isolated home."""

    return load_config(
        tmp_path / "pulse.cfg",
        internal_config_path=tmp_path / "pulse-internal.cfg",
        cli_overrides=cli,
        environ={"PULSE_HOME": str(tmp_path / "home")},
        skip_file=True,
    )


class MemoryStore:
    """In-memory stand-in for the internal INI store."""

    def __init__(self, *, fail_writes: bool = False) -> None:
        self.values: dict[tuple[str, str], str] = {}
        self.writes: list[dict[str, str]] = []
        self.fail_writes = fail_writes

    def read(self, section: str, key: str) -> str | None:
        return self.values.get((section, key)) or None

    def write(self, section: str, values: Mapping[str, str]) -> None:
        if self.fail_writes:
            raise ConfigWriteError("disk full")
        self.writes.append(dict(values))
        for key, value in values.items():
            self.values[(section, key)] = value


class RecordingSender:
    """Terminal sender that records batches and accepts everything."""

    def __init__(
        self,
        *,
        error: Exception | None = None,
        statuses: Mapping[str, ResultStatus] | None = None,
    ) -> None:
        self.batches: list[list[Heartbeat]] = []
        self.error = error
        self.statuses = dict(statuses or {})

    @property
    def calls(self) -> int:
        return len(self.batches)

    def send_heartbeats(self, heartbeats: list[Heartbeat]) -> list[Result]:
        self.batches.append(list(heartbeats))
        if self.error is not None:
            raise self.error
        return [
            Result(self.statuses.get(heartbeat.entity, ResultStatus.ACCEPTED), heartbeat)
            for heartbeat in heartbeats
        ]


__all__ = [
    "FIXED_NOW",
    "FIXED_TIME",
    "MemoryStore",
    "RecordingSender",
    "VALID_API_KEY",
    "make_heartbeat",
    "make_settings",
]
