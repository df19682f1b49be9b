"""Unit tests for heartbeat sanitization."""

from __future__ import annotations

from pathlib import Path

import pytest

from pulse_agent.filter import compile_patterns
from pulse_agent.heartbeat.models import EntityType, Heartbeat
from pulse_agent.heartbeat.sanitize import HIDDEN_ENTITY, SanitizeConfig, sanitize, should_sanitize


def _heartbeat(entity: str = "/work/pulse/src/main.go", **overrides: object) -> Heartbeat:
    values: dict[str, object] = {
        "entity": entity,
        "time": 1_700_000_000.0,
        "line_number": 12,
        "cursor_position": 80,
        "lines": 200,
        "project": "pulse",
        "branch": "feature/secret-launch",
        "local_file": "/tmp/buffer.go",
    }
    values.update(overrides)
    return Heartbeat(**values)  # type: ignore[arg-type]


@pytest.mark.unit
def test_no_directives_leave_heartbeat_unchanged() -> None:
    heartbeat = _heartbeat()

    assert sanitize(heartbeat, SanitizeConfig()) == heartbeat


@pytest.mark.unit
def test_hidden_file_names_keep_extension_and_clear_positions() -> None:
    sanitized = sanitize(_heartbeat(), SanitizeConfig(file_patterns=compile_patterns(["true"])))

    assert sanitized.entity == f"{HIDDEN_ENTITY}.go"
    assert sanitized.line_number is None
    assert sanitized.cursor_position is None
    assert sanitized.lines is None
    assert sanitized.local_file is None
    assert sanitized.project == "pulse"
    assert sanitized.branch == "feature/secret-launch"


@pytest.mark.unit
def test_hidden_project_names_also_clear_branch() -> None:
    config = SanitizeConfig(project_patterns=compile_patterns(["/work/pulse/"]))

    sanitized = sanitize(_heartbeat(), config)

    assert sanitized.entity == "HIDDEN.go"
    assert sanitized.branch is None


@pytest.mark.unit
def test_hidden_branch_names_only_clear_branch() -> None:
    config = SanitizeConfig(branch_patterns=compile_patterns(["pulse"]))

    sanitized = sanitize(_heartbeat(), config)

    assert sanitized.entity == "/work/pulse/src/main.go"
    assert sanitized.branch is None
    assert sanitized.line_number == 12


@pytest.mark.unit
def test_non_matching_patterns_do_nothing() -> None:
    config = SanitizeConfig(
        file_patterns=compile_patterns(["\\.env$"]),
        branch_patterns=compile_patterns(["^/other/"]),
    )
    heartbeat = _heartbeat()

    assert sanitize(heartbeat, config) == heartbeat


@pytest.mark.unit
def test_non_file_entities_keep_their_name() -> None:
    app = _heartbeat("Slack", entity_type=EntityType.APP)

    sanitized = sanitize(app, SanitizeConfig(file_patterns=compile_patterns(["true"])))

    assert sanitized.entity == "Slack"
    assert sanitized.line_number is None


@pytest.mark.unit
def test_hide_project_folder_makes_entity_relative(tmp_path: Path) -> None:
    root = tmp_path / "pulse"
    (root / ".git").mkdir(parents=True)
    source = root / "src" / "main.go"
    source.parent.mkdir()
    source.write_text("", encoding="utf-8")

    sanitized = sanitize(
        _heartbeat(str(source), local_file=None), SanitizeConfig(hide_project_folder=True)
    )

    assert sanitized.entity == "src/main.go"


@pytest.mark.unit
def test_hide_project_folder_prefers_explicit_root(tmp_path: Path) -> None:
    entity = tmp_path / "mono" / "svc" / "api.py"

    sanitized = sanitize(
        _heartbeat(str(entity), project_path_override=str(tmp_path / "mono"), local_file=None),
        SanitizeConfig(hide_project_folder=True),
    )

    assert sanitized.entity == "svc/api.py"


@pytest.mark.unit
def test_should_sanitize_matches_any_pattern() -> None:
    patterns = compile_patterns(["alpha", "beta"])

    assert should_sanitize("/x/beta/y", patterns) is True
    assert should_sanitize("/x/gamma/y", patterns) is False
    assert should_sanitize("/x/alpha", ()) is False
