"""
pulse-agent — unit tests for observability logging

Purpose
- Validate JSON-lines logging with API key redaction and per-command
  correlation fields.

What this test file should cover
- JSON line validity and redaction guarantees.
- Correlation field propagation and scoping.
- Level selection and sink replacement.
"""

from __future__ import annotations

import io
import json
import logging
from typing import TYPE_CHECKING

import pytest

from pulse_agent.observability.logging import (
    LoggingConfig,
    correlation_scope,
    default_log_redactor,
    get_active_logging_handle,
    get_correlation_context,
    heartbeat_log_fields,
    setup_logging,
    shutdown_logging,
)
from pulse_agent.params import ApiParams, HeartbeatParams, OfflineParams, Params

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

_API_KEY = "waka_12345678-1234-4abc-8def-123456789abc"


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


@pytest.mark.unit
def test_json_logging_redacts_keys_and_preserves_correlation_fields(tmp_path: Path) -> None:
    handle = setup_logging(LoggingConfig(log_file=tmp_path / "logs" / "pulse.log"))
    logger = logging.getLogger(f"{handle.logger.name}.commands")

    with correlation_scope(plugin="vim/9.0", file="/src/main.go", is_write=True, lineno=None):
        logger.info(
            "sending with api_key=%s and header Basic dXNlcjpwYXNz",
            _API_KEY,
            extra={"nested": {"password": "hunter2", "safe": "ok"}},
        )

    shutdown_logging(handle)

    assert handle.log_path is not None and handle.log_path.exists()
    parsed = _read_json_lines(handle.log_path)
    assert len(parsed) == 1
    first = parsed[0]
    assert first["level"] == "INFO"
    assert first["plugin"] == "vim/9.0"
    assert first["file"] == "/src/main.go"
    assert first["is_write"] == "true"
    assert "lineno" not in first
    assert first["fields"] == {"nested": {"password": "***REDACTED***", "safe": "ok"}}

    line = handle.log_path.read_text(encoding="utf-8")
    assert _API_KEY not in line
    assert "dXNlcjpwYXNz" not in line
    assert "hunter2" not in line
    assert "***REDACTED***" in line


@pytest.mark.unit
def test_bare_api_keys_are_redacted() -> None:
    redacted = default_log_redactor(f"key was {_API_KEY.removeprefix('waka_')} then")

    assert redacted == "key was ***REDACTED*** then"


@pytest.mark.unit
def test_debug_records_require_verbose() -> None:
    quiet_stream = io.StringIO()
    setup_logging(LoggingConfig(log_to_stdout=True), stream=quiet_stream)
    logging.getLogger("pulse_agent.tests").debug("hidden detail")

    loud_stream = io.StringIO()
    setup_logging(LoggingConfig(log_to_stdout=True, verbose=True), stream=loud_stream)
    logging.getLogger("pulse_agent.tests").debug("visible detail")

    assert quiet_stream.getvalue() == ""
    assert "visible detail" in loud_stream.getvalue()


@pytest.mark.unit
def test_setup_replaces_previous_sink(tmp_path: Path) -> None:
    first = setup_logging(LoggingConfig(log_file=tmp_path / "first.log"))
    second = setup_logging(LoggingConfig(log_file=tmp_path / "second.log"))

    logging.getLogger("pulse_agent").info("only once")
    shutdown_logging()

    assert first.is_shutdown
    assert get_active_logging_handle() is None
    assert second.log_path is not None
    assert "only once" in second.log_path.read_text(encoding="utf-8")
    assert (tmp_path / "first.log").read_text(encoding="utf-8") == ""


@pytest.mark.unit
def test_correlation_scope_is_restored_after_exit() -> None:
    assert get_correlation_context() == {}

    with correlation_scope(plugin="emacs"):
        with correlation_scope(file="/a.py"):
            assert get_correlation_context() == {"plugin": "emacs", "file": "/a.py"}
        assert get_correlation_context() == {"plugin": "emacs"}

    assert get_correlation_context() == {}


@pytest.mark.unit
def test_heartbeat_log_fields() -> None:
    params = Params(
        api=ApiParams(key=None, plugin="vim/9.0"),
        offline=OfflineParams(),
        heartbeat=HeartbeatParams(
            entity="/src/main.go", time=1_700_000_000.0, line_number=7, is_write=False
        ),
    )

    assert heartbeat_log_fields(params) == {
        "plugin": "vim/9.0",
        "file": "/src/main.go",
        "time": 1_700_000_000.0,
        "lineno": 7,
        "is_write": False,
    }
    assert heartbeat_log_fields(Params(api=ApiParams(key=None), offline=OfflineParams())) == {
        "plugin": None
    }
