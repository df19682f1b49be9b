"""
pulse-agent — unit tests for the command supervisor

Purpose
- Validate exit-code propagation, fault recovery, diagnostics upload policy,
  and offline-sync chaining.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from pulse_agent.config import Settings
from pulse_agent.main import ExitCode
from pulse_agent.observability.logging import (
    LOGGER_NAME,
    LoggingConfig,
    setup_logging,
    shutdown_logging,
)
from pulse_agent.supervisor import (
    CommandError,
    CommandFn,
    CommandOutcome,
    capture_logs,
    execute,
    run_cmd,
    run_cmd_with_offline_sync,
    should_send_diagnostics,
)

from . import make_settings


class DiagnosticsRecorder:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.uploads: list[tuple[str, str]] = []
        self.error = error

    def __call__(self, settings: Settings, logs: str, stack: str) -> bool:
        self.uploads.append((logs, stack))
        if self.error is not None:
            raise self.error
        return True


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


def _succeed(settings: Settings) -> int:
    return int(ExitCode.SUCCESS)


def _crash(settings: Settings) -> int:
    raise RuntimeError("boom")


def _fail_with(code: ExitCode):
    def command(settings: Settings) -> int:
        raise CommandError(int(code), f"failed with {code.name}")

    return command


@pytest.mark.unit
def test_success_returns_code_without_upload(settings: Settings) -> None:
    diagnostics = DiagnosticsRecorder()

    assert run_cmd(settings, False, _succeed, diagnostics=diagnostics) == 0
    assert diagnostics.uploads == []


@pytest.mark.unit
def test_nonzero_return_is_propagated_unchanged(settings: Settings) -> None:
    diagnostics = DiagnosticsRecorder()

    def returns_api_error(settings: Settings) -> int:
        return int(ExitCode.ERR_API)

    assert run_cmd(settings, True, returns_api_error, diagnostics=diagnostics) == 102
    assert diagnostics.uploads == []


@pytest.mark.unit
def test_unexpected_fault_maps_to_generic_and_uploads_stack(settings: Settings) -> None:
    diagnostics = DiagnosticsRecorder()

    exit_code = run_cmd(settings, False, _crash, diagnostics=diagnostics)

    assert exit_code == ExitCode.ERR_GENERIC
    assert len(diagnostics.uploads) == 1
    _, stack = diagnostics.uploads[0]
    assert "RuntimeError: boom" in stack


@pytest.mark.unit
def test_unexpected_fault_in_verbose_mode_skips_upload(settings: Settings) -> None:
    diagnostics = DiagnosticsRecorder()

    assert run_cmd(settings, True, _crash, diagnostics=diagnostics) == ExitCode.ERR_GENERIC
    assert diagnostics.uploads == []


@pytest.mark.unit
def test_command_error_uploads_only_when_verbose(settings: Settings) -> None:
    quiet = DiagnosticsRecorder()
    loud = DiagnosticsRecorder()

    assert run_cmd(settings, False, _fail_with(ExitCode.ERR_API), diagnostics=quiet) == 102
    assert run_cmd(settings, True, _fail_with(ExitCode.ERR_API), diagnostics=loud) == 102

    assert quiet.uploads == []
    assert len(loud.uploads) == 1


@pytest.mark.unit
@pytest.mark.parametrize("code", [ExitCode.ERR_AUTH, ExitCode.ERR_BACKOFF])
def test_auth_and_backoff_failures_never_upload(settings: Settings, code: ExitCode) -> None:
    diagnostics = DiagnosticsRecorder()

    assert run_cmd(settings, True, _fail_with(code), diagnostics=diagnostics) == int(code)
    assert diagnostics.uploads == []


@pytest.mark.unit
def test_diagnostics_failure_does_not_change_exit_code(settings: Settings) -> None:
    diagnostics = DiagnosticsRecorder(error=RuntimeError("upload failed"))

    assert run_cmd(settings, False, _crash, diagnostics=diagnostics) == ExitCode.ERR_GENERIC
    assert len(diagnostics.uploads) == 1


@pytest.mark.unit
def test_uploaded_logs_contain_records_emitted_by_the_command(settings: Settings) -> None:
    setup_logging(LoggingConfig(log_to_stdout=True, verbose=True), stream=io.StringIO())
    diagnostics = DiagnosticsRecorder()

    def noisy(settings: Settings) -> int:
        logging.getLogger("pulse_agent.commands.test").info("about to fail")
        raise CommandError(int(ExitCode.ERR_API), "api unreachable")

    run_cmd(settings, True, noisy, diagnostics=diagnostics)

    logs, stack = diagnostics.uploads[0]
    assert "about to fail" in logs
    assert "failed to run command: api unreachable" in logs
    assert "CommandError" in stack


@pytest.mark.unit
def test_execute_classifies_outcomes(settings: Settings) -> None:
    assert execute(settings, _succeed) == CommandOutcome(exit_code=0)

    recovered = execute(settings, _fail_with(ExitCode.ERR_API))
    assert recovered.exit_code == 102
    assert recovered.faulted is False
    assert isinstance(recovered.error, CommandError)

    crashed = execute(settings, _crash)
    assert crashed.exit_code == 1
    assert crashed.faulted is True


@pytest.mark.unit
def test_should_send_diagnostics_policy() -> None:
    error = CommandError(int(ExitCode.ERR_API), "x")
    fault = CommandOutcome(exit_code=1, error=RuntimeError("x"), stack="trace")
    recovered = CommandOutcome(exit_code=102, error=error)

    assert should_send_diagnostics(CommandOutcome(exit_code=0), verbose=True) is False
    assert should_send_diagnostics(fault, verbose=False) is True
    assert should_send_diagnostics(fault, verbose=True) is False
    assert should_send_diagnostics(recovered, verbose=True) is True
    assert should_send_diagnostics(recovered, verbose=False) is False


@pytest.mark.unit
def test_offline_sync_skipped_when_primary_command_fails(settings: Settings) -> None:
    synced: list[Settings] = []

    def sync(settings: Settings) -> int:
        synced.append(settings)
        return 0

    exit_code = run_cmd_with_offline_sync(
        settings,
        False,
        _fail_with(ExitCode.ERR_API),
        sync_cmd=sync,
        diagnostics=DiagnosticsRecorder(),
    )

    assert exit_code == 102
    assert synced == []


@pytest.mark.unit
def test_offline_sync_result_is_returned_after_success(settings: Settings) -> None:
    calls: list[str] = []

    def primary(settings: Settings) -> int:
        calls.append("primary")
        return 0

    def sync(settings: Settings) -> int:
        calls.append("sync")
        raise CommandError(int(ExitCode.ERR_BACKOFF), "backing off")

    exit_code = run_cmd_with_offline_sync(
        settings, False, primary, sync_cmd=sync, diagnostics=DiagnosticsRecorder()
    )

    assert calls == ["primary", "sync"]
    assert exit_code == ExitCode.ERR_BACKOFF


@pytest.mark.unit
@pytest.mark.parametrize(
    ("command", "verbose", "uploads"),
    [
        (_succeed, False, 0),
        (_fail_with(ExitCode.ERR_API), True, 1),
        (_crash, False, 1),
    ],
    ids=["success", "command-error", "fault"],
)
def test_log_sinks_are_restored_on_every_exit_path(
    settings: Settings, command: CommandFn, verbose: bool, uploads: int
) -> None:
    setup_logging(LoggingConfig(log_to_stdout=True), stream=io.StringIO())
    target = logging.getLogger(LOGGER_NAME)
    before = list(target.handlers)
    seen_during_upload: list[list[logging.Handler]] = []

    def diagnostics(settings: Settings, logs: str, stack: str) -> bool:
        seen_during_upload.append(list(target.handlers))
        logging.getLogger("pulse_agent.api.diagnostics").error("uploading diagnostics")
        return True

    run_cmd(settings, verbose, command, diagnostics=diagnostics)

    assert list(target.handlers) == before
    assert seen_during_upload == [before] * uploads


@pytest.mark.unit
def test_capture_logs_stops_collecting_after_exit() -> None:
    buffer = io.StringIO()

    with capture_logs(buffer):
        logging.getLogger("pulse_agent.commands.test").warning("inside capture")
    logging.getLogger("pulse_agent.commands.test").warning("after capture")

    assert "inside capture" in buffer.getvalue()
    assert "after capture" not in buffer.getvalue()
