"""
pulse-agent — command execution supervisor.

Purpose
- Run one top-level command with uniform fault recovery, log capture,
  diagnostics upload, and exit-code mapping.

States per invocation
- ``Idle -> Running -> {Success, RecoveredFault, UnrecoveredFault}``.
- Success: exit code returned unchanged, no upload.
- RecoveredFault (``CommandError``): ``failed to run command`` is logged; logs
  are uploaded only in verbose mode and never for ``ERR_AUTH`` or
  ``ERR_BACKOFF``.
- UnrecoveredFault (any other exception): logs and traceback are uploaded
  unless verbose; exit code ``ERR_GENERIC``.

The command itself is never retried here; retrying the network operation is
the backoff gate's job.
"""

from __future__ import annotations

import io
import logging
import traceback
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Final, TypeAlias

from pulse_agent.api.client import ApiError, AuthError
from pulse_agent.api.diagnostics import send_diagnostics
from pulse_agent.backoff import BackoffError
from pulse_agent.config.loader import ConfigLoadError, Settings
from pulse_agent.main import ExitCode
from pulse_agent.observability.logging import (
    LOGGER_NAME,
    JsonLineFormatter,
    get_active_logging_handle,
)

logger = logging.getLogger(__name__)

CommandFn: TypeAlias = Callable[[Settings], int]
DiagnosticsFn: TypeAlias = Callable[[Settings, str, str], object]

_NO_DIAGNOSTICS_CODES: Final[frozenset[int]] = frozenset(
    {int(ExitCode.ERR_AUTH), int(ExitCode.ERR_BACKOFF)}
)


class CommandError(RuntimeError):
    """A command failure with an explicit process exit code."""

    def __init__(self, exit_code: int, message: str) -> None:
        super().__init__(message)
        self.exit_code = int(exit_code)
        self.message = message

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class CommandOutcome:
    """One finished command attempt; ``stack`` is set only for unrecovered faults."""

    exit_code: int
    error: BaseException | None = None
    logs: str = ""
    stack: str | None = None

    @property
    def faulted(self) -> bool:
        return self.stack is not None


def exit_code_for(exc: BaseException) -> int:
    """Map delivery-path exceptions to exit codes."""

    if isinstance(exc, BackoffError):
        return int(ExitCode.ERR_BACKOFF)
    if isinstance(exc, AuthError):
        return int(ExitCode.ERR_AUTH)
    if isinstance(exc, ApiError):
        return int(ExitCode.ERR_API)
    if isinstance(exc, ConfigLoadError):
        return int(ExitCode.ERR_CONFIG_FILE_PARSE)
    return int(ExitCode.ERR_GENERIC)


@contextmanager
def capture_logs(buffer: io.StringIO, *, logger_name: str = LOGGER_NAME) -> Iterator[None]:
    """Tee agent log records into ``buffer`` next to the configured sinks."""

    target = logging.getLogger(logger_name)
    active = get_active_logging_handle()
    handler = logging.StreamHandler(buffer)
    handler.setFormatter(active.formatter if active is not None else JsonLineFormatter())
    target.addHandler(handler)
    try:
        yield
    finally:
        handler.flush()
        target.removeHandler(handler)


def execute(settings: Settings, cmd: CommandFn) -> CommandOutcome:
    """Run ``cmd`` under log capture and classify how it finished."""

    buffer = io.StringIO()
    with capture_logs(buffer):
        try:
            exit_code = int(cmd(settings))
        except CommandError as exc:
            logger.error("failed to run command: %s", exc)
            return CommandOutcome(exit_code=exc.exit_code, error=exc, logs=buffer.getvalue())
        except Exception as exc:
            logger.error("command failed with unexpected error: %s", exc)
            return CommandOutcome(
                exit_code=int(ExitCode.ERR_GENERIC),
                error=exc,
                logs=buffer.getvalue(),
                stack=_format_stack(exc),
            )
    return CommandOutcome(exit_code=exit_code, logs=buffer.getvalue())


def should_send_diagnostics(outcome: CommandOutcome, *, verbose: bool) -> bool:
    if outcome.faulted:
        return not verbose
    if outcome.error is None:
        return False
    return verbose and outcome.exit_code not in _NO_DIAGNOSTICS_CODES


def run_cmd(
    settings: Settings,
    verbose: bool,
    cmd: CommandFn,
    *,
    diagnostics: DiagnosticsFn = send_diagnostics,
) -> int:
    """Run ``cmd`` and return its exit code, uploading diagnostics per policy."""

    outcome = execute(settings, cmd)
    if should_send_diagnostics(outcome, verbose=verbose):
        stack = outcome.stack
        if stack is None and outcome.error is not None:
            stack = _format_stack(outcome.error)
        try:
            diagnostics(settings, outcome.logs, stack or "")
        except Exception as exc:  # noqa: BLE001 - diagnostics are best-effort.
            logger.error("failed to send diagnostics: %s", exc)
    return outcome.exit_code


def run_cmd_with_offline_sync(
    settings: Settings,
    verbose: bool,
    cmd: CommandFn,
    *,
    sync_cmd: CommandFn | None = None,
    diagnostics: DiagnosticsFn = send_diagnostics,
) -> int:
    """Run ``cmd``; only when it succeeds, run the offline resync and return its code."""

    exit_code = run_cmd(settings, verbose, cmd, diagnostics=diagnostics)
    if exit_code != ExitCode.SUCCESS:
        return exit_code

    if sync_cmd is None:
        from pulse_agent.commands import offline_sync

        sync_cmd = offline_sync.run
    return run_cmd(settings, verbose, sync_cmd, diagnostics=diagnostics)


def _format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


__all__ = [
    "CommandError",
    "CommandFn",
    "CommandOutcome",
    "capture_logs",
    "execute",
    "exit_code_for",
    "run_cmd",
    "run_cmd_with_offline_sync",
    "should_send_diagnostics",
]
