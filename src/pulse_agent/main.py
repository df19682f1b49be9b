"""Executable CLI entrypoint for ``pulse_agent``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class ExitCode(IntEnum):
    """Process exit-code contract observed by editor plugins."""

    SUCCESS = 0
    ERR_GENERIC = 1
    ERR_API = 102
    ERR_CONFIG_FILE_PARSE = 103
    ERR_AUTH = 104
    ERR_CONFIG_FILE_READ = 110
    ERR_CONFIG_FILE_WRITE = 111
    ERR_BACKOFF = 112


# Command-specific codes pass through unchanged; only the POSIX range is valid.
_MAX_EXIT_CODE = 255


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m pulse_agent`` and the console script."""

    try:
        from pulse_agent.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv))
    except SystemExit as exc:
        # argparse exits 2 on usage errors and 0 on --help.
        if exc.code in (0, None):
            return int(ExitCode.SUCCESS)
        return _normalize_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - CLI boundary normalization.
        exit_code = _route_exception(exc)
        _emit_failure(exc, exit_code)
        return int(exit_code)


def main() -> None:
    """Console-script entrypoint."""

    raise SystemExit(cli_entrypoint())


def _normalize_exit_code(raw_code: object) -> int:
    if isinstance(raw_code, bool):
        return int(ExitCode.ERR_GENERIC)
    if isinstance(raw_code, int) and 0 <= raw_code <= _MAX_EXIT_CODE:
        return int(raw_code)
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code.strip())
    return int(ExitCode.ERR_GENERIC)


def _route_exception(exc: BaseException) -> ExitCode:
    from pulse_agent.api.client import ApiError, AuthError
    from pulse_agent.backoff import BackoffError
    from pulse_agent.config import ConfigLoadError, ConfigReadError, ConfigWriteError

    for item in _iter_exception_chain(exc):
        if isinstance(item, ConfigLoadError):
            return ExitCode.ERR_CONFIG_FILE_PARSE
        if isinstance(item, ConfigReadError):
            return ExitCode.ERR_CONFIG_FILE_READ
        if isinstance(item, ConfigWriteError):
            return ExitCode.ERR_CONFIG_FILE_WRITE
        if isinstance(item, BackoffError):
            return ExitCode.ERR_BACKOFF
        if isinstance(item, AuthError):
            return ExitCode.ERR_AUTH
        if isinstance(item, ApiError):
            return ExitCode.ERR_API
    return ExitCode.ERR_GENERIC


def _iter_exception_chain(exc: BaseException) -> list[BaseException]:
    seen: set[int] = set()
    items: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None:
        marker = id(current)
        if marker in seen:
            break
        seen.add(marker)
        items.append(current)
        if current.__cause__ is not None:
            current = current.__cause__
            continue
        if current.__context__ is not None and not current.__suppress_context__:
            current = current.__context__
            continue
        break
    return items


def _emit_failure(exc: BaseException, exit_code: ExitCode) -> None:
    if exit_code is ExitCode.ERR_GENERIC:
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        return
    _write_stderr(str(exc).strip() or exc.__class__.__name__)


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "cli_entrypoint", "main"]
