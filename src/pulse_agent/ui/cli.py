"""Command-line interface router for pulse-agent."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Final

from pulse_agent import __version__
from pulse_agent.commands import (
    config_read,
    config_write,
    heartbeat,
    offline_count,
    offline_sync,
    version,
)
from pulse_agent.config import ConfigLoadError, Settings, load_config, resources_dir
from pulse_agent.constants import DEFAULT_LOG_FILE
from pulse_agent.main import ExitCode
from pulse_agent.observability.logging import LoggingConfig, setup_logging, shutdown_logging
from pulse_agent.supervisor import run_cmd, run_cmd_with_offline_sync

logger = logging.getLogger(__name__)

# argparse dest -> settings key, for options whose names differ.
_SETTING_ALIASES: Final[Mapping[str, str]] = {
    "key": "api_key",
}
# Parser-only destinations that are not settings.
_NON_SETTINGS: Final[frozenset[str]] = frozenset(
    {"command", "handler", "config_path", "internal_config_path"}
)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="pulse",
        description=(
            "pulse — editor activity heartbeat agent.\n\n"
            "Common workflows:\n"
            "  pulse heartbeat --entity main.go --plugin vim/9.0   Send one heartbeat\n"
            "  pulse sync-offline                                  Resend queued heartbeats\n"
            "  pulse config-read api_key                           Print a config value\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"pulse {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to the INI config file (default: ~/.pulse.cfg).",
    )
    common.add_argument(
        "--internal-config",
        dest="internal_config_path",
        default=None,
        help="Path to the internal state file (default: ~/.pulse-internal.cfg).",
    )
    common.add_argument(
        "--verbose",
        action="store_true",
        default=None,
        help="Log at DEBUG level.",
    )
    common.add_argument("--log-file", default=None, help="Log file path.")
    common.add_argument(
        "--log-to-stdout",
        action="store_true",
        default=None,
        help="Write logs to stdout instead of the log file.",
    )
    common.add_argument("--key", default=None, help="API key.")
    common.add_argument("--api-url", default=None, help="API base URL.")
    common.add_argument("--plugin", default=None, help="Editor plugin name and version.")
    common.add_argument("--timeout", type=float, default=None, help="HTTP timeout in seconds.")
    common.add_argument("--hostname", default=None, help="Override the reported machine name.")
    common.add_argument(
        "--no-ssl-verify",
        action="store_true",
        default=None,
        help="Disable TLS certificate verification.",
    )
    common.add_argument(
        "--disable-offline",
        action="store_true",
        default=None,
        help="Never queue heartbeats offline.",
    )
    common.add_argument("--offline-queue-file", default=None, help="Offline queue database path.")
    common.add_argument(
        "--sync-offline-activity",
        type=int,
        default=None,
        help="Maximum queued heartbeats to resend per run (0 disables).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    heartbeat_fields = _heartbeat_arguments()

    heartbeat_parser = subparsers.add_parser(
        "heartbeat",
        parents=[common, heartbeat_fields],
        help="Send heartbeat(s), then resend queued offline activity.",
    )
    heartbeat_parser.set_defaults(handler=_cmd_heartbeat)

    save_parser = subparsers.add_parser(
        "offline-save",
        parents=[common, heartbeat_fields],
        help="Save heartbeat(s) to the offline queue without sending.",
    )
    save_parser.set_defaults(handler=_cmd_offline_save)

    sync_parser = subparsers.add_parser(
        "sync-offline",
        parents=[common],
        help="Resend heartbeats from the offline queue.",
    )
    sync_parser.set_defaults(handler=_cmd_sync_offline)

    count_parser = subparsers.add_parser(
        "offline-count",
        parents=[common],
        help="Print the number of queued offline heartbeats.",
    )
    count_parser.set_defaults(handler=_cmd_offline_count)

    read_parser = subparsers.add_parser(
        "config-read",
        parents=[common],
        help="Print one value from the config file.",
    )
    read_parser.add_argument("config_read", metavar="KEY")
    read_parser.add_argument("--section", dest="config_section", default=None)
    read_parser.set_defaults(handler=_cmd_config_read)

    write_parser = subparsers.add_parser(
        "config-write",
        parents=[common],
        help="Write KEY VALUE pairs to the config file.",
    )
    write_parser.add_argument("config_write", nargs="+", metavar="KEY_OR_VALUE")
    write_parser.add_argument("--section", dest="config_section", default=None)
    write_parser.set_defaults(handler=_cmd_config_write)

    version_parser = subparsers.add_parser(
        "version",
        parents=[common],
        help="Print the agent version.",
    )
    version_parser.set_defaults(handler=_cmd_version)

    agent_parser = subparsers.add_parser(
        "user-agent",
        parents=[common],
        help="Print the user agent sent with heartbeats.",
    )
    agent_parser.set_defaults(handler=_cmd_user_agent)

    return parser


def _heartbeat_arguments() -> argparse.ArgumentParser:
    fields = argparse.ArgumentParser(add_help=False)
    fields.add_argument("--entity", default=None, help="File path, domain, or app name.")
    fields.add_argument("--time", type=float, default=None, help="UNIX epoch seconds.")
    fields.add_argument(
        "--entity-type",
        choices=("file", "domain", "app"),
        default=None,
    )
    fields.add_argument("--category", default=None, help="Activity category (default: coding).")
    fields.add_argument("--write", action="store_true", default=None)
    fields.add_argument("--lineno", type=int, default=None)
    fields.add_argument("--cursorpos", type=int, default=None)
    fields.add_argument("--lines-in-file", type=int, default=None)
    fields.add_argument("--language", default=None)
    fields.add_argument("--alternate-language", default=None)
    fields.add_argument("--local-file", default=None)
    fields.add_argument("--project", default=None)
    fields.add_argument("--alternate-project", default=None)
    fields.add_argument("--project-folder", default=None)
    fields.add_argument(
        "--extra-heartbeats",
        action="store_true",
        default=None,
        help="Read a JSON array of additional heartbeats from stdin.",
    )
    fields.add_argument("--exclude", action="append", default=None, metavar="REGEX")
    fields.add_argument("--include", action="append", default=None, metavar="REGEX")
    fields.add_argument("--include-only-with-project-file", action="store_true", default=None)
    fields.add_argument("--exclude-unknown-project", action="store_true", default=None)
    for name in ("file-names", "project-names", "branch-names"):
        fields.add_argument(
            f"--hide-{name}",
            action="store_const",
            const="true",
            default=None,
            help=f"Obfuscate {name.replace('-', ' ')} in sent heartbeats.",
        )
    fields.add_argument("--hide-project-folder", action="store_true", default=None)
    return fields


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    overrides = cli_overrides(namespace)
    try:
        settings = load_config(
            namespace.config_path,
            internal_config_path=namespace.internal_config_path,
            cli_overrides=overrides,
        )
    except ConfigLoadError as exc:
        return _run_after_config_failure(namespace, overrides, exc)

    try:
        verbose = settings.get_bool("verbose")
        _configure_logging(settings, verbose=verbose)
    except ConfigLoadError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return int(ExitCode.ERR_CONFIG_FILE_PARSE)

    try:
        return int(handler(settings, verbose))
    finally:
        shutdown_logging()


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


def cli_overrides(namespace: argparse.Namespace) -> dict[str, object]:
    """Translate parsed flags into settings keys; unset flags are omitted."""

    overrides: dict[str, object] = {}
    for dest, value in vars(namespace).items():
        if dest in _NON_SETTINGS or value is None:
            continue
        overrides[_SETTING_ALIASES.get(dest, dest)] = value
    return overrides


def _run_after_config_failure(
    namespace: argparse.Namespace,
    overrides: Mapping[str, object],
    exc: ConfigLoadError,
) -> int:
    settings = load_config(
        namespace.config_path,
        internal_config_path=namespace.internal_config_path,
        cli_overrides=overrides,
        skip_file=True,
    )
    verbose = overrides.get("verbose") is True
    _configure_logging(settings, verbose=verbose)
    try:
        logger.error("failed to load configuration file: %s", exc)
        if namespace.command in {"heartbeat", "offline-save"} and overrides.get("entity"):
            return run_cmd(settings, verbose, heartbeat.run_without_sending)
        print(f"error: {exc}", file=sys.stderr)
        return int(ExitCode.ERR_CONFIG_FILE_PARSE)
    finally:
        shutdown_logging()


def _configure_logging(settings: Settings, *, verbose: bool) -> None:
    log_file = settings.get_str("log_file")
    log_path = Path(log_file) if log_file else resources_dir(settings.environ) / DEFAULT_LOG_FILE
    setup_logging(
        LoggingConfig(
            log_file=log_path,
            log_to_stdout=settings.get_bool("log_to_stdout"),
            verbose=verbose,
        )
    )


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_heartbeat(settings: Settings, verbose: bool) -> int:
    return run_cmd_with_offline_sync(settings, verbose, heartbeat.run)


def _cmd_offline_save(settings: Settings, verbose: bool) -> int:
    return run_cmd(settings, verbose, heartbeat.run_without_sending)


def _cmd_sync_offline(settings: Settings, verbose: bool) -> int:
    return run_cmd(settings, verbose, offline_sync.run)


def _cmd_offline_count(settings: Settings, verbose: bool) -> int:
    return run_cmd(settings, verbose, offline_count.run)


def _cmd_config_read(settings: Settings, verbose: bool) -> int:
    return run_cmd(settings, verbose, config_read.run)


def _cmd_config_write(settings: Settings, verbose: bool) -> int:
    return run_cmd(settings, verbose, config_write.run)


def _cmd_version(settings: Settings, verbose: bool) -> int:
    return run_cmd(settings, verbose, version.run)


def _cmd_user_agent(settings: Settings, verbose: bool) -> int:
    return version.run_user_agent(settings)


__all__ = ["build_parser", "cli_overrides", "main", "run_cli"]
