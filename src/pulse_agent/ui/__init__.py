"""UI package exports for the CLI router."""

from pulse_agent.ui.cli import build_parser, cli_overrides, main, run_cli

__all__ = ["build_parser", "cli_overrides", "main", "run_cli"]
