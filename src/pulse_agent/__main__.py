"""Module entrypoint for ``python -m pulse_agent``."""

from __future__ import annotations

from pulse_agent.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
