"""
pulse-agent — heartbeat handler chain.

Purpose
- Compose independent processing stages (filtering, enrichment, sanitization,
  backoff, delivery) around a terminal sender.

Contract
- A ``Handle`` maps an ordered batch of heartbeats to an ordered list of
  results, raising to abort the whole batch.
- A ``HandleOption`` wraps the next ``Handle`` and returns a new one.
- ``new_handle(sender, a, b, c)`` runs ``a`` first and ``sender`` last.
- A stage may drop entries before delegating; dropped entries produce no
  result, so callers must not assume index alignment with the input batch.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, TypeAlias

from pulse_agent.heartbeat.models import Heartbeat, Result

Handle: TypeAlias = Callable[[list[Heartbeat]], list[Result]]
HandleOption: TypeAlias = Callable[[Handle], Handle]


class Sender(Protocol):
    """Terminal stage of a handler chain."""

    def send_heartbeats(self, heartbeats: list[Heartbeat]) -> list[Result]: ...


def new_handle(sender: Sender, *options: HandleOption) -> Handle:
    """Fold ``sender`` through ``options`` into one composite handle."""

    def handle(heartbeats: list[Heartbeat]) -> list[Result]:
        composed: Handle = sender.send_heartbeats
        for option in reversed(options):
            composed = option(composed)
        return composed(list(heartbeats))

    return handle


__all__ = [
    "Handle",
    "HandleOption",
    "Sender",
    "new_handle",
]
