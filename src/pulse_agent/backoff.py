"""
pulse-agent — persistent exponential backoff gate.

Purpose
- Suppress delivery attempts while the API is known to be failing and
  self-heal on the next success.

Decision rule
- Never block when ``retries < 1`` or ``at`` is unset.
- Otherwise block while ``now < at + 15 * 2**retries`` seconds and
  ``now < at + 3600`` seconds. The one-hour ceiling is absolute.

State
- Persisted in the internal config file, section ``internal``, keys
  ``backoff_retries`` (decimal) and ``backoff_at`` (``DATE_FORMAT``; empty
  means unset). State is read once per command; the gate never caches across
  calls.
- Write failures are logged at WARNING and swallowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Final, Protocol

from pulse_agent.config.store import DATE_FORMAT, ConfigReadError, ConfigWriteError
from pulse_agent.constants import INTERNAL_SECTION
from pulse_agent.heartbeat.handle import Handle, HandleOption
from pulse_agent.heartbeat.models import Heartbeat, Result

logger = logging.getLogger(__name__)

FACTOR: Final[int] = 15
RESET_AFTER: Final[int] = 3600
_CEILING_RETRIES: Final[int] = 8

RETRIES_KEY: Final[str] = "backoff_retries"
AT_KEY: Final[str] = "backoff_at"


class BackoffError(RuntimeError):
    """Raised when the gate declines to attempt a send."""

    def __init__(self, message: str = "won't send heartbeat due to backoff") -> None:
        super().__init__(message)


class BackoffStore(Protocol):
    def read(self, section: str, key: str) -> str | None: ...

    def write(self, section: str, values: Mapping[str, str]) -> None: ...


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class BackoffState:
    retries: int = 0
    at: datetime | None = None


@dataclass(frozen=True, slots=True)
class BackoffConfig:
    """Snapshot of the durable state plus the store used to update it."""

    retries: int
    at: datetime | None
    store: BackoffStore
    clock: Callable[[], datetime] = field(default=_utc_now)


def with_backoff(config: BackoffConfig) -> HandleOption:
    def option(next_handle: Handle) -> Handle:
        def handle(heartbeats: list[Heartbeat]) -> list[Result]:
            logger.debug("execute heartbeat backoff algorithm")

            if should_backoff(config.retries, config.at, now=config.clock()):
                raise BackoffError()

            try:
                results = next_handle(heartbeats)
            except Exception:
                logger.debug("incrementing backoff due to error")
                try:
                    update_backoff_settings(config.store, config.retries + 1, config.clock())
                except ConfigWriteError as exc:
                    logger.warning("failed to update backoff settings: %s", exc)
                raise

            if config.at is not None:
                try:
                    update_backoff_settings(config.store, 0, None)
                except ConfigWriteError as exc:
                    logger.warning("failed to reset backoff settings: %s", exc)

            return results

        return handle

    return option


def should_backoff(retries: int, at: datetime | None, *, now: datetime | None = None) -> bool:
    if retries < 1 or at is None:
        return False

    current = now if now is not None else _utc_now()
    # The reset ceiling caps the exponential delay; FACTOR * 2**8 already exceeds it.
    if retries >= _CEILING_RETRIES:
        delay = timedelta(seconds=RESET_AFTER)
    else:
        delay = timedelta(seconds=min(FACTOR * 2**retries, RESET_AFTER))
    try:
        retry_at = at + delay
    except OverflowError:
        logger.warning("ignoring out of range %s value %s", AT_KEY, at.isoformat())
        return False

    logger.debug(
        "exponential backoff tried %d times since %s, will retry at %s",
        retries,
        at.isoformat(),
        retry_at.isoformat(),
    )
    return current < retry_at


def update_backoff_settings(store: BackoffStore, retries: int, at: datetime | None) -> None:
    values = {
        RETRIES_KEY: str(retries),
        AT_KEY: "" if at is None else at.strftime(DATE_FORMAT),
    }
    store.write(INTERNAL_SECTION, values)


def load_backoff_state(store: BackoffStore) -> BackoffState:
    """Read durable state; absent or invalid values read as healthy."""

    try:
        raw_retries = store.read(INTERNAL_SECTION, RETRIES_KEY)
        raw_at = store.read(INTERNAL_SECTION, AT_KEY)
    except ConfigReadError as exc:
        logger.warning("failed to read backoff settings: %s", exc)
        return BackoffState()

    retries = 0
    if raw_retries:
        try:
            retries = max(0, int(raw_retries))
        except ValueError:
            logger.warning("invalid %s value %r", RETRIES_KEY, raw_retries)

    at: datetime | None = None
    if raw_at:
        try:
            at = datetime.strptime(raw_at, DATE_FORMAT)
        except ValueError:
            logger.warning("invalid %s value %r", AT_KEY, raw_at)

    if retries == 0 or at is None:
        return BackoffState()
    return BackoffState(retries=retries, at=at)


__all__ = [
    "AT_KEY",
    "BackoffConfig",
    "BackoffError",
    "BackoffState",
    "BackoffStore",
    "FACTOR",
    "RESET_AFTER",
    "RETRIES_KEY",
    "load_backoff_state",
    "should_backoff",
    "update_backoff_settings",
    "with_backoff",
]
