"""
pulse-agent — offline save path.

Purpose
- Run the same enrichment stages as the send path, but terminate the chain
  in the offline queue instead of the API.

Functional requirements
- Refuse to run when offline persistence is disabled; nothing is queued.
- When no batch is given, build it from the heartbeat parameters.
- Failure to open the queue aborts with a descriptive ``OfflineQueueError``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TextIO

from pulse_agent.config.loader import Settings
from pulse_agent.config.store import resources_dir
from pulse_agent.constants import DEFAULT_QUEUE_FILE
from pulse_agent.heartbeat.handle import new_handle
from pulse_agent.heartbeat.models import Heartbeat
from pulse_agent.observability.logging import correlation_scope, heartbeat_log_fields
from pulse_agent.offline.queue import OfflineQueueError, OfflineSender, OfflineSendError, with_queue
from pulse_agent.params import build_heartbeats, init_handle_options, load_params

logger = logging.getLogger(__name__)


class OfflineDisabledError(RuntimeError):
    """Raised when saving is requested but offline persistence is disabled."""


def default_queue_path(settings: Settings) -> Path:
    return resources_dir(settings.environ) / DEFAULT_QUEUE_FILE


def queue_path_for(settings: Settings, explicit: str | Path | None = None) -> Path:
    """``--offline-queue-file`` wins over ``explicit``, which wins over the default."""

    configured = settings.get_str("offline_queue_file")
    if configured:
        return Path(configured).expanduser()
    if explicit is not None:
        return Path(explicit)
    return default_queue_path(settings)


def save_heartbeats(
    settings: Settings,
    heartbeats: list[Heartbeat] | None = None,
    queue_path: str | Path | None = None,
    *,
    stdin: TextIO | None = None,
) -> int:
    """Store ``heartbeats`` (or the batch described by ``settings``) offline.

    Returns the number of heartbeats that reached the queue; filtered entries
    are not counted.
    """

    params = load_params(
        settings,
        with_heartbeat=heartbeats is None,
        require_api_key=False,
        stdin=stdin,
    )
    if params.offline.disabled:
        raise OfflineDisabledError("saving to offline db disabled")

    if heartbeats is None:
        heartbeats = build_heartbeats(params)

    options = init_handle_options(params)
    path = queue_path_for(settings, queue_path)
    try:
        options.append(with_queue(path))
    except OfflineQueueError as exc:
        raise OfflineQueueError(
            f"failed saving heartbeats because unable to init offline queue: {exc}"
        ) from exc

    sender = OfflineSender()
    handle = new_handle(sender, *options)
    with correlation_scope(**heartbeat_log_fields(params)):
        try:
            handle(heartbeats)
        except OfflineSendError:
            logger.debug("saved %d heartbeat(s) to offline queue %s", sender.received, path)
    return sender.received


__all__ = [
    "OfflineDisabledError",
    "default_queue_path",
    "queue_path_for",
    "save_heartbeats",
]
