"""
pulse-agent — offline resync command.

Purpose
- Drain the offline queue through the backoff gate and API sender in
  batches of ``SYNC_SEND_LIMIT``, up to ``sync_offline_activity`` heartbeats
  per run (``0`` disables syncing).

Failure semantics
- A failing batch is pushed back to the queue and the command stops with the
  mapped exit code; entries the API answered with ``error`` are requeued.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pulse_agent.api.client import ApiClient, ApiError
from pulse_agent.backoff import BackoffConfig, BackoffError, load_backoff_state, with_backoff
from pulse_agent.config.loader import ConfigLoadError, Settings
from pulse_agent.constants import SYNC_SEND_LIMIT
from pulse_agent.heartbeat.handle import new_handle
from pulse_agent.heartbeat.models import ResultStatus
from pulse_agent.main import ExitCode
from pulse_agent.offline.queue import OfflineQueue, OfflineQueueError
from pulse_agent.offline.save import queue_path_for
from pulse_agent.params import ParamsError, load_params
from pulse_agent.supervisor import CommandError, exit_code_for

logger = logging.getLogger(__name__)


def run(settings: Settings) -> int:
    try:
        synced = sync(settings)
    except (ApiError, BackoffError, OfflineQueueError, ParamsError, ConfigLoadError) as exc:
        raise CommandError(exit_code_for(exc), f"failed to sync offline activity: {exc}") from exc

    logger.debug("synced %d offline heartbeat(s)", synced)
    return int(ExitCode.SUCCESS)


def sync(settings: Settings, *, queue_path: str | Path | None = None) -> int:
    """Send queued heartbeats; return how many were handed to the API."""

    params = load_params(settings, with_heartbeat=False)
    if params.offline.disabled:
        logger.debug("offline queue disabled, skipping sync")
        return 0
    if params.offline.sync_max == 0:
        logger.debug("offline sync disabled")
        return 0

    queue = OfflineQueue(queue_path_for(settings, queue_path))
    store = settings.internal_store()
    state = load_backoff_state(store)

    synced = 0
    with ApiClient(
        params.api.url,
        api_key=params.api.key,
        user_agent=params.api.user_agent,
        hostname=params.api.hostname,
        timeout=params.api.timeout,
        verify=not params.api.disable_ssl_verify,
    ) as client:
        handle = new_handle(
            client,
            with_backoff(BackoffConfig(retries=state.retries, at=state.at, store=store)),
        )
        while synced < params.offline.sync_max:
            limit = min(SYNC_SEND_LIMIT, params.offline.sync_max - synced)
            batch = queue.pop_many(limit)
            if not batch:
                break
            try:
                results = handle(batch)
            except Exception:
                queue.push_many(batch)
                raise

            failed = [
                result.heartbeat for result in results if result.status is ResultStatus.ERROR
            ]
            if failed:
                logger.debug("requeueing %d heartbeat(s) with errors", len(failed))
                queue.push_many(failed)
            synced += len(batch)
            # The gate reads durable state on entry.
            state = load_backoff_state(store)
            handle = new_handle(
                client,
                with_backoff(BackoffConfig(retries=state.retries, at=state.at, store=store)),
            )

    return synced


__all__ = ["run", "sync"]
