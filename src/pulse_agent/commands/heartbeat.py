"""
pulse-agent — heartbeat command.

Purpose
- Build the heartbeat batch from settings, run it through the send chain
  (enrichment stages, offline queue, backoff gate, API), and map failures to
  exit codes.

Failure mapping
- Backoff suppression: ``ERR_BACKOFF``. Rejected or missing API key:
  ``ERR_AUTH`` (the batch is saved offline first). API/transport failure:
  ``ERR_API``. Anything else raised as ``CommandError``: ``ERR_GENERIC``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TextIO

from pulse_agent.api.client import ApiClient, ApiError, AuthError
from pulse_agent.backoff import BackoffConfig, BackoffError, load_backoff_state, with_backoff
from pulse_agent.config.loader import ConfigLoadError, Settings
from pulse_agent.heartbeat.handle import new_handle
from pulse_agent.heartbeat.models import Result
from pulse_agent.main import ExitCode
from pulse_agent.observability.logging import correlation_scope, heartbeat_log_fields
from pulse_agent.offline.queue import OfflineQueueError, with_queue
from pulse_agent.offline.save import OfflineDisabledError, queue_path_for, save_heartbeats
from pulse_agent.params import (
    Params,
    ParamsError,
    build_heartbeats,
    init_handle_options,
    load_params,
)
from pulse_agent.supervisor import CommandError, exit_code_for

logger = logging.getLogger(__name__)


def run(settings: Settings, *, stdin: TextIO | None = None) -> int:
    """Send the heartbeat(s) described by ``settings``."""

    try:
        send_heartbeats(settings, stdin=stdin)
    except (ApiError, BackoffError, OfflineQueueError, ParamsError, ConfigLoadError) as exc:
        raise CommandError(exit_code_for(exc), f"failed to send heartbeat(s): {exc}") from exc

    logger.debug("successfully sent heartbeat(s)")
    return int(ExitCode.SUCCESS)


def run_without_sending(settings: Settings, *, stdin: TextIO | None = None) -> int:
    """Save the heartbeat(s) to the offline queue without contacting the API."""

    try:
        count = save_heartbeats(settings, stdin=stdin)
    except (OfflineDisabledError, OfflineQueueError, ParamsError, ConfigLoadError) as exc:
        raise CommandError(
            int(ExitCode.ERR_GENERIC), f"failed to save heartbeats to offline queue: {exc}"
        ) from exc

    logger.debug("successfully saved %d heartbeat(s) to offline queue", count)
    return int(ExitCode.SUCCESS)


def send_heartbeats(
    settings: Settings,
    *,
    queue_path: str | Path | None = None,
    stdin: TextIO | None = None,
) -> list[Result]:
    try:
        params = load_params(settings, stdin=stdin)
    except AuthError:
        _save_after_auth_failure(settings, queue_path, stdin)
        raise

    with correlation_scope(**heartbeat_log_fields(params)):
        heartbeats = build_heartbeats(params)
        options = init_handle_options(params)
        if not params.offline.disabled:
            options.append(with_queue(queue_path_for(settings, queue_path)))

        store = settings.internal_store()
        state = load_backoff_state(store)
        options.append(with_backoff(BackoffConfig(retries=state.retries, at=state.at, store=store)))

        with _api_client(params) as client:
            handle = new_handle(client, *options)
            results = handle(heartbeats)

        accepted = sum(1 for result in results if result.accepted)
        logger.debug(
            "api accepted %d of %d heartbeat(s) reaching the sender", accepted, len(results)
        )
        return results


def _api_client(params: Params) -> ApiClient:
    return ApiClient(
        params.api.url,
        api_key=params.api.key,
        user_agent=params.api.user_agent,
        hostname=params.api.hostname,
        timeout=params.api.timeout,
        verify=not params.api.disable_ssl_verify,
    )


def _save_after_auth_failure(
    settings: Settings, queue_path: str | Path | None, stdin: TextIO | None
) -> None:
    try:
        save_heartbeats(settings, queue_path=queue_path, stdin=stdin)
    except OfflineDisabledError:
        return
    except (OfflineQueueError, ParamsError) as exc:
        logger.warning("failed to save heartbeats to offline queue: %s", exc)


__all__ = ["run", "run_without_sending", "send_heartbeats"]
