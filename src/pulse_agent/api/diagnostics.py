"""Best-effort diagnostics upload used by the command supervisor."""

from __future__ import annotations

import logging

from pulse_agent.api.client import ApiClient, ApiError
from pulse_agent.config.loader import ConfigLoadError, Settings

logger = logging.getLogger(__name__)


def send_diagnostics(settings: Settings, logs: str, stack: str) -> bool:
    """Upload captured logs and stack trace; never raises.

    Returns ``True`` when the API accepted the upload.
    """

    from pulse_agent.params import ParamsError, load_api_params

    try:
        params = load_api_params(settings, require_key=False)
    except (ApiError, ConfigLoadError, ParamsError) as exc:
        logger.error("failed to load parameters for sending diagnostics: %s", exc)
        return False

    try:
        # Unauthenticated, TLS verification off.
        client = ApiClient(
            params.url,
            user_agent=params.user_agent,
            hostname=params.hostname,
            timeout=params.timeout,
            verify=False,
        )
    except (OSError, ValueError) as exc:
        logger.error("failed to initialize api client for sending diagnostics: %s", exc)
        return False

    with client:
        try:
            client.send_diagnostics(params.plugin, logs, stack)
        except ApiError as exc:
            logger.error("failed to send diagnostics: %s", exc)
            return False

    logger.debug("successfully sent diagnostics")
    return True


__all__ = ["send_diagnostics"]
