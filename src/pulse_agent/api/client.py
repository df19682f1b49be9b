"""
pulse-agent — HTTP client for the ingestion API.

Purpose
- Submit heartbeat batches and diagnostics to the remote API with a
  synchronous ``httpx.Client``.

Status mapping (bulk heartbeat endpoint)
- 201/202: body ``{"responses": [[data, status], ...]}``; per-entry status
  201/202 is accepted, 400 rejected, anything else error.
- 400: every heartbeat in the batch is rejected.
- 401/403: ``AuthError``.
- Anything else, timeouts, and transport failures: ``ApiError``.
"""

from __future__ import annotations

import json
import logging
import platform
from collections.abc import Sequence
from typing import Final

import httpx

from pulse_agent import __version__
from pulse_agent.constants import DEFAULT_TIMEOUT_SECONDS
from pulse_agent.heartbeat.models import Heartbeat, Result, ResultStatus

logger = logging.getLogger(__name__)

HEARTBEATS_PATH: Final[str] = "/users/current/heartbeats.bulk"
DIAGNOSTICS_PATH: Final[str] = "/plugins/errors"

_ACCEPTED_CODES: Final[frozenset[int]] = frozenset({201, 202})
_AUTH_CODES: Final[frozenset[int]] = frozenset({401, 403})


class ApiError(RuntimeError):
    """Raised for transport failures and unexpected API responses."""


class AuthError(ApiError):
    """Raised when the API rejects or is missing the API key."""


class ApiClient:
    """Thin wrapper over ``httpx.Client`` bound to one API base URL."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        user_agent: str = "",
        hostname: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        verify: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        headers = {"Accept": "application/json"}
        if user_agent:
            headers["User-Agent"] = user_agent
        if hostname:
            headers["X-Machine-Name"] = hostname
        auth = httpx.BasicAuth(api_key, "") if api_key else None
        self._has_auth = auth is not None
        self._client = httpx.Client(
            headers=headers,
            auth=auth,
            timeout=httpx.Timeout(timeout),
            verify=verify,
            transport=transport,
            follow_redirects=True,
        )

    def __enter__(self) -> ApiClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def send_heartbeats(self, heartbeats: Sequence[Heartbeat]) -> list[Result]:
        """POST ``heartbeats`` to the bulk endpoint and map per-entry statuses."""

        if not self._has_auth:
            raise AuthError("api key not found or empty")
        batch = list(heartbeats)
        if not batch:
            return []

        logger.debug("sending %d heartbeat(s) to api at %s", len(batch), self.base_url)
        url = self.base_url + HEARTBEATS_PATH
        response = self._post(url, [heartbeat.to_payload() for heartbeat in batch])

        if response.status_code in _AUTH_CODES:
            raise AuthError(f"authentication error at {url} (status {response.status_code})")
        if response.status_code == 400:
            message = response.text.strip() or "bad request"
            return [Result(ResultStatus.REJECTED, heartbeat, message) for heartbeat in batch]
        if response.status_code not in _ACCEPTED_CODES:
            raise ApiError(
                f"invalid response status from {url}: {response.status_code} {response.text[:200]}"
            )
        return _parse_bulk_response(response, batch)

    def send_diagnostics(self, plugin: str | None, logs: str, stack: str) -> None:
        url = self.base_url + DIAGNOSTICS_PATH
        payload: dict[str, object] = {
            "architecture": platform.machine(),
            "cli_version": __version__,
            "logs": logs,
            "platform": platform.system().lower(),
            "plugin": plugin or "",
            "stacktrace": stack,
        }
        response = self._post(url, payload)
        if response.status_code not in _ACCEPTED_CODES:
            raise ApiError(
                f"invalid response status from {url}: {response.status_code} {response.text[:200]}"
            )

    def _post(self, url: str, payload: object) -> httpx.Response:
        try:
            return self._client.post(url, json=payload)
        except httpx.TimeoutException as exc:
            raise ApiError(f"request to {url} timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise ApiError(f"failed making request to {url}: {exc}") from exc


def _parse_bulk_response(response: httpx.Response, batch: list[Heartbeat]) -> list[Result]:
    try:
        body = response.json()
    except json.JSONDecodeError as exc:
        raise ApiError(f"failed to parse heartbeat response body: {exc}") from exc

    entries = body.get("responses") if isinstance(body, dict) else None
    if not isinstance(entries, list):
        raise ApiError("heartbeat response body is missing 'responses'")
    if len(entries) != len(batch):
        logger.warning(
            "api returned %d result(s) for %d heartbeat(s)", len(entries), len(batch)
        )

    results: list[Result] = []
    for heartbeat, entry in zip(batch, entries, strict=False):
        status_code: object = None
        data: object = None
        if isinstance(entry, list) and len(entry) == 2:
            data, status_code = entry
        if status_code in _ACCEPTED_CODES:
            results.append(Result(ResultStatus.ACCEPTED, heartbeat))
        elif status_code == 400:
            results.append(Result(ResultStatus.REJECTED, heartbeat, _entry_message(data)))
        else:
            results.append(Result(ResultStatus.ERROR, heartbeat, _entry_message(data)))
    return results


def _entry_message(data: object) -> str | None:
    if isinstance(data, dict):
        error = data.get("error") or data.get("errors")
        if error:
            return error if isinstance(error, str) else json.dumps(error, sort_keys=True)
    return None


__all__ = ["ApiClient", "ApiError", "AuthError", "DIAGNOSTICS_PATH", "HEARTBEATS_PATH"]
