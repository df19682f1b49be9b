"""
pulse-agent — unit tests for the API client

Purpose
- Validate request shape and status mapping of the bulk heartbeat and
  diagnostics endpoints using ``httpx.MockTransport``.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Callable
from pathlib import Path
from unittest import mock

import httpx
import pytest

from pulse_agent.api.client import (
    DIAGNOSTICS_PATH,
    HEARTBEATS_PATH,
    ApiClient,
    ApiError,
    AuthError,
)
from pulse_agent.api.diagnostics import send_diagnostics
from pulse_agent.heartbeat.models import ResultStatus

from . import VALID_API_KEY, make_heartbeat, make_settings

BASE_URL = "https://api.example.test/api/v1"


def _client(
    handler: Callable[[httpx.Request], httpx.Response], **kwargs: object
) -> ApiClient:
    options: dict[str, object] = {"api_key": VALID_API_KEY, "user_agent": "pulse/test"}
    options.update(kwargs)
    return ApiClient(BASE_URL, transport=httpx.MockTransport(handler), **options)  # type: ignore[arg-type]


def _bulk(*statuses: int) -> httpx.Response:
    return httpx.Response(202, json={"responses": [[{}, status] for status in statuses]})


@pytest.mark.unit
def test_bulk_request_shape() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _bulk(201)

    heartbeat = make_heartbeat(project_override="secret-override", line_number=3)
    with _client(handler, hostname="build-box") as client:
        results = client.send_heartbeats([heartbeat])

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == BASE_URL + HEARTBEATS_PATH
    expected_auth = base64.b64encode(f"{VALID_API_KEY}:".encode()).decode()
    assert request.headers["Authorization"] == f"Basic {expected_auth}"
    assert request.headers["User-Agent"] == "pulse/test"
    assert request.headers["X-Machine-Name"] == "build-box"

    payload = json.loads(request.content)
    assert payload == [heartbeat.to_payload()]
    assert "project_override" not in payload[0]
    assert payload[0]["line_number"] == 3
    assert [result.status for result in results] == [ResultStatus.ACCEPTED]


@pytest.mark.unit
def test_per_entry_statuses_are_mapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            201,
            json={
                "responses": [
                    [{"data": {}}, 201],
                    [{"error": "invalid entity"}, 400],
                    [{"error": "try again"}, 500],
                ]
            },
        )

    batch = [make_heartbeat(index) for index in range(3)]
    with _client(handler) as client:
        results = client.send_heartbeats(batch)

    assert [result.status for result in results] == [
        ResultStatus.ACCEPTED,
        ResultStatus.REJECTED,
        ResultStatus.ERROR,
    ]
    assert results[1].message == "invalid entity"
    assert [result.heartbeat for result in results] == batch


@pytest.mark.unit
def test_bad_request_rejects_whole_batch() -> None:
    with _client(lambda request: httpx.Response(400, text="nope")) as client:
        results = client.send_heartbeats([make_heartbeat(1), make_heartbeat(2)])

    assert [result.status for result in results] == [ResultStatus.REJECTED] * 2
    assert {result.message for result in results} == {"nope"}


@pytest.mark.unit
@pytest.mark.parametrize("status", [401, 403])
def test_auth_failures_raise_auth_error(status: int) -> None:
    with _client(lambda request: httpx.Response(status)) as client:
        with pytest.raises(AuthError):
            client.send_heartbeats([make_heartbeat()])


@pytest.mark.unit
@pytest.mark.parametrize("status", [200, 302, 500, 503])
def test_unexpected_status_raises_api_error(status: int) -> None:
    with _client(lambda request: httpx.Response(status, text="err")) as client:
        with pytest.raises(ApiError) as excinfo:
            client.send_heartbeats([make_heartbeat()])

    assert not isinstance(excinfo.value, AuthError)


@pytest.mark.unit
def test_transport_failure_raises_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler) as client:
        with pytest.raises(ApiError, match="failed making request"):
            client.send_heartbeats([make_heartbeat()])


@pytest.mark.unit
def test_timeout_raises_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with _client(handler, timeout=0.5) as client:
        with pytest.raises(ApiError, match="timed out"):
            client.send_heartbeats([make_heartbeat()])


@pytest.mark.unit
def test_missing_key_fails_without_request() -> None:
    handler = mock.Mock(side_effect=AssertionError("no request expected"))

    with _client(handler, api_key=None) as client:
        with pytest.raises(AuthError, match="api key"):
            client.send_heartbeats([make_heartbeat()])

    handler.assert_not_called()


@pytest.mark.unit
def test_empty_batch_sends_nothing() -> None:
    handler = mock.Mock(side_effect=AssertionError("no request expected"))

    with _client(handler) as client:
        assert client.send_heartbeats([]) == []

    handler.assert_not_called()


@pytest.mark.unit
def test_short_response_list_yields_fewer_results() -> None:
    with _client(lambda request: _bulk(201)) as client:
        results = client.send_heartbeats([make_heartbeat(1), make_heartbeat(2)])

    assert len(results) == 1


@pytest.mark.unit
def test_malformed_body_raises_api_error() -> None:
    with _client(lambda request: httpx.Response(202, json={"unexpected": True})) as client:
        with pytest.raises(ApiError, match="responses"):
            client.send_heartbeats([make_heartbeat()])


@pytest.mark.unit
def test_diagnostics_payload() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201)

    with _client(handler, api_key=None) as client:
        client.send_diagnostics("vim/9.0", "log lines", "Traceback ...")

    request = seen[0]
    assert str(request.url) == BASE_URL + DIAGNOSTICS_PATH
    assert "Authorization" not in request.headers
    body = json.loads(request.content)
    assert body["plugin"] == "vim/9.0"
    assert body["logs"] == "log lines"
    assert body["stacktrace"] == "Traceback ..."
    assert set(body) == {"architecture", "cli_version", "logs", "platform", "plugin", "stacktrace"}


def _patched_client_factory(
    handler: Callable[[httpx.Request], httpx.Response],
) -> Callable[..., ApiClient]:
    def factory(*args: object, **kwargs: object) -> ApiClient:
        return ApiClient(*args, transport=httpx.MockTransport(handler), **kwargs)  # type: ignore[arg-type]

    return factory


@pytest.mark.unit
def test_send_diagnostics_reports_success(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, api_url=BASE_URL)
    factory = _patched_client_factory(lambda request: httpx.Response(201))

    with mock.patch("pulse_agent.api.diagnostics.ApiClient", side_effect=factory):
        assert send_diagnostics(settings, "logs", "stack") is True


@pytest.mark.unit
def test_send_diagnostics_never_raises(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, api_url=BASE_URL)
    factory = _patched_client_factory(lambda request: httpx.Response(500))

    with mock.patch("pulse_agent.api.diagnostics.ApiClient", side_effect=factory):
        assert send_diagnostics(settings, "logs", "stack") is False
