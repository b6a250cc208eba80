"""Tests for the GitHub Copilot metrics client."""

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from copilot_metrics.exceptions import (
    FetchAuthError,
    FetchError,
    FetchNotFoundError,
    FetchPayloadError,
    FetchRateLimitError,
    FetchTimeoutError,
)
from copilot_metrics.github import FixtureMetricsClient, GitHubMetricsClient
from copilot_metrics.models import Scope

pytestmark = pytest.mark.asyncio


def _client(handler, **kwargs) -> GitHubMetricsClient:
    return GitHubMetricsClient(
        token="ghp_test",
        enterprise_id="acme",
        http_client=handler.client(),
        **kwargs,
    )


def _ok(payload):
    return lambda request, call: httpx.Response(200, json=payload)


async def test_enterprise_request_shape(recording_handler, day_payload):
    handler = recording_handler(_ok([day_payload]))

    snapshots = await _client(handler).fetch(Scope.enterprise())

    assert len(snapshots) == 1
    [request] = handler.requests
    assert request.method == "GET"
    assert request.url.path == "/enterprises/acme/copilot/metrics"
    assert "since" in request.url.params
    assert request.headers["Authorization"] == "Bearer ghp_test"
    assert request.headers["Accept"] == "application/vnd.github+json"
    assert request.headers["X-GitHub-Api-Version"] == "2022-11-28"


async def test_team_request_path(recording_handler, day_payload):
    handler = recording_handler(_ok([day_payload]))

    await _client(handler).fetch(Scope.team("platform-eng"))

    assert handler.requests[0].url.path == "/enterprises/acme/team/platform-eng/copilot/metrics"


async def test_custom_api_url(recording_handler):
    handler = recording_handler(_ok([]))

    await _client(handler, api_url="https://ghe.example.com/api/v3/").fetch(Scope.enterprise())

    assert str(handler.requests[0].url).startswith(
        "https://ghe.example.com/api/v3/enterprises/acme/copilot/metrics"
    )


async def test_empty_list_returns_no_snapshots(recording_handler):
    handler = recording_handler(_ok([]))
    assert await _client(handler).fetch(Scope.enterprise()) == []


@pytest.mark.parametrize("status", [401, 403])
@patch("copilot_metrics.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_auth_failure_not_retried(mock_sleep, recording_handler, status):
    handler = recording_handler(lambda request, call: httpx.Response(status, json={"message": "Bad credentials"}))

    with pytest.raises(FetchAuthError) as exc_info:
        await _client(handler).fetch(Scope.team("platform-eng"))

    assert exc_info.value.status_code == status
    assert exc_info.value.scope == "platform-eng"
    assert len(handler.requests) == 1
    mock_sleep.assert_not_awaited()


@patch("copilot_metrics.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_not_found(mock_sleep, recording_handler):
    handler = recording_handler(lambda request, call: httpx.Response(404, json={"message": "Not Found"}))

    with pytest.raises(FetchNotFoundError):
        await _client(handler).fetch(Scope.team("ghost"))

    assert len(handler.requests) == 1


@patch("copilot_metrics.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_server_error_retried_then_succeeds(mock_sleep, recording_handler, day_payload):
    def respond(request, call):
        if call == 1:
            return httpx.Response(503)
        return httpx.Response(200, json=[day_payload])

    handler = recording_handler(respond)

    snapshots = await _client(handler).fetch(Scope.enterprise())

    assert len(snapshots) == 1
    assert len(handler.requests) == 2
    assert mock_sleep.await_count == 1


@patch("copilot_metrics.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_rate_limit_exhausted(mock_sleep, recording_handler):
    handler = recording_handler(
        lambda request, call: httpx.Response(429, headers={"Retry-After": "12"})
    )

    with pytest.raises(FetchRateLimitError) as exc_info:
        await _client(handler, max_attempts=2).fetch(Scope.enterprise())

    assert exc_info.value.retry_after == 12.0
    assert len(handler.requests) == 2


@patch("copilot_metrics.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_other_status_raises_fetch_error(mock_sleep, recording_handler):
    handler = recording_handler(lambda request, call: httpx.Response(422, text="unprocessable"))

    with pytest.raises(FetchError) as exc_info:
        await _client(handler).fetch(Scope.enterprise())

    assert exc_info.value.status_code == 422
    assert exc_info.value.response_body == "unprocessable"


@patch("copilot_metrics.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_transport_failure_becomes_timeout_error(mock_sleep, recording_handler):
    def respond(request, call):
        raise httpx.ConnectTimeout("timed out", request=request)

    handler = recording_handler(respond)

    with pytest.raises(FetchTimeoutError):
        await _client(handler, max_attempts=3).fetch(Scope.enterprise())

    assert len(handler.requests) == 3


async def test_undecodable_body_becomes_fetch_error(recording_handler):
    handler = recording_handler(
        lambda request, call: httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not-gzip")
    )

    with pytest.raises(FetchError, match="DecodingError"):
        await _client(handler).fetch(Scope.enterprise())

    assert len(handler.requests) == 1


async def test_non_json_body(recording_handler):
    handler = recording_handler(lambda request, call: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(FetchPayloadError):
        await _client(handler).fetch(Scope.enterprise())


async def test_schema_violation(recording_handler):
    handler = recording_handler(_ok({"message": "unexpected object"}))

    with pytest.raises(FetchPayloadError):
        await _client(handler).fetch(Scope.enterprise())


async def test_fixture_client_scales_by_scope():
    client = FixtureMetricsClient(enterprise_users=(10, 8), team_users=(4, 2))

    [enterprise] = await client.fetch(Scope.enterprise())
    [team] = await client.fetch(Scope.team("web"))

    assert enterprise.total_active_users == 10
    assert team.total_active_users == 4
    assert team.copilot_ide_code_completions is not None
