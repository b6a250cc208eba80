"""End-to-end runs through the handler with GitHub and Datadog faked at the transport."""

import json
import logging
from collections import defaultdict
from typing import Dict, List
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from copilot_metrics import http_client
from copilot_metrics.github.fixtures import sample_day
from copilot_metrics.handler import run

pytestmark = pytest.mark.asyncio

GITHUB_HOST = "api.github.com"
DATADOG_HOST = "api.datadoghq.eu"


class FakeBackends:
    """Serves GitHub metrics per path and records Datadog submissions."""

    def __init__(self):
        self.github: Dict[str, List[httpx.Response]] = {}
        self.datadog: List[httpx.Response] = []
        self.github_requests: List[httpx.Request] = []
        self.datadog_requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == GITHUB_HOST:
            self.github_requests.append(request)
            queue = self.github.get(request.url.path)
            if not queue:
                return httpx.Response(404, json={"message": "Not Found"})
            return queue.pop(0) if len(queue) > 1 else queue[0]
        if request.url.host == DATADOG_HOST:
            self.datadog_requests.append(request)
            if len(self.datadog) > 1:
                return self.datadog.pop(0)
            if self.datadog:
                return self.datadog[0]
            return httpx.Response(202, json={"errors": []})
        raise AssertionError(f"unexpected request to {request.url}")

    def submitted_series(self) -> List[dict]:
        return [
            series
            for request in self.datadog_requests
            for series in json.loads(request.content)["series"]
        ]


@pytest.fixture
def backends(monkeypatch):
    fake = FakeBackends()
    monkeypatch.setattr(http_client, "_client", httpx.AsyncClient(transport=httpx.MockTransport(fake)))
    return fake


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    saved = (root.level, list(root.handlers))
    yield
    root.setLevel(saved[0])
    root.handlers[:] = saved[1]


def _metrics_path(team=None):
    if team:
        return f"/enterprises/acme/team/{team}/copilot/metrics"
    return "/enterprises/acme/copilot/metrics"


async def test_enterprise_and_teams(make_settings, backends):
    backends.github[_metrics_path()] = [
        httpx.Response(
            200,
            json=[
                sample_day("2024-05-31", active_users=90, engaged_users=70),
                sample_day("2024-06-01", active_users=100, engaged_users=80),
            ],
        )
    ]
    backends.github[_metrics_path("platform-eng")] = [
        httpx.Response(200, json=[sample_day("2024-06-01", active_users=12, engaged_users=9)])
    ]
    settings = make_settings(github_team_slugs="platform-eng,ghost")

    result = await run(lambda: settings)

    assert not result.success
    assert len(result.failures) == 1
    assert result.failures[0]["scope"] == "ghost"
    assert "404" in result.failures[0]["error"]

    series = backends.submitted_series()
    assert result.metrics_submitted == len(series)

    by_name = defaultdict(list)
    for entry in series:
        by_name[entry["metric"]].append(entry)

    [enterprise_active] = by_name["github.copilot.active_users"]
    assert enterprise_active["points"][0]["value"] == 100.0
    assert "date:2024-06-01" in enterprise_active["tags"]

    [team_active] = by_name["github.copilot.team.platform-eng.active_users"]
    assert team_active["points"][0]["value"] == 12.0
    assert "team:platform-eng" in team_active["tags"]

    languages = by_name["github.copilot.ide.code_completions.languages.suggestions"]
    assert sorted(t for e in languages for t in e["tags"] if t.startswith("language:")) == [
        "language:go",
        "language:python",
    ]

    paths = [r.url.path for r in backends.github_requests]
    assert paths == [_metrics_path(), _metrics_path("platform-eng"), _metrics_path("ghost")]
    assert all("since" in r.url.params for r in backends.github_requests)
    assert all(r.headers["Authorization"] == "Bearer test-github-token" for r in backends.github_requests)
    assert http_client._client is None


@patch("copilot_metrics.retry.asyncio.sleep", new_callable=AsyncMock)
async def test_transient_failures_are_retried(mock_sleep, make_settings, backends):
    backends.github[_metrics_path()] = [
        httpx.Response(502),
        httpx.Response(200, json=[sample_day("2024-06-01", active_users=5, engaged_users=4)]),
    ]
    backends.datadog = [
        httpx.Response(429, headers={"Retry-After": "2"}),
        httpx.Response(202, json={"errors": []}),
    ]
    settings = make_settings()

    result = await run(lambda: settings)

    assert result.success
    assert result.metrics_submitted > 0
    assert len(backends.github_requests) == 2
    assert len(backends.datadog_requests) == 2
    assert 2.0 in [c.args[0] for c in mock_sleep.await_args_list]


async def test_datadog_rejects_everything(make_settings, backends):
    backends.github[_metrics_path()] = [
        httpx.Response(200, json=[sample_day("2024-06-01", active_users=5, engaged_users=4)])
    ]
    backends.github[_metrics_path("web")] = [httpx.Response(200, json=[])]
    backends.datadog = [httpx.Response(403, json={"errors": ["Forbidden"]})]
    settings = make_settings(github_team_slugs="web", datadog_batch_size=10)

    result = await run(lambda: settings)

    assert result.metrics_submitted == 0
    assert [f["scope"] for f in result.failures] == ["enterprise", "web"]
    assert all("HTTP 403" in f["error"] for f in result.failures)


async def test_empty_team_response_submits_zero_scalars(make_settings, backends):
    backends.github[_metrics_path("new-team")] = [httpx.Response(200, json=[])]
    settings = make_settings(github_team_slugs="new-team", skip_enterprise_metrics="1")

    result = await run(lambda: settings)

    assert result.success
    series = backends.submitted_series()
    assert [(s["metric"], s["points"][0]["value"]) for s in series] == [
        ("github.copilot.team.new-team.active_users", 0.0),
        ("github.copilot.team.new-team.engaged_users", 0.0),
    ]
