"""Test configuration and fixtures."""

import os
from typing import Any, Callable, Dict, List

import httpx
import pytest

# Set test environment variables BEFORE importing the package
os.environ["ENVIRONMENT"] = "test"
os.environ["GITHUB_TOKEN"] = "test-github-token"
os.environ["GITHUB_ENTERPRISE_ID"] = "acme"
os.environ["DATADOG_API_KEY"] = "test-datadog-key"
for _var in (
    "GITHUB_TEAM_SLUGS",
    "SKIP_ENTERPRISE_METRICS",
    "MOCK_GITHUB_API",
    "DATADOG_METRIC_NAMESPACE",
):
    os.environ.pop(_var, None)

from copilot_metrics.config import Settings, get_settings  # noqa: E402
from copilot_metrics.github.fixtures import sample_day  # noqa: E402


class RecordingHandler:
    """httpx.MockTransport handler that records requests.

    ``responder`` receives the request and its 1-based call number and
    returns the response to send.
    """

    def __init__(self, responder: Callable[[httpx.Request, int], httpx.Response]):
        self.requests: List[httpx.Request] = []
        self._responder = responder

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request, len(self.requests))

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build Settings from explicit values, independent of the environment."""

    def _make(**overrides: Any) -> Settings:
        values: Dict[str, Any] = {
            "github_token": "test-github-token",
            "github_enterprise_id": "acme",
            "datadog_api_key": "test-datadog-key",
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def day_payload() -> Dict[str, Any]:
    """One realistic day of raw API payload."""
    return sample_day("2024-06-01", active_users=100, engaged_users=80)


@pytest.fixture
def recording_handler():
    """Factory for RecordingHandler, usable from any test module."""
    return RecordingHandler
