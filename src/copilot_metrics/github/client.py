"""GitHub Copilot metrics client.

Fetches daily Copilot metrics for an enterprise or one of its teams.
The token must have the `manage_billing:copilot` or `read:enterprise` scope.

API reference: https://docs.github.com/en/enterprise-cloud@latest/rest/copilot/copilot-metrics
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol

import httpx

from ..exceptions import (
    FetchAuthError,
    FetchError,
    FetchNotFoundError,
    FetchPayloadError,
    FetchRateLimitError,
    FetchTimeoutError,
)
from ..http_client import get_http_client
from ..models import Scope
from ..retry import AUTH_FAILURE_CODES, DEFAULT_MAX_ATTEMPTS, parse_retry_after, retry_with_backoff
from .schemas import MetricsSnapshot, parse_snapshots

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"


class MetricsFetcher(Protocol):
    """Anything that can produce daily snapshots for a scope."""

    async def fetch(self, scope: Scope) -> List[MetricsSnapshot]:
        """Return the daily snapshots available for the scope."""
        ...


class GitHubMetricsClient:
    """Fetches Copilot metrics from the GitHub Enterprise REST API."""

    def __init__(
        self,
        token: str,
        enterprise_id: str,
        api_url: str = GITHUB_API,
        lookback_days: int = 1,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.enterprise_id = enterprise_id
        self.api_url = api_url.rstrip("/")
        self.lookback_days = lookback_days
        self.max_attempts = max_attempts
        self.timeout = timeout
        self._token = token
        self._http_client = http_client

    async def fetch(self, scope: Scope) -> List[MetricsSnapshot]:
        if scope.is_team:
            return await self.fetch_team_metrics(scope.team_slug)
        return await self.fetch_enterprise_metrics()

    async def fetch_enterprise_metrics(self) -> List[MetricsSnapshot]:
        """GET /enterprises/{enterprise}/copilot/metrics"""
        logger.info("Fetching enterprise metrics for %s", self.enterprise_id)
        return await self._get_metrics(
            f"{self.api_url}/enterprises/{self.enterprise_id}/copilot/metrics",
            Scope.enterprise().label,
        )

    async def fetch_team_metrics(self, team_slug: str) -> List[MetricsSnapshot]:
        """GET /enterprises/{enterprise}/team/{team_slug}/copilot/metrics"""
        logger.info("Fetching team metrics for %s/%s", self.enterprise_id, team_slug)
        return await self._get_metrics(
            f"{self.api_url}/enterprises/{self.enterprise_id}/team/{team_slug}/copilot/metrics",
            team_slug,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _since_date(self) -> str:
        since = datetime.now(timezone.utc) - timedelta(days=self.lookback_days)
        return since.strftime("%Y-%m-%d")

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token}",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    async def _get_metrics(self, url: str, scope: str) -> List[MetricsSnapshot]:
        params: Dict[str, Any] = {"since": self._since_date()}
        logger.debug("Requesting %s metrics from %s", scope, url)

        async def _do_request():
            client = self._http_client or get_http_client(self.timeout)
            response = await client.get(url, params=params, headers=self._headers())
            response.raise_for_status()
            return response

        try:
            response = await retry_with_backoff(_do_request, max_attempts=self.max_attempts)
        except httpx.HTTPStatusError as exc:
            raise _map_status_error(exc, scope) from exc
        except httpx.TransportError as exc:
            raise FetchTimeoutError(
                f"GitHub request failed after {self.max_attempts} attempts: {type(exc).__name__}",
                scope=scope,
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(
                f"GitHub request failed: {type(exc).__name__}: {exc}",
                scope=scope,
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchPayloadError("GitHub returned a non-JSON body", scope=scope) from exc

        snapshots = parse_snapshots(payload, scope)
        if snapshots:
            logger.info("Received %d daily snapshots for %s", len(snapshots), scope)
            for snapshot in snapshots:
                logger.debug(
                    "Date: %s, Active: %d, Engaged: %d",
                    snapshot.date,
                    snapshot.total_active_users,
                    snapshot.total_engaged_users,
                )
        else:
            logger.info("No metrics data available for %s", scope)
        return snapshots


def _map_status_error(exc: httpx.HTTPStatusError, scope: str) -> FetchError:
    """Translate a final HTTP error into the matching FetchError."""
    status = exc.response.status_code
    body = exc.response.text[:500]

    if status in AUTH_FAILURE_CODES:
        return FetchAuthError(
            f"GitHub authentication failed: HTTP {status}",
            status_code=status,
            response_body=body,
            scope=scope,
        )
    if status == 404:
        return FetchNotFoundError("GitHub metrics not found: HTTP 404", response_body=body, scope=scope)
    if status == 429:
        return FetchRateLimitError(
            "GitHub rate limited: HTTP 429",
            retry_after=parse_retry_after(exc.response),
            scope=scope,
        )
    return FetchError(
        f"GitHub API error: HTTP {status}",
        status_code=status,
        response_body=body,
        scope=scope,
    )
