"""GitHub Copilot metrics fetch layer."""

from .client import GitHubMetricsClient, MetricsFetcher
from .fixtures import FixtureMetricsClient
from .schemas import MetricsSnapshot, latest_snapshot, parse_snapshots

__all__ = [
    "FixtureMetricsClient",
    "GitHubMetricsClient",
    "MetricsFetcher",
    "MetricsSnapshot",
    "latest_snapshot",
    "parse_snapshots",
]
