"""Per-invocation orchestration: fetch, transform and submit every scope.

The enterprise scope (unless skipped) runs first, then each configured team
in order. Every scope writes into its own result slot; slots are merged only
after all scopes have finished, so a failure or timeout in one scope never
alters another scope's outcome.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .config import Settings
from .datadog import DatadogSubmitter
from .exceptions import CopilotMetricsError, ScopeTimeoutError
from .github import FixtureMetricsClient, GitHubMetricsClient, MetricsFetcher, latest_snapshot
from .models import RunResult, Scope, ScopeResult, SubmissionReport
from .observability import set_log_context
from .transform import transform_snapshot

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Stage a scope is in; failures are reported against the last one entered."""
    INIT = "init"
    FETCH = "fetch"
    TRANSFORM = "transform"
    SUBMIT = "submit"
    DONE = "done"


@dataclass
class _ScopeRun:
    """Mutable progress of one scope, readable after a timeout."""

    scope: Scope
    report: SubmissionReport
    state: PipelineState = PipelineState.INIT


class MetricsPipeline:
    """Runs one invocation across the enterprise and team scopes."""

    def __init__(
        self,
        settings: Settings,
        fetcher: MetricsFetcher,
        submitter: DatadogSubmitter,
        deadline_seconds: Optional[float] = None,
        run_id: Optional[str] = None,
    ):
        """
        Args:
            settings: Validated invocation settings.
            fetcher: Source of daily snapshots (live client or fixtures).
            submitter: Datadog submitter.
            deadline_seconds: Wall-clock budget for the whole run. Scopes
                still running when it expires are recorded as timeouts.
            run_id: Correlation id for the log context; generated when omitted.
        """
        self.settings = settings
        self.fetcher = fetcher
        self.submitter = submitter
        self.deadline_seconds = deadline_seconds
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self._deadline: Optional[float] = None

    def scopes(self) -> List[Scope]:
        """Scopes to process, in submission order."""
        scopes = [] if self.settings.skip_enterprise else [Scope.enterprise()]
        scopes.extend(Scope.team(slug) for slug in self.settings.get_team_slugs())
        return scopes

    async def run(self) -> RunResult:
        """Process every scope and merge the per-scope outcomes."""
        set_log_context(run_id=self.run_id)

        scopes = self.scopes()
        if not scopes:
            logger.warning("Enterprise metrics skipped and no teams configured; nothing to do")
            return RunResult()

        loop = asyncio.get_running_loop()
        if self.deadline_seconds is not None:
            self._deadline = loop.time() + self.deadline_seconds

        logger.info(
            "Starting run for %d scopes: %s",
            len(scopes),
            ", ".join(s.label for s in scopes),
        )

        semaphore = asyncio.Semaphore(self.settings.scope_concurrency)

        async def _bounded(scope: Scope) -> ScopeResult:
            async with semaphore:
                return await self.process_scope(scope)

        slots = await asyncio.gather(*(_bounded(scope) for scope in scopes))
        result = RunResult.merge(slots)

        if result.success:
            logger.info("Run complete: %d metrics submitted", result.metrics_submitted)
        else:
            logger.error(
                "Run complete with %d failed scopes: %d metrics submitted",
                len(result.failures),
                result.metrics_submitted,
            )
        return result

    async def process_scope(self, scope: Scope) -> ScopeResult:
        """Run one scope to completion and capture its outcome in a fresh slot.

        Never raises: errors and timeouts are recorded on the returned slot.
        """
        set_log_context(scope=scope.label)
        slot = ScopeResult(scope=scope.label)
        progress = _ScopeRun(scope=scope, report=SubmissionReport(scope=scope.label))
        timeout = self._scope_timeout()

        try:
            if timeout <= 0:
                raise ScopeTimeoutError(
                    "timeout: run deadline reached before the scope started",
                    scope=scope.label,
                )
            await asyncio.wait_for(self._run_scope(progress), timeout=timeout)
        except asyncio.TimeoutError:
            slot.error = (
                f"timeout: scope did not finish within {timeout:.1f}s"
                f" during {progress.state.value}"
            )
            logger.error("Scope %s timed out during %s", scope.label, progress.state.value)
        except CopilotMetricsError as exc:
            slot.error = str(exc)
            logger.error("Scope %s failed during %s: %s", scope.label, progress.state.value, exc)
        except Exception as exc:
            slot.error = f"unexpected error: {type(exc).__name__}: {exc}"
            logger.exception("Unexpected error in scope %s", scope.label)

        slot.metrics_submitted = progress.report.points_submitted
        if slot.error is None:
            slot.error = progress.report.error_summary()
        return slot

    async def _run_scope(self, progress: _ScopeRun) -> None:
        scope = progress.scope
        _advance(progress, PipelineState.FETCH)
        snapshots = await self.fetcher.fetch(scope)

        _advance(progress, PipelineState.TRANSFORM)
        if not snapshots:
            logger.info("No snapshots for %s; submitting zero values", scope.label)
        snapshot = latest_snapshot(snapshots)
        points = transform_snapshot(snapshot, scope, self.settings.datadog_metric_namespace)
        logger.info(
            "Transformed %s snapshot for %s into %d points",
            snapshot.date or "empty",
            scope.label,
            len(points),
        )

        _advance(progress, PipelineState.SUBMIT)
        await self.submitter.submit(points, scope.label, report=progress.report)
        _advance(progress, PipelineState.DONE)

    def _scope_timeout(self) -> float:
        timeout = self.settings.scope_timeout_seconds
        if self._deadline is not None:
            remaining = self._deadline - asyncio.get_running_loop().time()
            timeout = min(timeout, remaining)
        return timeout


def _advance(progress: _ScopeRun, state: PipelineState) -> None:
    logger.debug("Scope %s: %s -> %s", progress.scope.label, progress.state.value, state.value)
    progress.state = state


def build_pipeline(
    settings: Settings,
    deadline_seconds: Optional[float] = None,
    run_id: Optional[str] = None,
) -> MetricsPipeline:
    """Wire the fetcher and submitter described by the settings."""
    if settings.use_mock_github:
        logger.warning("MOCK_GITHUB_API is set; using fixture metrics instead of GitHub")
        fetcher: MetricsFetcher = FixtureMetricsClient()
    else:
        fetcher = GitHubMetricsClient(
            token=settings.github_token,
            enterprise_id=settings.github_enterprise_id,
            api_url=settings.github_api_url,
            lookback_days=settings.github_metrics_lookback_days,
            max_attempts=settings.submit_max_attempts,
            timeout=settings.http_timeout_seconds,
        )

    submitter = DatadogSubmitter(
        api_key=settings.datadog_api_key,
        series_url=settings.get_datadog_series_url(),
        batch_size=settings.datadog_batch_size,
        max_attempts=settings.submit_max_attempts,
        timeout=settings.http_timeout_seconds,
    )
    return MetricsPipeline(
        settings, fetcher, submitter, deadline_seconds=deadline_seconds, run_id=run_id
    )
