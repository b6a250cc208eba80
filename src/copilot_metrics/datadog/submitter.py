"""Datadog metrics submission.

Sends metric points to the Datadog v2 series API in size-bounded batches.
Each batch is retried on transient failures and fails independently: a
rejected batch is recorded and the remaining batches are still sent.

API reference: https://docs.datadoghq.com/api/latest/metrics/#submit-metrics
"""

import logging
import time
from typing import Callable, Optional, Sequence

import httpx

from ..exceptions import RetryableSubmissionError, SubmissionError, TerminalSubmissionError
from ..http_client import get_http_client
from ..models import BatchOutcome, MetricPoint, SubmissionBatch, SubmissionReport, split_batches
from ..retry import DEFAULT_MAX_ATTEMPTS, is_retryable, retry_with_backoff

logger = logging.getLogger(__name__)

DATADOG_SERIES_URL = "https://api.datadoghq.eu/api/v2/series"
DEFAULT_BATCH_SIZE = 100


class DatadogSubmitter:
    """Submits metric points to Datadog, isolating failures per batch."""

    def __init__(
        self,
        api_key: str,
        series_url: str = DATADOG_SERIES_URL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.series_url = series_url
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.timeout = timeout
        self._api_key = api_key
        self._http_client = http_client
        self._clock = clock

    async def submit(
        self,
        points: Sequence[MetricPoint],
        scope: str,
        report: Optional[SubmissionReport] = None,
    ) -> SubmissionReport:
        """Submit points in batches and report the outcome of each batch.

        Never raises for backend failures; they are reported per batch. When
        a report is passed in, outcomes are appended to it as each batch
        finishes, so a caller that abandons the call still sees what was sent.
        """
        if report is None:
            report = SubmissionReport(scope=scope)
        if not points:
            logger.info("No metric points to submit for %s", scope)
            return report

        timestamp = int(self._clock())
        batches = split_batches(points, self.batch_size, timestamp)
        logger.info(
            "Submitting %d points for %s in %d batches",
            len(points),
            scope,
            len(batches),
        )

        for batch in batches:
            report.batches.append(await self._submit_batch(batch, scope))

        if report.succeeded:
            logger.info("Submitted %d points for %s", report.points_submitted, scope)
        else:
            logger.error(
                "Submission for %s incomplete: %d/%d points accepted",
                scope,
                report.points_submitted,
                len(points),
            )
        return report

    async def _submit_batch(self, batch: SubmissionBatch, scope: str) -> BatchOutcome:
        attempts = 0

        def _count_retry(_attempt: int) -> None:
            nonlocal attempts
            attempts += 1

        try:
            await self.send_batch(batch, scope, on_retry=_count_retry)
        except SubmissionError as exc:
            logger.warning(
                "Batch %d (%d points) for %s failed: %s",
                batch.index + 1,
                len(batch),
                scope,
                exc,
            )
            return BatchOutcome(
                index=batch.index,
                size=len(batch),
                success=False,
                attempts=attempts + 1,
                error=str(exc),
            )

        logger.debug("Batch %d (%d points) for %s accepted", batch.index + 1, len(batch), scope)
        return BatchOutcome(index=batch.index, size=len(batch), success=True, attempts=attempts + 1)

    async def send_batch(
        self,
        batch: SubmissionBatch,
        scope: str = "",
        on_retry: Optional[Callable[[int], None]] = None,
    ) -> httpx.Response:
        """POST one batch, retrying transient failures.

        Raises:
            RetryableSubmissionError: Transient failure persisted through all attempts.
            TerminalSubmissionError: Datadog rejected the batch, or the
                request failed in a way a retry cannot fix.
        """
        payload = batch.to_payload()

        async def _do_request():
            client = self._http_client or get_http_client(self.timeout)
            response = await client.post(
                self.series_url,
                json=payload,
                headers={
                    "DD-API-KEY": self._api_key,
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
            response.raise_for_status()
            return response

        try:
            response = await retry_with_backoff(
                _do_request, max_attempts=self.max_attempts, on_retry=on_retry
            )
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            error_cls = RetryableSubmissionError if is_retryable(exc) else TerminalSubmissionError
            raise error_cls(
                f"Datadog rejected batch: HTTP {status}",
                status_code=status,
                response_body=exc.response.text[:500],
                batch_index=batch.index,
                scope=scope,
            ) from exc
        except httpx.TransportError as exc:
            raise RetryableSubmissionError(
                f"Datadog request failed after {self.max_attempts} attempts: {type(exc).__name__}",
                batch_index=batch.index,
                scope=scope,
            ) from exc
        except httpx.HTTPError as exc:
            # Decoding and URL errors do not improve on retry
            raise TerminalSubmissionError(
                f"Datadog request failed: {type(exc).__name__}: {exc}",
                batch_index=batch.index,
                scope=scope,
            ) from exc

        _log_partial_errors(response, batch, scope)
        return response


def _log_partial_errors(response: httpx.Response, batch: SubmissionBatch, scope: str) -> None:
    """Datadog answers 202 even when it drops individual series; surface those."""
    try:
        body = response.json()
    except ValueError:
        return
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors:
        logger.warning(
            "Datadog accepted batch %d for %s with errors: %s",
            batch.index + 1,
            scope,
            "; ".join(str(e) for e in errors),
        )
