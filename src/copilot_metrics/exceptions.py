"""Exception types for the Copilot metrics pipeline.

Every error raised while processing a scope derives from CopilotMetricsError.
The orchestrator catches these at the scope boundary and records them as
failures, so none of them abort sibling scopes.
"""

from typing import Optional


class CopilotMetricsError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, scope: str = ""):
        self.scope = scope
        super().__init__(message)


# ---------------------------------------------------------------------------
# Fetch (GitHub)
# ---------------------------------------------------------------------------


class FetchError(CopilotMetricsError):
    """GitHub metrics could not be retrieved."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        response_body: str = "",
        scope: str = "",
    ):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message, scope)


class FetchAuthError(FetchError):
    """Authentication or authorization failure (401/403)."""

    pass


class FetchNotFoundError(FetchError):
    """Enterprise or team not found (404)."""

    def __init__(self, message: str, response_body: str = "", scope: str = ""):
        super().__init__(message, status_code=404, response_body=response_body, scope=scope)


class FetchRateLimitError(FetchError):
    """Rate limit still exceeded after retries (429)."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        scope: str = "",
    ):
        self.retry_after = retry_after
        super().__init__(message, status_code=429, scope=scope)


class FetchTimeoutError(FetchError):
    """Connection failed or timed out after retries."""

    pass


class FetchPayloadError(FetchError):
    """Response body was not a valid metrics payload."""

    pass


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------


class TransformError(CopilotMetricsError):
    """A transformed metric point violated a naming or tagging invariant."""

    pass


# ---------------------------------------------------------------------------
# Submission (Datadog)
# ---------------------------------------------------------------------------


class SubmissionError(CopilotMetricsError):
    """A batch of metric points was not accepted by Datadog."""

    retryable = False

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        response_body: str = "",
        batch_index: Optional[int] = None,
        scope: str = "",
    ):
        self.status_code = status_code
        self.response_body = response_body
        self.batch_index = batch_index
        super().__init__(message, scope)


class RetryableSubmissionError(SubmissionError):
    """Transient failure (429, 5xx, transport) that persisted through all retries."""

    retryable = True


class TerminalSubmissionError(SubmissionError):
    """Non-retryable rejection (bad request, auth, payload too large)."""

    pass


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


class ScopeTimeoutError(CopilotMetricsError):
    """A scope was abandoned because it exceeded its time budget."""

    pass
