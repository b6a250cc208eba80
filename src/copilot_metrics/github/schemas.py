"""Pydantic schemas for the GitHub Copilot metrics API payload.

API reference: https://docs.github.com/en/enterprise-cloud@latest/rest/copilot/copilot-metrics

Counts that are absent or null are read as zero. Sub-sections that are absent
or null stay ``None`` so the transform layer can skip them.
"""

from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, ValidationError

from ..exceptions import FetchPayloadError


def _none_to_zero(v: Any) -> Any:
    return 0 if v is None else v


def _none_to_empty(v: Any) -> Any:
    return [] if v is None else v


Count = Annotated[int, BeforeValidator(_none_to_zero), Field(ge=0)]


class _Schema(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class LanguageUsage(_Schema):
    """Per-language code completion counts for one editor model."""

    name: str = "unknown"
    total_engaged_users: Count = 0
    total_code_suggestions: Count = 0
    total_code_acceptances: Count = 0
    total_code_lines_suggested: Count = 0
    total_code_lines_accepted: Count = 0


class CompletionModel(_Schema):
    name: str = "default"
    is_custom_model: bool = False
    total_engaged_users: Count = 0
    languages: Annotated[List[LanguageUsage], BeforeValidator(_none_to_empty)] = []


class CompletionEditor(_Schema):
    name: str = "unknown"
    total_engaged_users: Count = 0
    models: Annotated[List[CompletionModel], BeforeValidator(_none_to_empty)] = []


class IdeCodeCompletions(_Schema):
    total_engaged_users: Count = 0
    languages: Annotated[List[LanguageUsage], BeforeValidator(_none_to_empty)] = []
    editors: Annotated[List[CompletionEditor], BeforeValidator(_none_to_empty)] = []


class ChatModel(_Schema):
    name: str = "default"
    is_custom_model: bool = False
    total_engaged_users: Count = 0
    total_chats: Count = 0
    total_chat_insertion_events: Count = 0
    total_chat_copy_events: Count = 0


class ChatEditor(_Schema):
    name: str = "unknown"
    total_engaged_users: Count = 0
    models: Annotated[List[ChatModel], BeforeValidator(_none_to_empty)] = []


class IdeChat(_Schema):
    total_engaged_users: Count = 0
    editors: Annotated[List[ChatEditor], BeforeValidator(_none_to_empty)] = []


class DotcomChat(_Schema):
    total_engaged_users: Count = 0
    models: Annotated[List[ChatModel], BeforeValidator(_none_to_empty)] = []


class PullRequestModel(_Schema):
    name: str = "default"
    is_custom_model: bool = False
    total_engaged_users: Count = 0
    total_pr_summaries_created: Count = 0


class PullRequestRepository(_Schema):
    name: str = "unknown"
    total_engaged_users: Count = 0
    models: Annotated[List[PullRequestModel], BeforeValidator(_none_to_empty)] = []


class DotcomPullRequests(_Schema):
    total_engaged_users: Count = 0
    repositories: Annotated[List[PullRequestRepository], BeforeValidator(_none_to_empty)] = []


class MetricsSnapshot(_Schema):
    """One day of Copilot metrics for one scope."""

    date: Optional[str] = None
    total_active_users: Count = 0
    total_engaged_users: Count = 0
    copilot_ide_code_completions: Optional[IdeCodeCompletions] = None
    copilot_ide_chat: Optional[IdeChat] = None
    copilot_dotcom_chat: Optional[DotcomChat] = None
    copilot_dotcom_pull_requests: Optional[DotcomPullRequests] = None


_snapshot_list = TypeAdapter(List[MetricsSnapshot])


def parse_snapshots(payload: Any, scope: str = "") -> List[MetricsSnapshot]:
    """Validate a decoded API response into snapshots.

    Raises:
        FetchPayloadError: If the payload is not a list of valid snapshots.
    """
    if not isinstance(payload, list):
        raise FetchPayloadError(
            f"Expected a list of daily metrics, got {type(payload).__name__}",
            scope=scope,
        )
    try:
        return _snapshot_list.validate_python(payload)
    except ValidationError as exc:
        raise FetchPayloadError(
            f"Malformed metrics payload: {exc.error_count()} validation error(s): "
            f"{exc.errors()[0]['msg']}",
            scope=scope,
        ) from exc


def latest_snapshot(snapshots: List[MetricsSnapshot]) -> MetricsSnapshot:
    """Pick the most recent day; an empty list yields an all-zero snapshot."""
    if not snapshots:
        return MetricsSnapshot()
    return max(snapshots, key=lambda s: s.date or "")
