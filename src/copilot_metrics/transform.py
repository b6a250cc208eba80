"""Flatten a Copilot metrics snapshot into namespaced Datadog metric points.

Naming rules:
  - every name starts with the scope namespace (``github.copilot`` or
    ``github.copilot.team.{slug}``)
  - breakdowns (language, editor, model, repository) never create new names;
    they reuse one name per measurement and differ only by tag
  - zero values are emitted; an absent sub-section emits nothing

The transform is pure: the same snapshot and scope always yield the same
sequence of points.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .config import DEFAULT_NAMESPACE
from .github.schemas import (
    DotcomChat,
    DotcomPullRequests,
    IdeChat,
    IdeCodeCompletions,
    MetricsSnapshot,
)
from .models import MetricPoint, Scope

SOURCE_TAG = "source:github-copilot-metrics"

_WHITESPACE = re.compile(r"\s+")


def normalize_tag_value(value: str) -> str:
    """Lower-case and replace whitespace with underscores for safe tag values."""
    normalized = _WHITESPACE.sub("_", value.strip().lower())
    return normalized or "unknown"


def base_tags(snapshot: MetricsSnapshot, scope: Scope) -> Tuple[str, ...]:
    """Tags attached to every point of a snapshot."""
    tags = [SOURCE_TAG]
    if snapshot.date:
        tags.append(f"date:{snapshot.date}")
    if scope.is_team:
        tags.append(f"team:{scope.team_slug}")
    return tuple(tags)


class _PointBuilder:
    """Accumulates points under one namespace with a shared set of base tags."""

    def __init__(self, namespace: str, tags: Tuple[str, ...]):
        self.namespace = namespace
        self.tags = tags
        self.points: List[MetricPoint] = []

    def add(self, name: str, value: int, *extra_tags: str) -> None:
        tags = tuple(dict.fromkeys(self.tags + extra_tags))
        self.points.append(MetricPoint(f"{self.namespace}.{name}", float(value), tags))


@dataclass
class _LanguageTotals:
    engaged_users: Optional[int] = None
    suggestions: int = 0
    acceptances: int = 0
    lines_suggested: int = 0
    lines_accepted: int = 0


def transform_snapshot(
    snapshot: MetricsSnapshot,
    scope: Scope,
    namespace: str = DEFAULT_NAMESPACE,
) -> List[MetricPoint]:
    """Convert one snapshot into an ordered list of metric points.

    Raises:
        TransformError: If a generated point breaks a naming invariant.
    """
    builder = _PointBuilder(scope.namespace(namespace), base_tags(snapshot, scope))

    builder.add("active_users", snapshot.total_active_users)
    builder.add("engaged_users", snapshot.total_engaged_users)

    if snapshot.copilot_ide_code_completions is not None:
        _add_code_completions(builder, snapshot.copilot_ide_code_completions)
    if snapshot.copilot_ide_chat is not None:
        _add_ide_chat(builder, snapshot.copilot_ide_chat)
    if snapshot.copilot_dotcom_chat is not None:
        _add_dotcom_chat(builder, snapshot.copilot_dotcom_chat)
    if snapshot.copilot_dotcom_pull_requests is not None:
        _add_pull_requests(builder, snapshot.copilot_dotcom_pull_requests)

    return builder.points


# ---------------------------------------------------------------------------
# Sub-sections
# ---------------------------------------------------------------------------


def language_totals(completions: IdeCodeCompletions) -> Dict[str, _LanguageTotals]:
    """Sum per-language completion counts across editors and models.

    Keys are normalized language names in first-seen order. Engaged users are
    taken only from the top-level language list and stay None without it; a
    per-editor sum would count a user once per editor.
    """
    totals: Dict[str, _LanguageTotals] = {}
    top_level: Dict[str, int] = {}

    for language in completions.languages:
        key = normalize_tag_value(language.name)
        totals.setdefault(key, _LanguageTotals())
        top_level[key] = top_level.get(key, 0) + language.total_engaged_users

    for editor in completions.editors:
        for model in editor.models:
            for language in model.languages:
                entry = totals.setdefault(normalize_tag_value(language.name), _LanguageTotals())
                entry.suggestions += language.total_code_suggestions
                entry.acceptances += language.total_code_acceptances
                entry.lines_suggested += language.total_code_lines_suggested
                entry.lines_accepted += language.total_code_lines_accepted

    for key, engaged in top_level.items():
        totals[key].engaged_users = engaged
    return totals


def _add_code_completions(builder: _PointBuilder, completions: IdeCodeCompletions) -> None:
    prefix = "ide.code_completions"
    builder.add(f"{prefix}.engaged_users", completions.total_engaged_users)

    for language, totals in language_totals(completions).items():
        tag = f"language:{language}"
        if totals.engaged_users is not None:
            builder.add(f"{prefix}.languages.engaged_users", totals.engaged_users, tag)
        builder.add(f"{prefix}.languages.suggestions", totals.suggestions, tag)
        builder.add(f"{prefix}.languages.acceptances", totals.acceptances, tag)
        builder.add(f"{prefix}.languages.lines_suggested", totals.lines_suggested, tag)
        builder.add(f"{prefix}.languages.lines_accepted", totals.lines_accepted, tag)

    for editor in completions.editors:
        builder.add(
            f"{prefix}.editors.engaged_users",
            editor.total_engaged_users,
            f"editor:{normalize_tag_value(editor.name)}",
        )


def _model_tags(name: str, is_custom_model: bool) -> Tuple[str, str]:
    return (
        f"model:{normalize_tag_value(name)}",
        f"is_custom_model:{'true' if is_custom_model else 'false'}",
    )


def _add_ide_chat(builder: _PointBuilder, chat: IdeChat) -> None:
    prefix = "ide.chat"
    builder.add(f"{prefix}.engaged_users", chat.total_engaged_users)

    chats = insertions = copies = 0
    for editor in chat.editors:
        for model in editor.models:
            chats += model.total_chats
            insertions += model.total_chat_insertion_events
            copies += model.total_chat_copy_events
    builder.add(f"{prefix}.chats", chats)
    builder.add(f"{prefix}.insertion_events", insertions)
    builder.add(f"{prefix}.copy_events", copies)

    for editor in chat.editors:
        editor_tag = f"editor:{normalize_tag_value(editor.name)}"
        builder.add(f"{prefix}.editors.engaged_users", editor.total_engaged_users, editor_tag)
        for model in editor.models:
            tags = (editor_tag,) + _model_tags(model.name, model.is_custom_model)
            builder.add(f"{prefix}.editors.models.engaged_users", model.total_engaged_users, *tags)
            builder.add(f"{prefix}.editors.models.chats", model.total_chats, *tags)
            builder.add(
                f"{prefix}.editors.models.insertion_events",
                model.total_chat_insertion_events,
                *tags,
            )
            builder.add(f"{prefix}.editors.models.copy_events", model.total_chat_copy_events, *tags)


def _add_dotcom_chat(builder: _PointBuilder, chat: DotcomChat) -> None:
    prefix = "dotcom.chat"
    builder.add(f"{prefix}.engaged_users", chat.total_engaged_users)
    for model in chat.models:
        tags = _model_tags(model.name, model.is_custom_model)
        builder.add(f"{prefix}.models.engaged_users", model.total_engaged_users, *tags)
        builder.add(f"{prefix}.models.chats", model.total_chats, *tags)


def _add_pull_requests(builder: _PointBuilder, pull_requests: DotcomPullRequests) -> None:
    prefix = "dotcom.pull_requests"
    builder.add(f"{prefix}.engaged_users", pull_requests.total_engaged_users)
    for repository in pull_requests.repositories:
        repo_tag = f"repository:{normalize_tag_value(repository.name)}"
        builder.add(
            f"{prefix}.repositories.engaged_users",
            repository.total_engaged_users,
            repo_tag,
        )
        for model in repository.models:
            tags = (repo_tag,) + _model_tags(model.name, model.is_custom_model)
            builder.add(
                f"{prefix}.repositories.models.engaged_users",
                model.total_engaged_users,
                *tags,
            )
            builder.add(
                f"{prefix}.repositories.models.pr_summaries_created",
                model.total_pr_summaries_created,
                *tags,
            )

