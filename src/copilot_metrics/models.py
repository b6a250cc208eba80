"""Data model shared by the transform, submission and orchestration layers."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .exceptions import TransformError

ENTERPRISE_LABEL = "enterprise"

_INVALID_NAME_CHARS = re.compile(r"[\s:]")


@dataclass(frozen=True)
class Scope:
    """The entity a snapshot belongs to: the enterprise, or one team."""

    team_slug: Optional[str] = None

    @classmethod
    def enterprise(cls) -> "Scope":
        return cls()

    @classmethod
    def team(cls, team_slug: str) -> "Scope":
        if not team_slug:
            raise ValueError("team_slug must not be empty")
        return cls(team_slug=team_slug)

    @property
    def is_team(self) -> bool:
        return self.team_slug is not None

    @property
    def label(self) -> str:
        """Identifier used in failure entries and log context."""
        return self.team_slug if self.team_slug is not None else ENTERPRISE_LABEL

    def namespace(self, base: str) -> str:
        """Metric name prefix for this scope."""
        if self.team_slug is not None:
            return f"{base}.team.{self.team_slug}"
        return base


@dataclass(frozen=True)
class MetricPoint:
    """One named measurement. The timestamp is assigned at submission."""

    name: str
    value: float
    tags: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.name or _INVALID_NAME_CHARS.search(self.name):
            raise TransformError(f"Invalid metric name: {self.name!r}")
        for tag in self.tags:
            key, sep, value = tag.partition(":")
            if not sep or not key or not value or _INVALID_NAME_CHARS.search(key):
                raise TransformError(f"Invalid tag {tag!r} on metric {self.name}")
            if any(ch.isspace() for ch in tag):
                raise TransformError(f"Tag {tag!r} on metric {self.name} contains whitespace")

    def to_series(self, timestamp: int) -> Dict[str, Any]:
        """Encode as a Datadog v2 gauge series entry."""
        return {
            "metric": self.name,
            "type": 3,  # gauge
            "points": [{"timestamp": timestamp, "value": self.value}],
            "tags": list(self.tags),
        }


@dataclass(frozen=True)
class SubmissionBatch:
    """Points sent to the backend in one request, sharing one timestamp."""

    index: int
    points: Tuple[MetricPoint, ...]
    timestamp: int

    def __len__(self) -> int:
        return len(self.points)

    def to_payload(self) -> Dict[str, Any]:
        return {"series": [p.to_series(self.timestamp) for p in self.points]}


def split_batches(
    points: Sequence[MetricPoint], batch_size: int, timestamp: int
) -> List[SubmissionBatch]:
    """Split points into consecutive batches of at most batch_size."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [
        SubmissionBatch(
            index=i,
            points=tuple(points[start:start + batch_size]),
            timestamp=timestamp,
        )
        for i, start in enumerate(range(0, len(points), batch_size))
    ]


@dataclass
class BatchOutcome:
    """Result of submitting one batch."""

    index: int
    size: int
    success: bool
    attempts: int = 0
    error: Optional[str] = None


@dataclass
class SubmissionReport:
    """Result of one submit call: every batch is attempted independently."""

    scope: str
    batches: List[BatchOutcome] = field(default_factory=list)

    @property
    def points_submitted(self) -> int:
        return sum(b.size for b in self.batches if b.success)

    @property
    def failed_batches(self) -> List[BatchOutcome]:
        return [b for b in self.batches if not b.success]

    @property
    def succeeded(self) -> bool:
        return not self.failed_batches

    def error_summary(self) -> Optional[str]:
        """One human-readable line describing the failed batches, if any."""
        failed = self.failed_batches
        if not failed:
            return None
        details = "; ".join(f"batch {b.index + 1}: {b.error}" for b in failed)
        return f"{len(failed)} of {len(self.batches)} batches failed ({details})"


@dataclass
class ScopeResult:
    """Isolated result slot for one scope."""

    scope: str
    metrics_submitted: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class RunResult:
    """Aggregate outcome of one invocation."""

    metrics_submitted: int = 0
    failures: List[Dict[str, str]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures

    @classmethod
    def merge(cls, scope_results: Sequence[ScopeResult]) -> "RunResult":
        """Combine per-scope slots, preserving scope order."""
        result = cls()
        for scope_result in scope_results:
            result.metrics_submitted += scope_result.metrics_submitted
            if scope_result.error is not None:
                result.failures.append(
                    {"scope": scope_result.scope, "error": scope_result.error}
                )
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary, suitable for JSON output."""
        return {
            "success": self.success,
            "metrics_submitted": self.metrics_submitted,
            "failures": [dict(f) for f in self.failures],
        }
