"""
Core data types for Redis health diagnostics.

This module defines the result structures shared by every check:
- Severity: Ordered status enum (ok < warning < critical)
- Finding: A single human-readable diagnostic statement
- Section: One check's result bundle (status, metrics, findings)
- Report: The merged result of one analysis run
- SampledKey / PrefixGroup / TTLBucket: Key sampling aggregates
- Direction / DeltaRow: Snapshot comparison rows
- RecommendationRule / Recommendation: Remediation advice

All result types are frozen dataclasses. Enums subclass str so they
serialize directly to JSON.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

from redis_doctor.exceptions import EvaluatorFailedError


class Severity(str, Enum):
    """Check outcome severity. Ordering: ok < warning < critical."""

    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def worst(cls, severities: Iterable["Severity"]) -> "Severity":
        """Return the most severe value, or OK for an empty iterable."""
        return max(severities, key=lambda s: s.rank, default=cls.OK)


_SEVERITY_RANK = {Severity.OK: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


@dataclass(frozen=True)
class Finding:
    """
    A single diagnostic statement produced by a check.

    Attributes:
        message: Human-readable description
        severity: OK for informational findings, otherwise the level
            this finding raises its section to
    """

    message: str
    severity: Severity = Severity.OK

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "severity": self.severity.value}


@dataclass(frozen=True)
class Section:
    """
    Result of one check.

    Build sections with Section.build() so that status is always the
    worst severity among the findings.

    Attributes:
        title: Display title (e.g., "MEMORY ANALYSIS")
        status: Worst severity implied by findings
        metrics: Metric name to value mapping
        findings: Ordered findings
        error: The check failure behind a failed section, not serialized
    """

    title: str
    status: Severity
    metrics: dict[str, Any] = field(default_factory=dict)
    findings: tuple[Finding, ...] = ()
    error: EvaluatorFailedError | None = field(default=None, compare=False, repr=False)

    @classmethod
    def build(
        cls,
        title: str,
        metrics: dict[str, Any],
        findings: Iterable[Finding],
    ) -> "Section":
        """Create a section whose status derives from its findings."""
        findings = tuple(findings)
        return cls(
            title=title,
            status=Severity.worst(f.severity for f in findings),
            metrics=metrics,
            findings=findings,
        )

    @classmethod
    def failed(cls, title: str, label: str, error: EvaluatorFailedError) -> "Section":
        """
        Create a critical section describing a check failure.

        Args:
            title: Section title of the failed check
            label: Short check label for the message (e.g., "Memory")
            error: The wrapped failure, kept on the section
        """
        return cls(
            title=title,
            status=Severity.CRITICAL,
            metrics={},
            findings=(
                Finding(f"{label} check failed: {error.cause}", Severity.CRITICAL),
            ),
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "status": self.status.value,
            "metrics": self.metrics,
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclass(frozen=True)
class ServerIdentity:
    """Identity of the analyzed server, from INFO server."""

    url: str
    version: str
    uptime_seconds: int


# Section keys in report order. Recommendation flattening follows this order.
SECTION_ORDER = ("memory", "performance", "connections", "key_patterns", "replication")


@dataclass(frozen=True)
class Report:
    """
    Merged result of one analysis run.

    Built fresh per run and never mutated afterwards. key_patterns is
    absent from sections when key sampling was skipped.

    Attributes:
        timestamp: When the analysis completed (UTC)
        server: Server identity
        sections: Section key to Section, in SECTION_ORDER
    """

    timestamp: datetime
    server: ServerIdentity
    sections: dict[str, Section]

    @property
    def warning_count(self) -> int:
        return sum(1 for s in self.sections.values() if s.status == Severity.WARNING)

    @property
    def critical_count(self) -> int:
        return sum(1 for s in self.sections.values() if s.status == Severity.CRITICAL)

    @property
    def status(self) -> Severity:
        return Severity.worst(s.status for s in self.sections.values())

    def ordered_sections(self) -> list[Section]:
        return [self.sections[k] for k in SECTION_ORDER if k in self.sections]

    def to_dict(self) -> dict[str, Any]:
        """Convert to the snapshot document structure."""
        document: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "server": {
                "url": self.server.url,
                "version": self.server.version,
                "uptime_seconds": self.server.uptime_seconds,
            },
        }
        for key in SECTION_ORDER:
            section = self.sections.get(key)
            document[key] = section.to_dict() if section else None
        document["summary"] = {
            "warning_count": self.warning_count,
            "critical_count": self.critical_count,
        }
        return document


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Key sampling types
# =============================================================================


class TTLBucket(str, Enum):
    """Fixed, exhaustive TTL ranges for sampled keys."""

    NO_EXPIRY = "no_expiry"
    UNDER_1H = "under_1h"
    ONE_HOUR_TO_1_DAY = "1h_to_1d"
    ONE_DAY_TO_7_DAYS = "1d_to_7d"
    OVER_7_DAYS = "over_7d"

    @classmethod
    def for_ttl(cls, ttl_seconds: int | None) -> "TTLBucket":
        """
        Bucket a TTL reply.

        -1 means no expiry. Any other value below an hour, including -2
        (key vanished after the scan), lands in UNDER_1H. A missing reply
        falls through to OVER_7_DAYS so every key lands in one bucket.
        """
        if ttl_seconds == -1:
            return cls.NO_EXPIRY
        if ttl_seconds is None:
            return cls.OVER_7_DAYS
        if ttl_seconds < 3600:
            return cls.UNDER_1H
        if ttl_seconds < 86400:
            return cls.ONE_HOUR_TO_1_DAY
        if ttl_seconds < 604800:
            return cls.ONE_DAY_TO_7_DAYS
        return cls.OVER_7_DAYS


@dataclass(frozen=True)
class KeyMetadata:
    """
    Per-key pipelined fetch result.

    Fields fall back to lenient defaults when a command reply is missing.
    """

    type: str = "unknown"
    size_bytes: int = 0
    ttl_seconds: int | None = None
    encoding: str = "unknown"


@dataclass(frozen=True)
class SampledKey:
    """A sampled key retained for the top-N largest list."""

    key: str
    type: str
    size_bytes: int

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "type": self.type, "size_bytes": self.size_bytes}


@dataclass
class PrefixGroup:
    """Running totals for keys sharing a namespace prefix."""

    prefix: str
    key_count: int = 0
    total_bytes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "prefix": self.prefix,
            "key_count": self.key_count,
            "total_bytes": self.total_bytes,
        }


# =============================================================================
# Comparison and recommendation types
# =============================================================================


class Direction(str, Enum):
    """Direction of change between two snapshots."""

    UP = "up"
    DOWN = "down"
    UNCHANGED = "unchanged"

    @property
    def sign(self) -> int:
        return {"up": 1, "down": -1, "unchanged": 0}[self.value]


@dataclass(frozen=True)
class DeltaRow:
    """
    One compared metric between a previous and current snapshot.

    Attributes:
        metric_label: Display label (e.g., "Hit Rate")
        previous_value: Value in the previous snapshot
        current_value: Value in the current snapshot
        direction: Sign of current - previous
        is_improvement: None when unchanged, otherwise whether the change
            is good given the metric's higher_is_better flag
        higher_is_better: Whether increases are improvements
    """

    metric_label: str
    previous_value: float
    current_value: float
    direction: Direction
    is_improvement: bool | None
    higher_is_better: bool = False

    @property
    def delta(self) -> float:
        return self.current_value - self.previous_value

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric_label,
            "previous": self.previous_value,
            "current": self.current_value,
            "direction": self.direction.value,
            "is_improvement": self.is_improvement,
        }


@dataclass(frozen=True)
class RecommendationRule:
    """Static mapping from a finding pattern to remediation actions."""

    pattern: re.Pattern[str]
    title: str
    actions: tuple[str, ...]

    def matches(self, message: str) -> bool:
        return self.pattern.search(message) is not None


@dataclass(frozen=True)
class Recommendation:
    """Remediation advice emitted at most once per rule title."""

    title: str
    actions: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "actions": list(self.actions)}
