"""
Snapshot documents and point-in-time comparison.

A Snapshot is the serialized form of a Report (see Report.to_dict()).
Snapshots are parsed with pydantic models that ignore unknown keys, so
documents written by newer versions remain readable.

compute_deltas() diffs a fixed, ordered set of metrics. A metric is only
compared when both snapshots carry a numeric value for it.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from redis_doctor.exceptions import MalformedSnapshotError
from redis_doctor.types import DeltaRow, Direction, Report

logger = logging.getLogger(__name__)


class SnapshotFinding(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str
    severity: str = "ok"


class SnapshotSection(BaseModel):
    """One section of a snapshot document."""

    model_config = ConfigDict(extra="ignore")

    title: str = ""
    status: str = "ok"
    metrics: dict[str, Any] = Field(default_factory=dict)
    findings: list[SnapshotFinding] = Field(default_factory=list)


class SnapshotSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    warning_count: int = 0
    critical_count: int = 0


class Snapshot(BaseModel):
    """
    Serialized report used as a comparison baseline.

    Example document:
    {
        "timestamp": "2026-01-26T12:00:00+00:00",
        "server": {"url": "redis://cache:6379", "version": "7.2.4", "uptime_seconds": 86400},
        "memory": {"title": "MEMORY ANALYSIS", "status": "ok", "metrics": {...}, "findings": []},
        ...
        "summary": {"warning_count": 0, "critical_count": 0}
    }
    """

    model_config = ConfigDict(extra="ignore")

    timestamp: str | None = None
    memory: SnapshotSection | None = None
    performance: SnapshotSection | None = None
    connections: SnapshotSection | None = None
    key_patterns: SnapshotSection | None = None
    replication: SnapshotSection | None = None
    summary: SnapshotSummary | None = None

    @classmethod
    def from_report(cls, report: Report) -> "Snapshot":
        return cls.model_validate(report.to_dict())

    def metric_value(self, section: str, key: str) -> float | None:
        """
        Look up a numeric metric.

        Args:
            section: Section key, or "summary" for the summary counts
            key: Metric name

        Returns:
            The value, or None if absent or not numeric
        """
        if section == "summary":
            value = getattr(self.summary, key, None) if self.summary else None
        else:
            snapshot_section = getattr(self, section, None)
            value = snapshot_section.metrics.get(key) if snapshot_section else None

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return value


@dataclass(frozen=True)
class ComparedMetric:
    """A metric included in snapshot comparison."""

    label: str
    section: str
    key: str
    higher_is_better: bool = False


# Order is preserved in the comparison output
COMPARED_METRICS: tuple[ComparedMetric, ...] = (
    ComparedMetric("Memory Used", "memory", "used_memory"),
    ComparedMetric("Fragmentation", "memory", "fragmentation_ratio"),
    ComparedMetric("Memory Utilization", "memory", "memory_utilization"),
    ComparedMetric("Hit Rate", "performance", "hit_rate", higher_is_better=True),
    ComparedMetric("Operations/sec", "performance", "ops_per_second", higher_is_better=True),
    ComparedMetric("Slow Log Entries", "performance", "slow_log_length"),
    ComparedMetric("Connected Clients", "connections", "connected_clients"),
    ComparedMetric("Warnings", "summary", "warning_count"),
    ComparedMetric("Critical Issues", "summary", "critical_count"),
)


def _delta_row(metric: ComparedMetric, previous: float, current: float) -> DeltaRow:
    if current == previous:
        direction = Direction.UNCHANGED
        is_improvement = None
    else:
        direction = Direction.UP if current > previous else Direction.DOWN
        if metric.higher_is_better:
            is_improvement = direction == Direction.UP
        else:
            is_improvement = direction == Direction.DOWN

    return DeltaRow(
        metric_label=metric.label,
        previous_value=previous,
        current_value=current,
        direction=direction,
        is_improvement=is_improvement,
        higher_is_better=metric.higher_is_better,
    )


def compute_deltas(current: Snapshot, previous: Snapshot) -> list[DeltaRow]:
    """
    Compare two snapshots over COMPARED_METRICS.

    Args:
        current: The newer snapshot
        previous: The baseline snapshot

    Returns:
        One DeltaRow per metric present in both snapshots, in table order
    """
    rows: list[DeltaRow] = []
    for metric in COMPARED_METRICS:
        current_value = current.metric_value(metric.section, metric.key)
        previous_value = previous.metric_value(metric.section, metric.key)
        if current_value is None or previous_value is None:
            continue
        rows.append(_delta_row(metric, previous_value, current_value))
    return rows


def load_snapshot(path: Path) -> Snapshot:
    """
    Read and validate a snapshot file.

    Raises:
        MalformedSnapshotError: If the file is unreadable, not JSON, or
            does not match the snapshot schema
    """
    try:
        return Snapshot.model_validate_json(path.read_text())
    except OSError as e:
        raise MalformedSnapshotError(str(path), e.strerror or str(e)) from e
    except ValidationError as e:
        raise MalformedSnapshotError(str(path), f"{e.error_count()} validation error(s)") from e


def try_load_snapshot(path: Path) -> Snapshot | None:
    """Load a snapshot, logging and returning None when it is malformed."""
    try:
        return load_snapshot(path)
    except MalformedSnapshotError as e:
        logger.error("%s - comparison skipped", e)
        return None
