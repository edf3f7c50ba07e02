"""
redis-doctor: read-only health diagnostics for Redis.

Runs five checks (memory, performance, connections, key patterns,
replication) against a live server using only introspection commands,
and reports findings, recommendations and point-in-time comparisons.
"""

from redis_doctor.analyzer import Analyzer, build_outcome, exit_code, run_analysis
from redis_doctor.comparison import Snapshot, compute_deltas, load_snapshot
from redis_doctor.config import DEFAULT_THRESHOLDS, Settings, Thresholds
from redis_doctor.protocols import CheckProtocol, MetricSourceProtocol
from redis_doctor.recommendations import build_recommendations
from redis_doctor.types import Finding, Report, Section, Severity
from redis_doctor.watch import WatchLoop

__version__ = "0.1.0"

__all__ = [
    "Analyzer",
    "run_analysis",
    "exit_code",
    "build_outcome",
    "Snapshot",
    "compute_deltas",
    "load_snapshot",
    "build_recommendations",
    "WatchLoop",
    "Thresholds",
    "DEFAULT_THRESHOLDS",
    "Settings",
    "CheckProtocol",
    "MetricSourceProtocol",
    "Finding",
    "Report",
    "Section",
    "Severity",
]
