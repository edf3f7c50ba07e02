"""
Analysis orchestrator.

Analyzer.run() probes server identity, runs the four core checks
concurrently, then runs key sampling (unless skipped) once they have all
settled, and merges the sections into a Report.

- A failing check becomes a critical section; it never aborts the run.
- Only the identity probe is fatal (ConnectionFailedError).
- Key sampling runs last: it is the slowest check, and running it after
  the cheap ones lets fast results surface first.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from redis_doctor.checks import (
    ConnectionCheck,
    KeyPatternCheck,
    MemoryCheck,
    PerformanceCheck,
    ReplicationCheck,
)
from redis_doctor.comparison import Snapshot, compute_deltas
from redis_doctor.config import DEFAULT_THRESHOLDS, Thresholds
from redis_doctor.exceptions import ConnectionFailedError, EvaluatorFailedError
from redis_doctor.parsing import info_int, info_str
from redis_doctor.protocols import CheckProtocol, MetricSourceProtocol
from redis_doctor.recommendations import build_recommendations
from redis_doctor.types import (
    SECTION_ORDER,
    DeltaRow,
    Recommendation,
    Report,
    Section,
    ServerIdentity,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class Analyzer:
    """
    Runs all checks against one metric source and merges a Report.

    Attributes:
        thresholds: Thresholds passed to every check
        sample_size: Keys sampled by the key pattern check
        skip_key_sampling: Omit the key pattern check entirely
        server_url: Display URL recorded in the report (defaults to source address)
        clock: Returns the report timestamp

    Example:
        analyzer = Analyzer(sample_size=5000)
        report = await analyzer.run(adapter)
        raise SystemExit(exit_code(report))
    """

    thresholds: Thresholds = DEFAULT_THRESHOLDS
    sample_size: int = 1000
    skip_key_sampling: bool = False
    server_url: str | None = None
    clock: Callable[[], datetime] = field(default=utc_now, repr=False)

    def core_checks(self) -> list[CheckProtocol]:
        """The four checks that always run, concurrently."""
        return [
            MemoryCheck(self.thresholds),
            PerformanceCheck(self.thresholds),
            ConnectionCheck(self.thresholds),
            ReplicationCheck(self.thresholds),
        ]

    def key_check(self) -> CheckProtocol | None:
        """The optional sequential key sampling check."""
        if self.skip_key_sampling:
            return None
        return KeyPatternCheck(self.thresholds, sample_size=self.sample_size)

    async def run(self, source: MetricSourceProtocol) -> Report:
        """
        Run one full analysis.

        Args:
            source: Connected metric source

        Returns:
            Fully built Report

        Raises:
            ConnectionFailedError: If the identity probe fails
        """
        identity = await self.probe_identity(source)

        checks = self.core_checks()
        # _run_check never raises, so gather waits for every check to settle
        core_sections = await asyncio.gather(
            *(self._run_check(check, source) for check in checks)
        )
        sections: dict[str, Section] = {
            check.name: section for check, section in zip(checks, core_sections)
        }

        key_check = self.key_check()
        if key_check is not None:
            sections[key_check.name] = await self._run_check(key_check, source)

        return Report(
            timestamp=self.clock(),
            server=identity,
            sections={key: sections[key] for key in SECTION_ORDER if key in sections},
        )

    async def probe_identity(self, source: MetricSourceProtocol) -> ServerIdentity:
        """Read version and uptime from INFO server. Failure is fatal."""
        try:
            server = await source.get_info_section("server")
        except ConnectionFailedError:
            raise
        except Exception as e:
            raise ConnectionFailedError(source.address, str(e)) from e

        return ServerIdentity(
            url=self.server_url or source.address,
            version=info_str(server, "redis_version"),
            uptime_seconds=info_int(server, "uptime_in_seconds"),
        )

    async def _run_check(
        self, check: CheckProtocol, source: MetricSourceProtocol
    ) -> Section:
        """Run one check, converting any failure into a critical section."""
        try:
            return await check.evaluate(source)
        except Exception as e:
            failure = EvaluatorFailedError(check.name, e)
            logger.warning("%s", failure)
            return Section.failed(check.title, check.label, failure)


async def run_analysis(
    source: MetricSourceProtocol,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
    sample_size: int = 1000,
    skip_key_sampling: bool = False,
) -> Report:
    """Convenience wrapper around Analyzer.run()."""
    analyzer = Analyzer(
        thresholds=thresholds,
        sample_size=sample_size,
        skip_key_sampling=skip_key_sampling,
    )
    return await analyzer.run(source)


def exit_code(report: Report) -> int:
    """
    Map a report to the process exit status.

    Returns:
        2 if any section is critical, 1 if any is a warning, else 0
    """
    if report.critical_count > 0:
        return 2
    if report.warning_count > 0:
        return 1
    return 0


@dataclass(frozen=True)
class AnalysisOutcome:
    """
    A report with its derived comparison and recommendations.

    Attributes:
        report: The analysis report
        recommendations: Deduplicated remediation advice
        deltas: Comparison rows, or None without a baseline
        baseline_timestamp: Timestamp of the baseline snapshot, if any
    """

    report: Report
    recommendations: list[Recommendation]
    deltas: list[DeltaRow] | None = None
    baseline_timestamp: str | None = None

    def to_dict(self) -> dict:
        """Snapshot document plus additive comparison and recommendation keys."""
        document = self.report.to_dict()
        document["recommendations"] = [r.to_dict() for r in self.recommendations]
        if self.deltas is not None:
            document["comparison"] = {
                "baseline_timestamp": self.baseline_timestamp,
                "rows": [row.to_dict() for row in self.deltas],
            }
        return document


def build_outcome(report: Report, baseline: Snapshot | None = None) -> AnalysisOutcome:
    """
    Derive recommendations and, given a baseline, comparison rows.

    Args:
        report: Current report
        baseline: Previous snapshot to diff against

    Returns:
        AnalysisOutcome
    """
    recommendations = build_recommendations(report.ordered_sections())
    if baseline is None:
        return AnalysisOutcome(report=report, recommendations=recommendations)

    return AnalysisOutcome(
        report=report,
        recommendations=recommendations,
        deltas=compute_deltas(Snapshot.from_report(report), baseline),
        baseline_timestamp=baseline.timestamp,
    )
