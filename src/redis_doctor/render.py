"""
Report rendering for the terminal and for automation.

RichRenderer prints the human report with rich:
- header (server, version, uptime, timestamp)
- top summary (counts, per-section status, every finding)
- comparison table, when a baseline exists
- recommendations
- per-section detail views (printed after the summary)

JsonRenderer prints the snapshot document (plus comparison and
recommendations) as the only stdout output.
"""

import json
import math
import sys
from typing import Any, Callable, TextIO

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from redis_doctor.analyzer import AnalysisOutcome
from redis_doctor.types import (
    DeltaRow,
    Direction,
    Recommendation,
    Report,
    Section,
    Severity,
    TTLBucket,
)

BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")
SEPARATOR = "═" * 80
LINE = "─" * 80


# =============================================================================
# Formatters
# =============================================================================


def format_bytes(value: float) -> str:
    """1536 -> "1.50 KB"."""
    if value <= 0:
        return "0 B"
    index = min(int(math.log(value, 1024)), len(BYTE_UNITS) - 1)
    return f"{value / 1024**index:.2f} {BYTE_UNITS[index]}"


def format_number(value: float) -> str:
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.2f}"
    return f"{int(value):,}"


def format_percent(value: float, decimals: int = 1) -> str:
    return f"{value:.{decimals}f}%"


def format_duration(seconds: int) -> str:
    """
    Compact duration: "3d 4h", "2h 15m", "45s".

    Minutes are dropped once the duration exceeds a day.
    """
    days, remainder = divmod(int(seconds), 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes and not days:
        parts.append(f"{minutes}m")
    return " ".join(parts) or f"{int(seconds)}s"


# Value formatters for comparison rows, by metric label
DELTA_FORMATTERS: dict[str, Callable[[float], str]] = {
    "Memory Used": format_bytes,
    "Fragmentation": lambda v: f"{v:.2f}",
    "Memory Utilization": format_percent,
    "Hit Rate": format_percent,
}

STATUS_STYLE = {
    Severity.OK: "green",
    Severity.WARNING: "yellow",
    Severity.CRITICAL: "red",
}

STATUS_ICON = {
    Severity.OK: "[green]✓[/green]",
    Severity.WARNING: "[yellow]⚠[/yellow]",
    Severity.CRITICAL: "[red]✗[/red]",
}

TTL_LABELS = {
    TTLBucket.NO_EXPIRY: "No expiry",
    TTLBucket.UNDER_1H: "< 1 hour",
    TTLBucket.ONE_HOUR_TO_1_DAY: "1 hour - 1 day",
    TTLBucket.ONE_DAY_TO_7_DAYS: "1 - 7 days",
    TTLBucket.OVER_7_DAYS: "> 7 days",
}


def status_badge(status: Severity) -> str:
    return f"[bold white on {STATUS_STYLE[status]}] {status.value.upper()} [/]"


def render_bar(ratio: float, width: int = 20, style: str = "green") -> str:
    filled = round(max(0.0, min(ratio, 1.0)) * width)
    return f"[{style}]{'█' * filled}[/{style}][dim]{'░' * (width - filled)}[/dim]"


def format_delta(row: DeltaRow) -> str:
    """Arrow plus absolute change, colored by improvement."""
    if row.direction == Direction.UNCHANGED:
        return "[dim]= no change[/dim]"

    formatter = DELTA_FORMATTERS.get(row.metric_label, format_number)
    arrow = "▲" if row.direction == Direction.UP else "▼"
    style = "green" if row.is_improvement else "red"
    return f"[{style}]{arrow} {formatter(abs(row.delta))}[/{style}]"


# =============================================================================
# Renderers
# =============================================================================


class RichRenderer:
    """
    Human-readable report output.

    Example:
        renderer = RichRenderer(Console())
        renderer.render_report(outcome)
        renderer.render_details(outcome.report)
    """

    def __init__(self, console: Console) -> None:
        self.console = console

    def render_report(self, outcome: AnalysisOutcome) -> None:
        """Header, top summary, comparison and recommendations."""
        report = outcome.report
        self._render_header(report)
        self._render_top_summary(report)
        if outcome.deltas is not None:
            self._render_comparison(outcome.deltas, outcome.baseline_timestamp)
        if outcome.recommendations:
            self._render_recommendations(outcome.recommendations)

    def render_details(self, report: Report) -> None:
        """Per-section detail views in report order."""
        detail_views: dict[str, Callable[[Section], None]] = {
            "memory": self._render_memory,
            "performance": self._render_performance,
            "connections": self._render_connections,
            "key_patterns": self._render_key_patterns,
            "replication": self._render_replication,
        }
        for key, section in report.sections.items():
            self._section_header(section)
            if section.metrics:
                detail_views[key](section)
            self._render_findings(section)

    def render_watch_iteration(
        self, outcome: AnalysisOutcome, iteration: int, interval: float
    ) -> None:
        if iteration > 1:
            self.console.clear()
        self.console.print(
            f"[dim]  \\[Watch mode: iteration {iteration}, refreshing every {interval:g}s, "
            "press Ctrl+C to stop][/dim]"
        )
        self.render_report(outcome)
        self.render_details(outcome.report)

    # -------------------------------------------------------------------------
    # Summary
    # -------------------------------------------------------------------------

    def _render_header(self, report: Report) -> None:
        c = self.console
        c.print()
        c.print(f"[dim]{SEPARATOR}[/dim]")
        c.print("[bold cyan]  REDIS DIAGNOSTICS REPORT[/bold cyan]")
        c.print(f"[dim]{SEPARATOR}[/dim]")
        c.print(
            f"  [dim]Server:[/dim]      [bold]{escape(report.server.url)}[/bold] "
            f"[dim](Redis {report.server.version})[/dim]"
        )
        c.print(f"  [dim]Uptime:[/dim]      {format_duration(report.server.uptime_seconds)}")
        c.print(f"  [dim]Timestamp:[/dim]   [dim]{report.timestamp.isoformat()}[/dim]")
        c.print(f"[dim]{SEPARATOR}[/dim]")

    def _render_top_summary(self, report: Report) -> None:
        c = self.console
        critical = report.critical_count
        warning = report.warning_count
        critical_text = f"[bold red]{critical} critical[/bold red]" if critical else "[dim]0 critical[/dim]"
        warning_text = (
            f"[bold yellow]{warning} warning(s)[/bold yellow]" if warning else "[dim]0 warnings[/dim]"
        )
        c.print()
        c.print(
            f"  {STATUS_ICON[report.status]} [bold]SUMMARY:[/bold] "
            f"{critical_text}[dim] │ [/dim]{warning_text}"
        )

        sections = report.ordered_sections()
        c.print(
            "    "
            + "  ".join(f"{STATUS_ICON[s.status]} [dim]{s.title.lower()}[/dim]" for s in sections)
        )

        flagged = [f for s in sections for f in s.findings if f.severity != Severity.OK]
        if flagged:
            c.print()
            for finding in flagged:
                style = STATUS_STYLE[finding.severity]
                c.print(
                    f"    {STATUS_ICON[finding.severity]}  [{style}]{escape(finding.message)}[/{style}]",
                    highlight=False,
                )

    def _render_comparison(self, deltas: list[DeltaRow], baseline_timestamp: str | None) -> None:
        self._section_title("COMPARISON WITH PREVIOUS RUN", Severity.OK)
        self.console.print(f"    [dim]Previous run: {baseline_timestamp or 'unknown'}[/dim]")
        if not deltas:
            self.console.print("    [dim]No comparable metrics[/dim]")
            return

        table = Table(box=None, padding=(0, 2))
        table.add_column("Metric")
        table.add_column("Previous", justify="right")
        table.add_column("Current", justify="right")
        table.add_column("Change", justify="right")
        for row in deltas:
            formatter = DELTA_FORMATTERS.get(row.metric_label, format_number)
            table.add_row(
                row.metric_label,
                formatter(row.previous_value),
                formatter(row.current_value),
                format_delta(row),
            )
        self.console.print(table)

    def _render_recommendations(self, recommendations: list[Recommendation]) -> None:
        c = self.console
        c.print()
        c.print("  [bold cyan]RECOMMENDATIONS[/bold cyan]")
        c.print(f"  [dim]{LINE}[/dim]")
        for index, recommendation in enumerate(recommendations, start=1):
            c.print(f"    [bold]{index}. {recommendation.title}[/bold]")
            for action in recommendation.actions:
                c.print(f"       [dim]-[/dim] {action}", highlight=False)

    # -------------------------------------------------------------------------
    # Sections
    # -------------------------------------------------------------------------

    def _section_title(self, title: str, status: Severity) -> None:
        self.console.print()
        self.console.print(f"  [bold white]{title}[/bold white]  {status_badge(status)}")
        self.console.print(f"  [dim]{LINE}[/dim]")

    def _section_header(self, section: Section) -> None:
        self._section_title(section.title, section.status)

    def _metric(self, label: str, value: Any) -> None:
        self.console.print(f"    [dim]{label:<22}[/dim] {value}", highlight=False)

    def _render_findings(self, section: Section) -> None:
        for finding in section.findings:
            if finding.severity == Severity.OK:
                self.console.print(f"    [dim]ℹ  {escape(finding.message)}[/dim]", highlight=False)
            else:
                style = STATUS_STYLE[finding.severity]
                self.console.print(
                    f"    {STATUS_ICON[finding.severity]}  [{style}]{escape(finding.message)}[/{style}]",
                    highlight=False,
                )

    def _render_memory(self, section: Section) -> None:
        m = section.metrics
        self._metric("Used Memory:", f"[bold]{escape(str(m['used_memory_human']))}[/bold]")
        self._metric("Peak Memory:", escape(str(m["peak_memory_human"])))
        if m["max_memory"] > 0:
            utilization = m["memory_utilization"]
            self._metric(
                "Max Memory:",
                f"{format_bytes(m['max_memory'])}  "
                f"{render_bar(utilization / 100, 20, STATUS_STYLE[section.status])}  "
                f"{format_percent(utilization)}",
            )
        else:
            self._metric("Max Memory:", "[yellow]unlimited[/yellow]")
        self._metric("Eviction Policy:", escape(str(m["max_memory_policy"])))
        self._metric("Fragmentation:", f"{m['fragmentation_ratio']:.2f}")
        self._metric("Evicted Keys:", format_number(m["evicted_keys"]))
        self._metric("Dataset / Overhead:", (
            f"{format_bytes(m['used_memory_dataset'])} / {format_bytes(m['used_memory_overhead'])}"
        ))
        self._metric("Lua Memory:", format_bytes(m["lua_memory"]))

    def _render_performance(self, section: Section) -> None:
        m = section.metrics
        self._metric("Ops/sec:", f"[bold]{format_number(m['ops_per_second'])}[/bold]")
        self._metric("Total Commands:", format_number(m["total_commands"]))
        self._metric(
            "Hit Rate:",
            f"{format_percent(m['hit_rate'])} [dim]({format_number(m['keyspace_hits'])} hits / "
            f"{format_number(m['keyspace_misses'])} misses)[/dim]",
        )
        self._metric("Rejected Connections:", format_number(m["rejected_connections"]))
        self._metric("Network In / Out:", (
            f"{format_bytes(m['total_net_input_bytes'])} / {format_bytes(m['total_net_output_bytes'])}"
        ))
        self._metric("Slow Log Length:", format_number(m["slow_log_length"]))

        entries = m["slow_log_entries"]
        if entries:
            table = Table(title="Slow Log", title_justify="left", padding=(0, 1))
            table.add_column("ID", justify="right", style="cyan")
            table.add_column("Duration", justify="right")
            table.add_column("Command", overflow="ellipsis", max_width=56)
            for entry in entries:
                table.add_row(
                    str(entry["id"]),
                    f"{entry['duration_us'] / 1000:.2f} ms",
                    escape(entry["command"]),
                )
            self.console.print(table)

    def _render_connections(self, section: Section) -> None:
        m = section.metrics
        utilization = m["client_utilization"]
        self._metric(
            "Connected Clients:",
            f"[bold]{format_number(m['connected_clients'])}[/bold] / "
            f"{format_number(m['max_clients'])}  "
            f"{render_bar(utilization / 100, 20, STATUS_STYLE[section.status])}  "
            f"{format_percent(utilization)}",
        )
        self._metric("Blocked Clients:", format_number(m["blocked_clients"]))
        if not m["client_list_skipped"]:
            self._metric("Long Idle Clients:", format_number(m["long_idle_clients"]))
            self._metric("Large Buffers:", format_number(m["large_buffer_clients"]))
            for database, count in sorted(m["database_distribution"].items()):
                self._metric(f"  db{escape(str(database))}:", f"{format_number(count)} clients")

    def _render_key_patterns(self, section: Section) -> None:
        m = section.metrics
        sampled = m.get("sampled_count")
        note = (
            f" [dim](sampled {format_number(sampled)} of {format_number(m['total_keys'])})[/dim]"
            if sampled
            else ""
        )
        self._metric("Total Keys:", f"[bold]{format_number(m['total_keys'])}[/bold]{note}")
        for database, info in m["databases"].items():
            ratio = info["expires"] / info["keys"] if info["keys"] else 0.0
            self._metric(
                f"{database}:",
                f"[bold]{format_number(info['keys'])}[/bold] keys  {render_bar(ratio, 10)}  "
                f"[dim]{format_number(info['expires'])} with expiry[/dim]",
            )

        if not sampled:
            return

        types = Table(title="Type Distribution", title_justify="left", padding=(0, 1))
        types.add_column("Type", style="cyan")
        types.add_column("Count", justify="right")
        types.add_column("Share", justify="right")
        types.add_column("Size", justify="right")
        ordered_types = sorted(m["type_distribution"].items(), key=lambda item: -item[1]["count"])
        for type_name, totals in ordered_types:
            types.add_row(
                escape(type_name),
                format_number(totals["count"]),
                format_percent(totals["count"] * 100 / sampled),
                f"~{format_bytes(totals['total_bytes'])}",
            )
        self.console.print(types)

        self.console.print("    [bold]TTL Distribution:[/bold]")
        for bucket in TTLBucket:
            count = m["ttl_distribution"][bucket.value]
            self._metric(
                f"  {TTL_LABELS[bucket]}",
                f"{count:>6}  {render_bar(count / sampled, 15)}",
            )

        if m["top_keys"]:
            largest = Table(title="Top Largest Keys", title_justify="left", padding=(0, 1))
            largest.add_column("Size", justify="right")
            largest.add_column("Type")
            largest.add_column("Key", overflow="ellipsis", max_width=48)
            for entry in m["top_keys"]:
                largest.add_row(format_bytes(entry["size_bytes"]), escape(entry["type"]), escape(entry["key"]))
            self.console.print(largest)

        if m["prefix_groups"]:
            prefixes = Table(title="Top Prefixes by Memory", title_justify="left", padding=(0, 1))
            prefixes.add_column("Prefix", overflow="ellipsis", max_width=40)
            prefixes.add_column("Keys", justify="right")
            prefixes.add_column("Size", justify="right")
            for group in m["prefix_groups"]:
                prefixes.add_row(
                    escape(group["prefix"]),
                    format_number(group["key_count"]),
                    format_bytes(group["total_bytes"]),
                )
            self.console.print(prefixes)

    def _render_replication(self, section: Section) -> None:
        m = section.metrics
        self._metric("Role:", f"[bold]{escape(str(m['role']))}[/bold]")
        self._metric("Connected Replicas:", format_number(m["connected_replicas"]))
        for replica in m["replicas"]:
            style = "green" if replica["state"] == "online" else "red"
            self._metric(
                f"  {escape(str(replica['ip']))}:{escape(str(replica['port']))}",
                f"[{style}]{escape(str(replica['state']))}[/{style}]  "
                f"lag {escape(str(replica['lag']))}s  "
                f"offset {format_number(replica['offset'])}",
            )
        self._metric("RDB Last Save:", (
            f"{escape(str(m['rdb_last_save_status']))} "
            f"[dim]({format_duration(m['time_since_last_save'])} ago, "
            f"{format_number(m['rdb_changes_since_last_save'])} changes since)[/dim]"
        ))
        aof_status = escape(str(m["aof_last_write_status"]))
        self._metric("AOF:", f"enabled, last write {aof_status}" if m["aof_enabled"] else "disabled")
        if m["loading"]:
            self._metric("Loading:", "[yellow]yes[/yellow]")


class JsonRenderer:
    """Machine-readable output: one JSON document per report on stdout."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout

    def render_report(self, outcome: AnalysisOutcome) -> None:
        print(json.dumps(outcome.to_dict(), indent=2, default=str), file=self.stream)

    def render_details(self, report: Report) -> None:
        # Details are already part of the document
        pass

    def render_watch_iteration(
        self, outcome: AnalysisOutcome, iteration: int, interval: float
    ) -> None:
        self.render_report(outcome)
