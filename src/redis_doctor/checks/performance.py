"""Hit rate, rejected connection and slow log check."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, ClassVar

from redis_doctor.config import DEFAULT_THRESHOLDS, Thresholds
from redis_doctor.exceptions import UnsupportedCommandError
from redis_doctor.parsing import info_int, info_str, to_int
from redis_doctor.protocols import MetricSourceProtocol
from redis_doctor.types import Finding, Section, Severity

logger = logging.getLogger(__name__)

# Arguments shown after the command name in slow log entries.
# Unlisted commands show 1 argument (the key). Value payloads are elided.
COMMAND_DISPLAY_ARGS = {
    "EVAL": 0,
    "EVALSHA": 0,
    "INFO": 1,
    "CONFIG": 2,
    "SLOWLOG": 1,
    "CLIENT": 1,
    "MGET": 3,
    "MSET": 3,
    "DEL": 3,
    "UNLINK": 3,
    "EXISTS": 3,
    "OBJECT": 2,
    "MEMORY": 2,
    "XINFO": 2,
}


def format_slow_command(command: Any) -> str:
    """
    Shorten a slow log command to its name and key arguments.

    Args:
        command: Argument list, or the space-joined string redis-py returns

    Returns:
        Display string like "SET user:1 [+1 args]"
    """
    if isinstance(command, (bytes, bytearray)):
        command = command.decode(errors="replace")
    parts = command.split(" ") if isinstance(command, str) else [str(p) for p in command]
    parts = [p for p in parts if p != ""]
    if not parts:
        return ""

    max_args = COMMAND_DISPLAY_ARGS.get(parts[0].upper(), 1)
    shown = parts[: 1 + max_args]
    omitted = len(parts) - len(shown)
    if omitted > 0:
        return f"{' '.join(shown)} [+{omitted} args]"
    return " ".join(shown)


@dataclass
class PerformanceCheck:
    """
    Evaluate INFO stats and the slow log.

    Findings:
    - hit rate < critical threshold: critical, < warning threshold: warning
      (only when more than hit_rate_min_operations lookups were recorded)
    - rejected connections > 0: warning
    - slow log length above the systemic threshold: warning
    - slow log restricted: informational
    """

    thresholds: Thresholds = DEFAULT_THRESHOLDS

    name: ClassVar[str] = "performance"
    label: ClassVar[str] = "Performance"
    title: ClassVar[str] = "PERFORMANCE ANALYSIS"

    async def evaluate(self, source: MetricSourceProtocol) -> Section:
        t = self.thresholds
        stats, server = await asyncio.gather(
            source.get_info_section("stats"),
            source.get_info_section("server"),
        )

        keyspace_hits = info_int(stats, "keyspace_hits")
        keyspace_misses = info_int(stats, "keyspace_misses")
        rejected_connections = info_int(stats, "rejected_connections")

        findings: list[Finding] = []

        lookups = keyspace_hits + keyspace_misses
        hit_rate = keyspace_hits * 100 / lookups if lookups > 0 else 0.0

        if lookups > t.hit_rate_min_operations:
            if hit_rate < t.hit_rate_critical_percent:
                findings.append(
                    Finding(
                        f"Hit rate {hit_rate:.1f}% is critically low "
                        f"(< {t.hit_rate_critical_percent:g}%) - review cache strategy",
                        Severity.CRITICAL,
                    )
                )
            elif hit_rate < t.hit_rate_warning_percent:
                findings.append(
                    Finding(
                        f"Hit rate {hit_rate:.1f}% is below optimal "
                        f"(< {t.hit_rate_warning_percent:g}%) - consider reviewing cache patterns",
                        Severity.WARNING,
                    )
                )

        if rejected_connections > 0:
            findings.append(
                Finding(
                    f"{rejected_connections:,} connections rejected - maxclients may be too low",
                    Severity.WARNING,
                )
            )

        slow_entries: list[dict[str, Any]] = []
        slow_log_length = 0
        try:
            raw_entries, slow_log_length = await asyncio.gather(
                source.get_slow_entries(t.slow_log_fetch_limit),
                source.get_slow_count(),
            )
            slow_entries = [
                {
                    "id": to_int(entry.get("id")),
                    "start_time": to_int(entry.get("start_time")),
                    "duration_us": to_int(entry.get("duration")),
                    "command": format_slow_command(entry.get("command", "")),
                }
                for entry in raw_entries
            ]
            if slow_log_length > t.slow_log_systemic_count:
                findings.append(
                    Finding(
                        f"{slow_log_length:,} total slow log entries - indicates systemic slow commands",
                        Severity.WARNING,
                    )
                )
        except UnsupportedCommandError as e:
            logger.debug("%s", e)
            findings.append(
                Finding("SLOWLOG command unavailable (may be restricted on managed Redis)")
            )

        metrics = {
            "ops_per_second": info_int(stats, "instantaneous_ops_per_sec"),
            "total_commands": info_int(stats, "total_commands_processed"),
            "keyspace_hits": keyspace_hits,
            "keyspace_misses": keyspace_misses,
            "hit_rate": hit_rate,
            "rejected_connections": rejected_connections,
            "total_net_input_bytes": info_int(stats, "total_net_input_bytes"),
            "total_net_output_bytes": info_int(stats, "total_net_output_bytes"),
            "uptime_seconds": info_int(server, "uptime_in_seconds"),
            "redis_version": info_str(server, "redis_version"),
            "slow_log_entries": slow_entries,
            "slow_log_length": slow_log_length,
        }

        return Section.build(self.title, metrics, findings)
