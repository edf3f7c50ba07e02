"""Memory utilization, fragmentation and eviction check."""

from dataclasses import dataclass
from typing import ClassVar

from redis_doctor.config import DEFAULT_THRESHOLDS, Thresholds
from redis_doctor.parsing import info_float, info_int, info_str
from redis_doctor.protocols import MetricSourceProtocol
from redis_doctor.types import Finding, Section, Severity


@dataclass
class MemoryCheck:
    """
    Evaluate INFO memory against utilization and fragmentation thresholds.

    Findings:
    - maxmemory unset: warning
    - utilization >= critical threshold: critical, >= warning threshold: warning
    - fragmentation >= critical threshold: critical, >= warning threshold: warning
    - evicted keys > 0: warning
    """

    thresholds: Thresholds = DEFAULT_THRESHOLDS

    name: ClassVar[str] = "memory"
    label: ClassVar[str] = "Memory"
    title: ClassVar[str] = "MEMORY ANALYSIS"

    async def evaluate(self, source: MetricSourceProtocol) -> Section:
        t = self.thresholds
        info = await source.get_info_section("memory")

        used_memory = info_int(info, "used_memory")
        max_memory = info_int(info, "maxmemory")
        fragmentation_ratio = info_float(info, "mem_fragmentation_ratio")
        evicted_keys = info_int(info, "evicted_keys")

        findings: list[Finding] = []

        memory_utilization = 0.0
        if max_memory > 0:
            memory_utilization = used_memory * 100 / max_memory
            if memory_utilization >= t.memory_usage_critical_percent:
                findings.append(
                    Finding(
                        f"Memory usage at {memory_utilization:.1f}% of maxmemory - critically high",
                        Severity.CRITICAL,
                    )
                )
            elif memory_utilization >= t.memory_usage_warning_percent:
                findings.append(
                    Finding(
                        f"Memory usage at {memory_utilization:.1f}% of maxmemory - approaching limit",
                        Severity.WARNING,
                    )
                )
        else:
            findings.append(
                Finding(
                    "maxmemory is not set (unlimited) - consider setting a limit for production",
                    Severity.WARNING,
                )
            )

        if fragmentation_ratio >= t.fragmentation_critical:
            findings.append(
                Finding(
                    f"Fragmentation ratio {fragmentation_ratio:.2f} is critically high "
                    f"(>= {t.fragmentation_critical})",
                    Severity.CRITICAL,
                )
            )
        elif fragmentation_ratio >= t.fragmentation_warning:
            findings.append(
                Finding(
                    f"Fragmentation ratio {fragmentation_ratio:.2f} is elevated "
                    f"(>= {t.fragmentation_warning})",
                    Severity.WARNING,
                )
            )

        if evicted_keys > 0:
            findings.append(
                Finding(
                    f"{evicted_keys:,} keys have been evicted - memory pressure detected",
                    Severity.WARNING,
                )
            )

        metrics = {
            "used_memory": used_memory,
            "used_memory_human": info_str(info, "used_memory_human", "N/A"),
            "peak_memory": info_int(info, "used_memory_peak"),
            "peak_memory_human": info_str(info, "used_memory_peak_human", "N/A"),
            "max_memory": max_memory,
            "max_memory_policy": info_str(info, "maxmemory_policy", "N/A"),
            "fragmentation_ratio": fragmentation_ratio,
            "evicted_keys": evicted_keys,
            "used_memory_overhead": info_int(info, "used_memory_overhead"),
            "used_memory_dataset": info_int(info, "used_memory_dataset"),
            "lua_memory": info_int(info, "used_memory_lua"),
            "memory_utilization": memory_utilization,
        }

        return Section.build(self.title, metrics, findings)
