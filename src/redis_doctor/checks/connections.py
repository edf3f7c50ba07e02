"""Client connection check."""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import ClassVar

from redis_doctor.config import DEFAULT_THRESHOLDS, Thresholds
from redis_doctor.exceptions import UnsupportedCommandError
from redis_doctor.parsing import info_int, to_int
from redis_doctor.protocols import MetricSourceProtocol
from redis_doctor.types import Finding, Section, Severity

logger = logging.getLogger(__name__)


@dataclass
class ConnectionCheck:
    """
    Evaluate INFO clients, maxclients and CLIENT LIST.

    CLIENT LIST is only parsed up to client_list_max_parse clients, since
    the reply grows linearly with the client count.

    Findings:
    - connected/maxclients >= warning threshold: warning
    - blocked clients: warning
    - clients with large output buffers: warning
    - long-idle clients: informational
    - CONFIG or CLIENT restricted, CLIENT LIST skipped: informational
    """

    thresholds: Thresholds = DEFAULT_THRESHOLDS

    name: ClassVar[str] = "connections"
    label: ClassVar[str] = "Connection"
    title: ClassVar[str] = "CONNECTION ANALYSIS"

    async def evaluate(self, source: MetricSourceProtocol) -> Section:
        t = self.thresholds
        info = await source.get_info_section("clients")

        connected_clients = info_int(info, "connected_clients")
        blocked_clients = info_int(info, "blocked_clients")

        findings: list[Finding] = []

        max_clients = t.default_max_clients
        max_clients_source = "default"
        try:
            value = await source.get_config_value("maxclients")
            if value is not None and to_int(value) > 0:
                max_clients = to_int(value)
                max_clients_source = "config"
        except UnsupportedCommandError as e:
            logger.debug("%s", e)
            findings.append(
                Finding(
                    "CONFIG GET maxclients unavailable (managed Redis restrictions) "
                    f"- using default {t.default_max_clients}"
                )
            )

        client_utilization = connected_clients * 100 / max_clients
        if client_utilization >= t.client_usage_warning_percent:
            findings.append(
                Finding(
                    f"Client usage at {client_utilization:.1f}% of maxclients - approaching limit",
                    Severity.WARNING,
                )
            )

        if blocked_clients > 0:
            findings.append(
                Finding(f"{blocked_clients:,} blocked clients detected", Severity.WARNING)
            )

        long_idle_clients = 0
        large_buffer_clients = 0
        database_distribution: Counter[str] = Counter()
        client_list_skipped = False

        if connected_clients <= t.client_list_max_parse:
            try:
                for client in await source.list_clients():
                    if to_int(client.get("idle")) > t.idle_client_seconds:
                        long_idle_clients += 1
                    if to_int(client.get("omem")) > t.large_buffer_bytes:
                        large_buffer_clients += 1
                    database_distribution[client.get("db") or "0"] += 1
            except UnsupportedCommandError as e:
                logger.debug("%s", e)
                findings.append(Finding("CLIENT LIST command unavailable"))
        else:
            client_list_skipped = True
            findings.append(
                Finding(
                    f"CLIENT LIST parsing skipped ({connected_clients:,} clients exceeds "
                    f"{t.client_list_max_parse:,} threshold)"
                )
            )

        if long_idle_clients > 0:
            findings.append(
                Finding(
                    f"{long_idle_clients:,} clients idle for more than "
                    f"{t.idle_client_seconds} seconds"
                )
            )

        if large_buffer_clients > 0:
            findings.append(
                Finding(
                    f"{large_buffer_clients:,} clients with output buffers exceeding "
                    f"{t.large_buffer_bytes // (1024 * 1024)} MB",
                    Severity.WARNING,
                )
            )

        metrics = {
            "connected_clients": connected_clients,
            "blocked_clients": blocked_clients,
            "max_clients": max_clients,
            "max_clients_source": max_clients_source,
            "client_utilization": client_utilization,
            "long_idle_clients": long_idle_clients,
            "large_buffer_clients": large_buffer_clients,
            "database_distribution": dict(database_distribution),
            "client_list_skipped": client_list_skipped,
        }

        return Section.build(self.title, metrics, findings)
