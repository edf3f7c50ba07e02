"""Replication and persistence check."""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, ClassVar

from redis_doctor.config import DEFAULT_THRESHOLDS, Thresholds
from redis_doctor.parsing import info_flag, info_int, info_str, parse_record, to_int
from redis_doctor.protocols import MetricSourceProtocol
from redis_doctor.types import Finding, Section, Severity


@dataclass
class ReplicationCheck:
    """
    Evaluate INFO replication and INFO persistence.

    Critical findings (replica not online, master link down, failed RDB
    save, failed AOF write) dominate any warnings in the same section.

    Attributes:
        thresholds: Check thresholds
        clock: Returns the current Unix time, used for time since last save
    """

    thresholds: Thresholds = DEFAULT_THRESHOLDS
    clock: Callable[[], float] = time.time

    name: ClassVar[str] = "replication"
    label: ClassVar[str] = "Replication"
    title: ClassVar[str] = "REPLICATION & PERSISTENCE"

    async def evaluate(self, source: MetricSourceProtocol) -> Section:
        replication, persistence = await asyncio.gather(
            source.get_info_section("replication"),
            source.get_info_section("persistence"),
        )

        findings: list[Finding] = []

        role = info_str(replication, "role")
        connected_replicas = info_int(replication, "connected_slaves")
        replicas = self._check_replicas(replication, connected_replicas, findings)

        if role == "slave":
            master_link_status = info_str(replication, "master_link_status")
            if master_link_status != "up":
                findings.append(
                    Finding(
                        f'Master link status is "{master_link_status}" - replication may be broken',
                        Severity.CRITICAL,
                    )
                )
            if info_flag(replication, "master_sync_in_progress"):
                findings.append(
                    Finding("Full sync with master is in progress", Severity.WARNING)
                )

        rdb_last_save_time = info_int(persistence, "rdb_last_save_time")
        rdb_last_save_status = info_str(persistence, "rdb_last_bgsave_status")
        aof_enabled = info_flag(persistence, "aof_enabled")
        aof_last_write_status = info_str(persistence, "aof_last_write_status")
        loading = info_flag(persistence, "loading")

        time_since_last_save = 0
        if rdb_last_save_time > 0:
            time_since_last_save = int(self.clock()) - rdb_last_save_time

        if rdb_last_save_status == "err":
            findings.append(Finding("Last RDB background save failed", Severity.CRITICAL))

        if aof_enabled and aof_last_write_status == "err":
            findings.append(Finding("Last AOF write failed", Severity.CRITICAL))

        if loading:
            findings.append(
                Finding("Redis is currently loading data into memory", Severity.WARNING)
            )

        metrics = {
            "role": role,
            "connected_replicas": connected_replicas,
            "replicas": replicas,
            "rdb_last_save_time": rdb_last_save_time,
            "rdb_changes_since_last_save": info_int(persistence, "rdb_changes_since_last_save"),
            "rdb_last_save_status": rdb_last_save_status,
            "time_since_last_save": time_since_last_save,
            "aof_enabled": aof_enabled,
            "aof_last_write_status": aof_last_write_status,
            "loading": loading,
        }

        return Section.build(self.title, metrics, findings)

    def _check_replicas(
        self,
        replication: dict[str, Any],
        connected_replicas: int,
        findings: list[Finding],
    ) -> list[dict[str, Any]]:
        """Parse slaveN records, appending lag and state findings."""
        replicas: list[dict[str, Any]] = []
        for index in range(connected_replicas):
            record = parse_record(replication.get(f"slave{index}"))
            if not record:
                continue

            ip = record.get("ip", "unknown")
            port = record.get("port", "unknown")
            state = record.get("state", "unknown")
            lag = to_int(record.get("lag"))
            replicas.append(
                {
                    "ip": ip,
                    "port": port,
                    "state": state,
                    "offset": to_int(record.get("offset")),
                    "lag": lag,
                }
            )

            if "lag" in record and lag > self.thresholds.replica_lag_warning_seconds:
                findings.append(
                    Finding(
                        f"Replica {ip}:{port} has lag of {lag} seconds",
                        Severity.WARNING,
                    )
                )
            if state != "online":
                findings.append(
                    Finding(
                        f"Replica {ip}:{port} is in state: {state}",
                        Severity.CRITICAL,
                    )
                )
        return replicas
