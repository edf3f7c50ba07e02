"""
Tests for the memory, performance, connection and replication checks.

Each check runs against FakeMetricSource with INFO overrides; assertions
cover derived metrics, finding texts and the section status.
"""

import pytest

from conftest import FakeMetricSource
from redis_doctor.checks import (
    ConnectionCheck,
    MemoryCheck,
    PerformanceCheck,
    ReplicationCheck,
    format_slow_command,
)
from redis_doctor.config import Thresholds
from redis_doctor.types import Severity


def memory_info(used: int, maxmemory: int, fragmentation: float = 1.1, evicted: int = 0) -> str:
    return (
        f"used_memory:{used}\nused_memory_human:{used}B\nmaxmemory:{maxmemory}\n"
        f"mem_fragmentation_ratio:{fragmentation}\nevicted_keys:{evicted}\n"
        "maxmemory_policy:noeviction\n"
    )


# =============================================================================
# Memory
# =============================================================================


class TestMemoryCheck:
    """Tests for MemoryCheck."""

    @pytest.mark.asyncio
    async def test_healthy_memory_is_ok(self, source):
        """Low utilization and fragmentation produce no findings."""
        section = await MemoryCheck().evaluate(source)

        assert section.status == Severity.OK
        assert section.findings == ()
        assert section.title == "MEMORY ANALYSIS"
        assert section.metrics["memory_utilization"] == 10.0
        assert section.metrics["used_memory_human"] == "1.00M"
        assert section.metrics["lua_memory"] == 31744

    @pytest.mark.asyncio
    async def test_utilization_exactly_at_critical_threshold(self):
        """900/1000 bytes is exactly 90%, which is critical (inclusive)."""
        source = FakeMetricSource(info={"memory": memory_info(900, 1000)})

        section = await MemoryCheck().evaluate(source)

        assert section.status == Severity.CRITICAL
        assert section.metrics["memory_utilization"] == 90.0
        assert section.findings[0].message == (
            "Memory usage at 90.0% of maxmemory - critically high"
        )

    @pytest.mark.asyncio
    async def test_utilization_warning(self):
        """75% is a warning."""
        source = FakeMetricSource(info={"memory": memory_info(750, 1000)})

        section = await MemoryCheck().evaluate(source)

        assert section.status == Severity.WARNING
        assert "approaching limit" in section.findings[0].message

    @pytest.mark.asyncio
    async def test_maxmemory_unset_is_warning(self):
        """maxmemory 0 means unlimited and yields a warning, utilization 0."""
        source = FakeMetricSource(info={"memory": memory_info(5000, 0)})

        section = await MemoryCheck().evaluate(source)

        assert section.status == Severity.WARNING
        assert section.metrics["memory_utilization"] == 0.0
        assert section.findings[0].message.startswith("maxmemory is not set")

    @pytest.mark.asyncio
    async def test_fragmentation_thresholds(self):
        """Fragmentation >= 2.0 is critical, >= 1.5 a warning."""
        critical = FakeMetricSource(info={"memory": memory_info(100, 1000, fragmentation=2.0)})
        warning = FakeMetricSource(info={"memory": memory_info(100, 1000, fragmentation=1.5)})

        critical_section = await MemoryCheck().evaluate(critical)
        warning_section = await MemoryCheck().evaluate(warning)

        assert critical_section.status == Severity.CRITICAL
        assert "is critically high" in critical_section.findings[0].message
        assert warning_section.status == Severity.WARNING
        assert "is elevated" in warning_section.findings[0].message

    @pytest.mark.asyncio
    async def test_evictions_are_warning(self):
        source = FakeMetricSource(info={"memory": memory_info(100, 1000, evicted=1234)})

        section = await MemoryCheck().evaluate(source)

        assert section.status == Severity.WARNING
        assert section.findings[0].message == (
            "1,234 keys have been evicted - memory pressure detected"
        )

    @pytest.mark.asyncio
    async def test_custom_thresholds(self):
        """Thresholds are injected, not global."""
        source = FakeMetricSource(info={"memory": memory_info(500, 1000)})
        thresholds = Thresholds(memory_usage_warning_percent=40.0)

        section = await MemoryCheck(thresholds).evaluate(source)

        assert section.status == Severity.WARNING

    @pytest.mark.asyncio
    async def test_missing_fields_default_to_zero(self):
        """A sparse INFO reply does not raise."""
        source = FakeMetricSource(info={"memory": "# Memory\n"})

        section = await MemoryCheck().evaluate(source)

        assert section.metrics["used_memory"] == 0
        assert section.metrics["used_memory_human"] == "N/A"
        assert section.metrics["fragmentation_ratio"] == 0.0


# =============================================================================
# Performance
# =============================================================================


class TestFormatSlowCommand:
    """Tests for slow log command shortening."""

    def test_payload_arguments_are_elided(self):
        assert format_slow_command(["SET", "user:1", "a-very-large-value"]) == (
            "SET user:1 [+1 args]"
        )

    def test_string_form_is_split(self):
        assert format_slow_command("HGETALL session:42") == "HGETALL session:42"

    def test_multi_key_commands_show_three_keys(self):
        assert format_slow_command(["DEL", "a", "b", "c", "d", "e"]) == "DEL a b c [+2 args]"

    def test_eval_hides_script(self):
        assert format_slow_command(["EVAL", "return 1", "0"]) == "EVAL [+2 args]"

    def test_bytes_and_empty(self):
        assert format_slow_command(b"GET k") == "GET k"
        assert format_slow_command("") == ""


class TestPerformanceCheck:
    """Tests for PerformanceCheck."""

    @pytest.mark.asyncio
    async def test_healthy_performance_is_ok(self, source):
        section = await PerformanceCheck().evaluate(source)

        assert section.status == Severity.OK
        assert section.metrics["hit_rate"] == 95.0
        assert section.metrics["ops_per_second"] == 1200
        assert section.metrics["redis_version"] == "7.2.4"
        assert section.metrics["uptime_seconds"] == 90061

    @pytest.mark.asyncio
    async def test_low_hit_rate_is_critical(self):
        source = FakeMetricSource(info={"stats": "keyspace_hits:600\nkeyspace_misses:400\n"})

        section = await PerformanceCheck().evaluate(source)

        assert section.status == Severity.CRITICAL
        assert section.findings[0].message == (
            "Hit rate 60.0% is critically low (< 70%) - review cache strategy"
        )

    @pytest.mark.asyncio
    async def test_below_optimal_hit_rate_is_warning(self):
        source = FakeMetricSource(info={"stats": "keyspace_hits:800\nkeyspace_misses:200\n"})

        section = await PerformanceCheck().evaluate(source)

        assert section.status == Severity.WARNING
        assert "is below optimal (< 90%)" in section.findings[0].message

    @pytest.mark.asyncio
    async def test_hit_rate_ignored_with_few_lookups(self):
        """100 lookups or fewer are not enough to judge the hit rate."""
        source = FakeMetricSource(info={"stats": "keyspace_hits:0\nkeyspace_misses:100\n"})

        section = await PerformanceCheck().evaluate(source)

        assert section.status == Severity.OK
        assert section.metrics["hit_rate"] == 0.0

    @pytest.mark.asyncio
    async def test_rejected_connections_warning(self):
        source = FakeMetricSource(info={"stats": "rejected_connections:7\n"})

        section = await PerformanceCheck().evaluate(source)

        assert section.status == Severity.WARNING
        assert section.findings[0].message == (
            "7 connections rejected - maxclients may be too low"
        )

    @pytest.mark.asyncio
    async def test_slow_log_entries_and_systemic_warning(self):
        entries = [
            {"id": 9, "start_time": 1700000000, "duration": 25000, "command": "KEYS *"},
            {"id": 8, "start_time": 1699999990, "duration": 12000, "command": "SET k v"},
        ]
        source = FakeMetricSource(slow_entries=entries, slow_count=101)

        section = await PerformanceCheck().evaluate(source)

        assert section.status == Severity.WARNING
        assert section.metrics["slow_log_length"] == 101
        assert section.metrics["slow_log_entries"][0] == {
            "id": 9,
            "start_time": 1700000000,
            "duration_us": 25000,
            "command": "KEYS *",
        }
        assert section.metrics["slow_log_entries"][1]["command"] == "SET k [+1 args]"
        assert "indicates systemic slow commands" in section.findings[0].message

    @pytest.mark.asyncio
    async def test_restricted_slowlog_is_informational(self):
        source = FakeMetricSource(restricted=("SLOWLOG",))

        section = await PerformanceCheck().evaluate(source)

        assert section.status == Severity.OK
        assert section.metrics["slow_log_entries"] == []
        assert section.findings[0].severity == Severity.OK
        assert "SLOWLOG command unavailable" in section.findings[0].message


# =============================================================================
# Connections
# =============================================================================


class TestConnectionCheck:
    """Tests for ConnectionCheck."""

    @pytest.mark.asyncio
    async def test_healthy_connections_are_ok(self, source):
        section = await ConnectionCheck().evaluate(source)

        assert section.status == Severity.OK
        assert section.metrics["max_clients"] == 10000
        assert section.metrics["max_clients_source"] == "config"
        assert section.metrics["database_distribution"] == {"0": 2}
        assert section.metrics["client_list_skipped"] is False

    @pytest.mark.asyncio
    async def test_client_usage_warning(self):
        source = FakeMetricSource(
            info={"clients": "connected_clients:85\nblocked_clients:0\n"},
            config={"maxclients": "100"},
        )

        section = await ConnectionCheck().evaluate(source)

        assert section.status == Severity.WARNING
        assert section.metrics["client_utilization"] == 85.0
        assert section.findings[0].message == (
            "Client usage at 85.0% of maxclients - approaching limit"
        )

    @pytest.mark.asyncio
    async def test_restricted_config_falls_back_to_default(self):
        """CONFIG restricted: informational finding and maxclients 10000."""
        source = FakeMetricSource(restricted=("CONFIG",))

        section = await ConnectionCheck().evaluate(source)

        assert section.status == Severity.OK
        assert section.metrics["max_clients"] == 10000
        assert section.metrics["max_clients_source"] == "default"
        assert "CONFIG GET maxclients unavailable" in section.findings[0].message

    @pytest.mark.asyncio
    async def test_blocked_clients_warning(self):
        source = FakeMetricSource(info={"clients": "connected_clients:10\nblocked_clients:3\n"})

        section = await ConnectionCheck().evaluate(source)

        assert section.status == Severity.WARNING
        assert section.findings[0].message == "3 blocked clients detected"

    @pytest.mark.asyncio
    async def test_idle_and_large_buffer_clients(self):
        lines = [
            "id=1 addr=a:1 idle=301 db=0 omem=0",
            "id=2 addr=a:2 idle=10 db=1 omem=2097152",
            "id=3 addr=a:3 idle=300 db=1 omem=1048576",
        ]
        source = FakeMetricSource(client_lines=lines)

        section = await ConnectionCheck().evaluate(source)

        assert section.metrics["long_idle_clients"] == 1
        assert section.metrics["large_buffer_clients"] == 1
        assert section.metrics["database_distribution"] == {"0": 1, "1": 2}
        messages = [f.message for f in section.findings]
        assert "1 clients idle for more than 300 seconds" in messages
        assert "1 clients with output buffers exceeding 1 MB" in messages
        # Idle clients are informational, large buffers raise a warning
        assert section.status == Severity.WARNING

    @pytest.mark.asyncio
    async def test_client_list_skipped_above_limit(self):
        source = FakeMetricSource(info={"clients": "connected_clients:5001\n"})

        section = await ConnectionCheck().evaluate(source)

        assert section.metrics["client_list_skipped"] is True
        assert any("CLIENT LIST parsing skipped" in f.message for f in section.findings)

    @pytest.mark.asyncio
    async def test_restricted_client_list_is_informational(self):
        source = FakeMetricSource(restricted=("CLIENT",))

        section = await ConnectionCheck().evaluate(source)

        assert section.status == Severity.OK
        assert section.findings[0].message == "CLIENT LIST command unavailable"


# =============================================================================
# Replication
# =============================================================================


class TestReplicationCheck:
    """Tests for ReplicationCheck."""

    @pytest.mark.asyncio
    async def test_healthy_master_is_ok(self, source):
        check = ReplicationCheck(clock=lambda: 1700000100.0)

        section = await check.evaluate(source)

        assert section.status == Severity.OK
        assert section.metrics["role"] == "master"
        assert section.metrics["replicas"] == []
        assert section.metrics["time_since_last_save"] == 100

    @pytest.mark.asyncio
    async def test_replica_not_online_is_critical(self):
        """A lagging replica in wait_bgsave: critical dominates the lag warning."""
        source = FakeMetricSource(
            info={
                "replication": (
                    "role:master\nconnected_slaves:1\n"
                    "slave0:ip=10.0.0.2,port=6380,state=wait_bgsave,offset=100,lag=15\n"
                )
            }
        )

        section = await ReplicationCheck().evaluate(source)

        assert section.status == Severity.CRITICAL
        messages = [f.message for f in section.findings]
        assert "Replica 10.0.0.2:6380 has lag of 15 seconds" in messages
        assert "Replica 10.0.0.2:6380 is in state: wait_bgsave" in messages
        assert section.metrics["replicas"][0] == {
            "ip": "10.0.0.2",
            "port": "6380",
            "state": "wait_bgsave",
            "offset": 100,
            "lag": 15,
        }

    @pytest.mark.asyncio
    async def test_replica_records_parsed_by_client(self):
        """redis-py pre-parses slaveN lines into dicts."""
        source = FakeMetricSource(
            info={
                "replication": {
                    "role": "master",
                    "connected_slaves": 1,
                    "slave0": {"ip": "10.0.0.3", "port": 6379, "state": "online", "offset": 5, "lag": 0},
                }
            }
        )

        section = await ReplicationCheck().evaluate(source)

        assert section.status == Severity.OK
        assert section.metrics["replicas"][0]["ip"] == "10.0.0.3"

    @pytest.mark.asyncio
    async def test_master_link_down_is_critical(self):
        source = FakeMetricSource(
            info={
                "replication": (
                    "role:slave\nmaster_link_status:down\nmaster_sync_in_progress:1\n"
                    "connected_slaves:0\n"
                )
            }
        )

        section = await ReplicationCheck().evaluate(source)

        assert section.status == Severity.CRITICAL
        messages = [f.message for f in section.findings]
        assert 'Master link status is "down" - replication may be broken' in messages
        assert "Full sync with master is in progress" in messages

    @pytest.mark.asyncio
    async def test_persistence_failures(self):
        source = FakeMetricSource(
            info={
                "persistence": (
                    "loading:1\nrdb_last_bgsave_status:err\naof_enabled:1\n"
                    "aof_last_write_status:err\n"
                )
            }
        )

        section = await ReplicationCheck().evaluate(source)

        assert section.status == Severity.CRITICAL
        messages = [f.message for f in section.findings]
        assert messages == [
            "Last RDB background save failed",
            "Last AOF write failed",
            "Redis is currently loading data into memory",
        ]
        assert section.metrics["time_since_last_save"] == 0
