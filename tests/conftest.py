"""
Shared fixtures: an in-memory metric source for driving checks without Redis.

FakeMetricSource implements MetricSourceProtocol. INFO sections are given
as raw INFO text (parsed with parse_info_text) or as mappings, keys as a
name -> KeyMetadata mapping iterated in insertion order by SCAN.
"""

from typing import Any

import pytest

from redis_doctor.exceptions import UnsupportedCommandError
from redis_doctor.parsing import parse_client_line, parse_info_text
from redis_doctor.types import KeyMetadata

HEALTHY_INFO = {
    "server": """# Server
redis_version:7.2.4
redis_mode:standalone
uptime_in_seconds:90061
""",
    "memory": """# Memory
used_memory:1048576
used_memory_human:1.00M
used_memory_peak:2097152
used_memory_peak_human:2.00M
used_memory_overhead:524288
used_memory_dataset:524288
used_memory_lua:31744
maxmemory:10485760
maxmemory_policy:allkeys-lru
mem_fragmentation_ratio:1.10
evicted_keys:0
""",
    "stats": """# Stats
total_commands_processed:150000
instantaneous_ops_per_sec:1200
total_net_input_bytes:4096000
total_net_output_bytes:8192000
rejected_connections:0
evicted_keys:0
keyspace_hits:9500
keyspace_misses:500
""",
    "clients": """# Clients
connected_clients:10
blocked_clients:0
""",
    "replication": """# Replication
role:master
connected_slaves:0
""",
    "persistence": """# Persistence
loading:0
rdb_changes_since_last_save:12
rdb_last_save_time:1700000000
rdb_last_bgsave_status:ok
aof_enabled:0
aof_last_write_status:ok
""",
    "keyspace": "# Keyspace\n",
}

HEALTHY_CLIENTS = [
    "id=3 addr=10.0.0.5:52100 fd=8 name= age=120 idle=0 flags=N db=0 omem=0 cmd=client|list",
    "id=4 addr=10.0.0.6:52101 fd=9 name=worker age=600 idle=5 flags=N db=0 omem=0 cmd=get",
]


class FakeMetricSource:
    """In-memory MetricSourceProtocol implementation."""

    def __init__(
        self,
        info: dict[str, Any] | None = None,
        keys: dict[str, KeyMetadata] | None = None,
        client_lines: list[str] | None = None,
        config: dict[str, str] | None = None,
        slow_entries: list[dict[str, Any]] | None = None,
        slow_count: int = 0,
        restricted: tuple[str, ...] = (),
    ):
        self.address = "fake-redis:6379"
        sections = {**HEALTHY_INFO, **(info or {})}
        self.info = {
            name: parse_info_text(value) if isinstance(value, str) else dict(value)
            for name, value in sections.items()
        }
        self.keys = dict(keys or {})
        if keys is not None and "keyspace" not in (info or {}):
            expiring = sum(1 for m in self.keys.values() if m.ttl_seconds not in (None, -1))
            self.info["keyspace"] = {"db0": f"keys={len(self.keys)},expires={expiring},avg_ttl=0"}
        self.client_lines = HEALTHY_CLIENTS if client_lines is None else client_lines
        self.config = {"maxclients": "10000"} if config is None else config
        self.slow_entries = slow_entries or []
        self.slow_count = slow_count
        self.restricted = restricted

        # Failure injection
        self.failing_sections: dict[str, Exception] = {}
        self.ping_failures = 0
        self.reconnect_error: Exception | None = None

        # Call tracking
        self.info_calls: list[str] = []
        self.scan_calls: list[tuple[int, int]] = []
        self.pipeline_batches: list[list[str]] = []
        self.ping_calls = 0
        self.reconnect_calls = 0
        self.closed = False

    async def get_info_section(self, section: str) -> dict[str, Any]:
        self.info_calls.append(section)
        if section in self.failing_sections:
            raise self.failing_sections[section]
        return dict(self.info.get(section, {}))

    async def scan_cursor(self, cursor: int, page_size: int) -> tuple[int, list[str]]:
        self.scan_calls.append((cursor, page_size))
        names = list(self.keys)
        page = names[cursor : cursor + page_size]
        next_cursor = cursor + page_size
        return (0 if next_cursor >= len(names) else next_cursor), page

    async def pipeline_fetch(self, keys: list[str]) -> list[KeyMetadata]:
        self.pipeline_batches.append(list(keys))
        return [self.keys.get(k, KeyMetadata()) for k in keys]

    async def list_clients(self) -> list[dict[str, str]]:
        if "CLIENT" in self.restricted:
            raise UnsupportedCommandError("CLIENT LIST", "ERR unknown command 'CLIENT'")
        return [parse_client_line(line) for line in self.client_lines]

    async def get_config_value(self, name: str) -> str | None:
        if "CONFIG" in self.restricted:
            raise UnsupportedCommandError("CONFIG GET", "ERR unknown command 'CONFIG'")
        return self.config.get(name)

    async def get_slow_entries(self, limit: int) -> list[dict[str, Any]]:
        if "SLOWLOG" in self.restricted:
            raise UnsupportedCommandError("SLOWLOG GET", "ERR unknown command 'SLOWLOG'")
        return self.slow_entries[:limit]

    async def get_slow_count(self) -> int:
        if "SLOWLOG" in self.restricted:
            raise UnsupportedCommandError("SLOWLOG LEN", "ERR unknown command 'SLOWLOG'")
        return self.slow_count

    async def ping(self) -> None:
        self.ping_calls += 1
        if self.ping_failures > 0:
            self.ping_failures -= 1
            raise ConnectionError("Connection closed by server")

    async def reconnect(self) -> None:
        self.reconnect_calls += 1
        if self.reconnect_error is not None:
            raise self.reconnect_error

    async def close(self) -> None:
        self.closed = True


def make_keys(
    count: int,
    prefix: str = "user",
    key_type: str = "string",
    size_bytes: int = 64,
    ttl_seconds: int | None = -1,
) -> dict[str, KeyMetadata]:
    """Build count keys named prefix:N with identical metadata."""
    return {
        f"{prefix}:{i}": KeyMetadata(
            type=key_type,
            size_bytes=size_bytes,
            ttl_seconds=ttl_seconds,
            encoding="embstr",
        )
        for i in range(count)
    }


@pytest.fixture
def source():
    """Healthy server with an empty keyspace."""
    return FakeMetricSource()
