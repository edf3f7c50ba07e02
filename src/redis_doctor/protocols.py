"""
Protocol definitions for Redis diagnostics.

- MetricSourceProtocol: Read-only command capability the checks consume.
  RedisAdapter implements it over redis.asyncio; tests use an in-memory fake.
- CheckProtocol: Shared interface of the five checks ("produce a Section
  given a metric source"). Checks are independent implementations, not
  a class hierarchy.
"""

from typing import Any, Protocol, runtime_checkable

from redis_doctor.types import KeyMetadata, Section


@runtime_checkable
class MetricSourceProtocol(Protocol):
    """
    Protocol for the read-only metric source.

    Every method may fail independently. Restricted commands raise
    UnsupportedCommandError; connection problems raise
    ConnectionFailedError.

    Attributes:
        address: Display address of the server (host:port)
    """

    address: str

    async def get_info_section(self, section: str) -> dict[str, Any]:
        """Return one INFO section as a field mapping."""
        ...

    async def scan_cursor(self, cursor: int, page_size: int) -> tuple[int, list[str]]:
        """Run one SCAN step. A returned cursor of 0 means exhaustion."""
        ...

    async def pipeline_fetch(self, keys: list[str]) -> list[KeyMetadata]:
        """
        Fetch TYPE, MEMORY USAGE, TTL and OBJECT ENCODING for each key.

        Returns one KeyMetadata per key, in submission order. Entries whose
        replies failed carry lenient defaults instead of raising.
        """
        ...

    async def list_clients(self) -> list[dict[str, str]]:
        """Return CLIENT LIST records."""
        ...

    async def get_config_value(self, name: str) -> str | None:
        """Return a CONFIG GET value, or None if the parameter is absent."""
        ...

    async def get_slow_entries(self, limit: int) -> list[dict[str, Any]]:
        """Return up to limit SLOWLOG GET entries."""
        ...

    async def get_slow_count(self) -> int:
        """Return SLOWLOG LEN."""
        ...

    async def ping(self) -> None:
        """Raise if the server does not answer PING."""
        ...

    async def reconnect(self) -> None:
        """Drop and re-establish the connection."""
        ...

    async def close(self) -> None:
        """Release the connection."""
        ...


@runtime_checkable
class CheckProtocol(Protocol):
    """
    Protocol for health checks.

    Attributes:
        name: Section key in the report (e.g., "memory")
        label: Short label used in failure messages (e.g., "Memory")
        title: Section title (e.g., "MEMORY ANALYSIS")
    """

    name: str
    label: str
    title: str

    async def evaluate(self, source: MetricSourceProtocol) -> Section:
        """
        Run the check.

        Raises on failure; the analyzer converts the exception into a
        critical section.
        """
        ...
