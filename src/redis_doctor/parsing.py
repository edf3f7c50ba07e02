"""
Lenient accessors for Redis introspection replies.

Older and managed servers omit fields, so every accessor takes a default
and never raises on absence or garbage. Values may arrive pre-parsed by
redis-py (int, float, dict) or as raw text; both forms are accepted.
"""

from typing import Any, Mapping


def parse_info_text(text: str) -> dict[str, str]:
    """
    Parse a raw INFO reply into a key/value mapping.

    redis-py already parses INFO for RedisAdapter; this serves sources
    that hold the raw text, such as captured INFO dumps and test fakes.

    Comment lines (# Section) and blank lines are skipped. Only the
    first ':' separates key from value.

    Args:
        text: Raw INFO reply

    Returns:
        Mapping of field name to raw text value
    """
    result: dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip() or line.startswith("#"):
            continue
        key, sep, value = line.partition(":")
        if not sep:
            continue
        result[key] = value
    return result


def to_int(value: Any, default: int = 0) -> int:
    """Convert a reply value to int, returning default when impossible."""
    if value is None or isinstance(value, (dict, list)):
        return default
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def to_float(value: Any, default: float = 0.0) -> float:
    """Convert a reply value to float, returning default when impossible."""
    if value is None or isinstance(value, (dict, list)):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def info_int(info: Mapping[str, Any], key: str, default: int = 0) -> int:
    return to_int(info.get(key), default)


def info_float(info: Mapping[str, Any], key: str, default: float = 0.0) -> float:
    return to_float(info.get(key), default)


def info_str(info: Mapping[str, Any], key: str, default: str = "unknown") -> str:
    value = info.get(key)
    if value is None or value == "":
        return default
    return str(value)


def info_flag(info: Mapping[str, Any], key: str) -> bool:
    """True when the field is "1" (or 1)."""
    return str(info.get(key, "0")) == "1"


def parse_record(value: Any) -> dict[str, str]:
    """
    Parse a comma-separated key=value record.

    Used for keyspace lines (keys=10,expires=2,avg_ttl=0) and replica
    lines (ip=10.0.0.2,port=6379,state=online,offset=1,lag=0).

    Args:
        value: Raw text or a mapping already parsed by redis-py

    Returns:
        Mapping of field name to text value
    """
    if isinstance(value, Mapping):
        return {str(k): str(v) for k, v in value.items()}
    if not isinstance(value, str):
        return {}
    record: dict[str, str] = {}
    for pair in value.split(","):
        key, sep, item = pair.partition("=")
        if sep:
            record[key.strip()] = item.strip()
    return record


def parse_keyspace(info: Mapping[str, Any]) -> dict[str, dict[str, int]]:
    """
    Extract per-database key counts from INFO keyspace.

    Returns:
        Mapping like {"db0": {"keys": 10, "expires": 2}}
    """
    databases: dict[str, dict[str, int]] = {}
    for name, value in info.items():
        if not name.startswith("db"):
            continue
        record = parse_record(value)
        databases[name] = {
            "keys": to_int(record.get("keys")),
            "expires": to_int(record.get("expires")),
        }
    return databases


def parse_client_line(line: str) -> dict[str, str]:
    """
    Parse one CLIENT LIST line of space-separated field=value pairs.

    For raw-text sources; RedisAdapter receives parsed client dicts
    from redis-py.

    Returns:
        Mapping of field name to text value
    """
    client: dict[str, str] = {}
    for pair in line.split(" "):
        key, sep, value = pair.partition("=")
        if sep:
            client[key] = value
    return client
