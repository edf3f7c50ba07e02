"""
Configuration for Redis diagnostics.

Three layers:
- Thresholds: Immutable check thresholds, passed explicitly into each
  check at construction so checks can be tested with overrides.
- Settings: Environment-based runtime settings (REDIS_DOCTOR_ prefix).
- DoctorConfig: Optional .redis-doctor.yaml with named connections and
  option defaults, discovered by walking up from the working directory.

Example .redis-doctor.yaml:

    connections:
      prod: rediss://admin@prod-cache:6380
      local: redis://localhost:6379
    defaults:
      scan_count: 5000
      insecure: true
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Thresholds:
    """
    Check thresholds.

    Percent values are 0-100. Comparisons are inclusive for the
    "greater or equal" thresholds and strict for the "less than" ones,
    matching each attribute's description.

    Attributes:
        fragmentation_warning: Fragmentation ratio >= this is a warning
        fragmentation_critical: Fragmentation ratio >= this is critical
        memory_usage_warning_percent: used/maxmemory >= this is a warning
        memory_usage_critical_percent: used/maxmemory >= this is critical
        hit_rate_warning_percent: Hit rate < this is a warning
        hit_rate_critical_percent: Hit rate < this is critical
        hit_rate_min_operations: Hit rate only evaluated above this many lookups
        client_usage_warning_percent: connected/maxclients >= this is a warning
        idle_client_seconds: Clients idle longer than this are reported
        client_list_max_parse: CLIENT LIST skipped above this many clients
        large_buffer_bytes: Output buffer above this is "large"
        default_max_clients: maxclients assumed when CONFIG is restricted
        slow_log_fetch_limit: SLOWLOG GET entry count
        slow_log_systemic_count: SLOWLOG LEN above this is a warning
        replica_lag_warning_seconds: Replica lag above this is a warning
        no_ttl_warning_percent: Sampled keys without TTL >= this is a warning
        scan_page_size: SCAN COUNT hint per cursor call
        pipeline_batch_size: Keys per pipelined metadata batch
        top_keys_count: Largest keys retained
        top_prefixes_count: Prefix groups retained
    """

    fragmentation_warning: float = 1.5
    fragmentation_critical: float = 2.0
    memory_usage_warning_percent: float = 75.0
    memory_usage_critical_percent: float = 90.0
    hit_rate_warning_percent: float = 90.0
    hit_rate_critical_percent: float = 70.0
    hit_rate_min_operations: int = 100
    client_usage_warning_percent: float = 80.0
    idle_client_seconds: int = 300
    client_list_max_parse: int = 5000
    large_buffer_bytes: int = 1024 * 1024
    default_max_clients: int = 10000
    slow_log_fetch_limit: int = 20
    slow_log_systemic_count: int = 100
    replica_lag_warning_seconds: int = 10
    no_ttl_warning_percent: float = 50.0
    scan_page_size: int = 100
    pipeline_batch_size: int = 50
    top_keys_count: int = 20
    top_prefixes_count: int = 15


DEFAULT_THRESHOLDS = Thresholds()


class Settings(BaseSettings):
    """Runtime settings.

    All settings can be overridden via environment variables with
    REDIS_DOCTOR_ prefix. For example:
        REDIS_DOCTOR_COMMAND_TIMEOUT=10
        REDIS_DOCTOR_SAMPLE_SIZE=5000
    """

    # Seconds allowed per command round trip
    command_timeout: float = 5.0
    # Seconds allowed to establish the connection
    connect_timeout: float = 10.0

    # Keys sampled by the key pattern check
    sample_size: int = 1000

    config_filename: str = ".redis-doctor.yaml"

    model_config = {"env_prefix": "REDIS_DOCTOR_"}


class ConnectionDefaults(BaseModel):
    """Option defaults from the config file."""

    model_config = ConfigDict(extra="ignore")

    scan_count: int | None = None
    no_scan: bool = False
    insecure: bool = False


class DoctorConfig(BaseModel):
    """Parsed .redis-doctor.yaml."""

    model_config = ConfigDict(extra="ignore")

    connections: dict[str, str] = Field(default_factory=dict)
    defaults: ConnectionDefaults = Field(default_factory=ConnectionDefaults)


def find_config_file(filename: str, start: Path | None = None) -> Path | None:
    """
    Search for a config file from start (default: cwd) up to the filesystem root.

    Args:
        filename: Config file name to look for
        start: Directory to start from

    Returns:
        Path to the first match, or None
    """
    directory = (start or Path.cwd()).resolve()
    for candidate_dir in (directory, *directory.parents):
        candidate = candidate_dir / filename
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path | None) -> DoctorConfig:
    """
    Load and validate a config file.

    A missing or invalid file yields an empty config; the problem is logged.

    Args:
        path: Config file path, or None

    Returns:
        Validated DoctorConfig
    """
    if path is None:
        return DoctorConfig()
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return DoctorConfig.model_validate(data)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        logger.warning("Ignoring config file %s: %s", path, e)
        return DoctorConfig()


def resolve_connection(target: str, config: DoctorConfig) -> str | None:
    """
    Resolve a URL-or-name into a Redis URL.

    Args:
        target: redis:// or rediss:// URL, or a named connection
        config: Loaded config

    Returns:
        Redis URL, or None when the name is unknown
    """
    if target.startswith(("redis://", "rediss://")):
        return target
    return config.connections.get(target)
