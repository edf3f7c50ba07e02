"""
Health checks.

Each check is an independent implementation of CheckProtocol that turns
read-only Redis replies into a Section:

- MemoryCheck: Utilization, fragmentation, evictions
- PerformanceCheck: Hit rate, rejected connections, slow log
- ConnectionCheck: Client utilization, blocked/idle/large-buffer clients
- KeyPatternCheck: SCAN-based key sampling and aggregation
- ReplicationCheck: Replica state, master link, RDB/AOF persistence
"""

from redis_doctor.checks.connections import ConnectionCheck
from redis_doctor.checks.keys import KeyPatternCheck, KeySampleAggregator, key_prefix
from redis_doctor.checks.memory import MemoryCheck
from redis_doctor.checks.performance import PerformanceCheck, format_slow_command
from redis_doctor.checks.replication import ReplicationCheck

__all__ = [
    "MemoryCheck",
    "PerformanceCheck",
    "ConnectionCheck",
    "KeyPatternCheck",
    "KeySampleAggregator",
    "ReplicationCheck",
    "format_slow_command",
    "key_prefix",
]
