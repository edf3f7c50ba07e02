"""
Remediation advice derived from findings.

Each rule maps a case-insensitive pattern over finding messages to a
titled list of actions. Findings are visited in section order, and for
each finding the rules are tried in table order. A title is emitted at
most once.
"""

import re
from typing import Iterable

from redis_doctor.types import Recommendation, RecommendationRule, Section


def _rule(pattern: str, title: str, *actions: str) -> RecommendationRule:
    return RecommendationRule(re.compile(pattern, re.IGNORECASE), title, actions)


RULES: tuple[RecommendationRule, ...] = (
    # Memory
    _rule(
        r"fragmentation ratio .* is elevated",
        "Reduce memory fragmentation",
        "Run MEMORY PURGE (Redis 4.0+) to release allocator pages",
        "If persistent, schedule a controlled restart during a low-traffic window",
        "Consider switching to the jemalloc allocator if using libc malloc",
    ),
    _rule(
        r"memory usage at .* of maxmemory",
        "Free up memory or increase maxmemory",
        "Review keys with no TTL and add expiration where possible",
        "Check for oversized keys in the Key Pattern Analysis section",
        "If growth is expected, increase maxmemory or scale the instance",
    ),
    _rule(
        r"maxmemory is not set",
        "Set a memory limit",
        "Set maxmemory to leave headroom for fork and buffer overhead",
        "Pick a maxmemory-policy that matches the workload (allkeys-lru for caches)",
    ),
    _rule(
        r"keys have been evicted",
        "Address key evictions",
        "Evictions mean Redis is dropping data to stay within limits",
        "Increase maxmemory or reduce data volume",
        "Review the eviction policy: volatile-lru is safest for cache workloads",
    ),
    _rule(
        r"fragmentation ratio .* is critically high",
        "Critical memory fragmentation",
        "Immediate MEMORY PURGE recommended",
        "If the ratio exceeds 3.0, plan a restart: the allocator is severely fragmented",
        "Monitor after the fix to confirm it does not re-fragment quickly",
    ),
    # Performance
    _rule(
        r"hit rate .* is below optimal",
        "Improve cache hit rate",
        "Review application cache key patterns for consistency",
        "Check if TTLs are too short, causing premature expiration",
        "Verify cache warming on deployment if using lazy population",
    ),
    _rule(
        r"hit rate .* is critically low",
        "Critical cache hit rate",
        "Audit application code for cache key mismatches or typos",
        "Check if a recent deployment changed key naming conventions",
        "Consider preloading hot keys on startup",
    ),
    _rule(
        r"slow log entries .*indicates systemic slow commands",
        "Address slow commands",
        "Review the slow log table for recurring command patterns",
        "Replace O(N) commands (KEYS, SMEMBERS on large sets) with SCAN variants",
        "Check for Lua scripts that block the event loop",
    ),
    _rule(
        r"connections rejected",
        "Increase maxclients or reduce connections",
        "Increase maxclients in the Redis config if the instance has capacity",
        "Use connection pooling in application clients",
        "Audit for connection leaks (clients that never disconnect)",
    ),
    # Connections
    _rule(
        r"client usage at .* of maxclients",
        "Client pool nearing capacity",
        "Increase maxclients if the server has available file descriptors",
        "Review application connection pool sizes across all services",
        "Close idle connections (see the idle client count)",
    ),
    _rule(
        r"clients idle for more than",
        "Clean up idle connections",
        "Configure a client timeout in Redis (CONFIG SET timeout 300)",
        "Review application connection pool idle settings",
        "Idle clients consume memory and file descriptors",
    ),
    _rule(
        r"clients with output buffers exceeding",
        "Investigate large output buffers",
        "Large buffers indicate slow consumers or massive responses",
        "Check for SUBSCRIBE clients that are not reading fast enough",
        "Review commands returning large datasets (LRANGE on long lists)",
    ),
    _rule(
        r"blocked clients detected",
        "Investigate blocked clients",
        "Blocked clients are waiting on BLPOP, BRPOP or similar commands",
        "High counts may indicate stalled consumers or long-running blocking operations",
        "Check that blocking commands have appropriate timeouts",
    ),
    # Key patterns
    _rule(
        r"keys have no TTL.*memory growth risk",
        "Add TTLs to reduce memory leak risk",
        "Identify key prefixes without expiration in the Key Pattern section",
        "Add a TTL to cache keys that don't need permanent storage",
        "Use EXPIRE or SET with EX instead of plain SET for cache entries",
    ),
    # Replication
    _rule(
        r"replica .* has lag of",
        "Reduce replication lag",
        "Check network latency between master and replica",
        "Reduce write volume if the replica cannot keep up",
        "Consider increasing repl-backlog-size to avoid full resyncs",
    ),
    _rule(
        r"master link status is",
        "Fix broken replication link",
        "Check network connectivity between master and replica",
        "Review replica logs for authentication or timeout errors",
        "A full resync may be needed if the backlog has been exhausted",
    ),
    _rule(
        r"last RDB background save failed",
        "Fix RDB persistence",
        "Check disk space on the Redis server",
        "Review Redis logs for the specific save error",
        "Ensure the Redis process can write to the RDB directory",
    ),
    _rule(
        r"last AOF write failed",
        "Fix AOF persistence",
        "Check disk space and I/O performance",
        "Review the appendfsync setting (everysec suits most workloads)",
        "If the disk is full, clear space and run BGREWRITEAOF",
    ),
)


def build_recommendations(
    sections: Iterable[Section],
    rules: Iterable[RecommendationRule] = RULES,
) -> list[Recommendation]:
    """
    Match every finding against the rule table.

    Args:
        sections: Sections in report order
        rules: Rule table, tried in order for each finding

    Returns:
        Recommendations in first-match order, one per rule title
    """
    rules = tuple(rules)
    recommendations: list[Recommendation] = []
    seen: set[str] = set()

    for section in sections:
        for finding in section.findings:
            for rule in rules:
                if rule.title in seen or not rule.matches(finding.message):
                    continue
                seen.add(rule.title)
                recommendations.append(Recommendation(rule.title, rule.actions))

    return recommendations
