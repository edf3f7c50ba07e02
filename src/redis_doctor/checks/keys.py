"""
Key pattern check: production-safe keyspace sampling.

The check walks the keyspace with SCAN (never KEYS), fetches per-key
metadata in pipelined batches and streams each batch into bounded
aggregates:

- type distribution with running byte totals
- encoding distribution
- TTL distribution over fixed, exhaustive buckets
- prefix groups (namespace before the first ':')
- top-N largest keys, held in a bounded heap

Only the sampled identifiers (O(sample_size)) are held during
processing. Afterwards only the top-N heap and prefix totals remain.
"""

import heapq
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, ClassVar

from redis_doctor.config import DEFAULT_THRESHOLDS, Thresholds
from redis_doctor.parsing import parse_keyspace
from redis_doctor.protocols import MetricSourceProtocol
from redis_doctor.types import (
    Finding,
    KeyMetadata,
    PrefixGroup,
    SampledKey,
    Section,
    Severity,
    TTLBucket,
)

logger = logging.getLogger(__name__)

NAMESPACE_SEPARATOR = ":"


def key_prefix(key: str) -> str:
    """
    Derive the grouping prefix of a key.

    "user:123:profile" -> "user:*". Keys without a separator, or starting
    with one, group under themselves.
    """
    index = key.find(NAMESPACE_SEPARATOR)
    if index > 0:
        return f"{key[:index]}{NAMESPACE_SEPARATOR}*"
    return key


class KeySampleAggregator:
    """
    Streaming aggregation of sampled key metadata.

    Feed keys with add() in scan order, then read the bounded results.
    Ties in size keep the key encountered first.

    Example:
        aggregator = KeySampleAggregator(top_keys=20, top_prefixes=15)
        for key, meta in zip(batch, await source.pipeline_fetch(batch)):
            aggregator.add(key, meta)
        largest = aggregator.top_keys()
    """

    def __init__(self, top_keys: int = 20, top_prefixes: int = 15) -> None:
        self.top_keys_limit = top_keys
        self.top_prefixes_limit = top_prefixes

        self.sampled_count = 0
        self.type_distribution: dict[str, dict[str, int]] = {}
        self.encoding_distribution: Counter[str] = Counter()
        self.ttl_distribution: dict[TTLBucket, int] = {bucket: 0 for bucket in TTLBucket}

        self._prefixes: dict[str, PrefixGroup] = {}
        # Min-heap of (size, -sequence, key); the root is the first to evict
        self._largest: list[tuple[int, int, SampledKey]] = []

    def add(self, key: str, meta: KeyMetadata) -> None:
        """Fold one key into the aggregates."""
        sequence = self.sampled_count
        self.sampled_count += 1

        type_totals = self.type_distribution.setdefault(
            meta.type, {"count": 0, "total_bytes": 0}
        )
        type_totals["count"] += 1
        type_totals["total_bytes"] += meta.size_bytes

        self.encoding_distribution[meta.encoding] += 1
        self.ttl_distribution[TTLBucket.for_ttl(meta.ttl_seconds)] += 1

        prefix = key_prefix(key)
        group = self._prefixes.get(prefix)
        if group is None:
            group = self._prefixes[prefix] = PrefixGroup(prefix=prefix)
        group.key_count += 1
        group.total_bytes += meta.size_bytes

        entry = (meta.size_bytes, -sequence, SampledKey(key, meta.type, meta.size_bytes))
        if len(self._largest) < self.top_keys_limit:
            heapq.heappush(self._largest, entry)
        elif entry[:2] > self._largest[0][:2]:
            heapq.heapreplace(self._largest, entry)

    def top_keys(self) -> list[SampledKey]:
        """Largest keys, descending by size, ties in encounter order."""
        ordered = sorted(self._largest, key=lambda e: (-e[0], -e[1]))
        return [sampled for _, _, sampled in ordered]

    def top_prefixes(self) -> list[PrefixGroup]:
        """Prefix groups descending by total bytes, ties in encounter order."""
        groups = sorted(self._prefixes.values(), key=lambda g: -g.total_bytes)
        return groups[: self.top_prefixes_limit]

    @property
    def no_ttl_percent(self) -> float:
        if self.sampled_count == 0:
            return 0.0
        return self.ttl_distribution[TTLBucket.NO_EXPIRY] * 100 / self.sampled_count


@dataclass
class KeyPatternCheck:
    """
    Sample the keyspace and summarize key types, sizes, TTLs and prefixes.

    Attributes:
        thresholds: Check thresholds (page, batch and top-N sizes included)
        sample_size: Maximum number of keys to sample
    """

    thresholds: Thresholds = DEFAULT_THRESHOLDS
    sample_size: int = 1000

    name: ClassVar[str] = "key_patterns"
    label: ClassVar[str] = "Key pattern"
    title: ClassVar[str] = "KEY PATTERN ANALYSIS"

    async def evaluate(self, source: MetricSourceProtocol) -> Section:
        t = self.thresholds
        keyspace = await source.get_info_section("keyspace")
        databases = parse_keyspace(keyspace)
        total_keys = sum(db["keys"] for db in databases.values())
        total_expiring = sum(db["expires"] for db in databases.values())

        if total_keys == 0:
            return Section.build(
                self.title,
                {"total_keys": 0, "databases": databases},
                [Finding("No keys found in this Redis instance")],
            )

        sampled = await self._sample_identifiers(source)
        logger.debug("Sampled %d of %d keys", len(sampled), total_keys)

        aggregator = KeySampleAggregator(
            top_keys=t.top_keys_count,
            top_prefixes=t.top_prefixes_count,
        )
        for start in range(0, len(sampled), t.pipeline_batch_size):
            batch = sampled[start : start + t.pipeline_batch_size]
            metadata = await source.pipeline_fetch(batch)
            for index, key in enumerate(batch):
                meta = metadata[index] if index < len(metadata) else KeyMetadata()
                aggregator.add(key, meta)

        findings: list[Finding] = []
        no_ttl_percent = aggregator.no_ttl_percent
        if no_ttl_percent >= t.no_ttl_warning_percent:
            findings.append(
                Finding(
                    f"{no_ttl_percent:.1f}% of sampled keys have no TTL - potential memory growth risk",
                    Severity.WARNING,
                )
            )

        metrics: dict[str, Any] = {
            "total_keys": total_keys,
            "total_expiring": total_expiring,
            "databases": databases,
            "sampled_count": aggregator.sampled_count,
            "type_distribution": aggregator.type_distribution,
            "encoding_distribution": dict(aggregator.encoding_distribution),
            "ttl_distribution": {
                bucket.value: count for bucket, count in aggregator.ttl_distribution.items()
            },
            "top_keys": [k.to_dict() for k in aggregator.top_keys()],
            "no_ttl_percent": no_ttl_percent,
            "prefix_groups": [g.to_dict() for g in aggregator.top_prefixes()],
        }

        return Section.build(self.title, metrics, findings)

    async def _sample_identifiers(self, source: MetricSourceProtocol) -> list[str]:
        """
        Collect up to sample_size identifiers with cursor iteration.

        Stops when the cursor wraps to 0 or enough keys were collected,
        then truncates the overshoot of the last page.
        """
        keys: list[str] = []
        cursor = 0
        while len(keys) < self.sample_size:
            cursor, page = await source.scan_cursor(cursor, self.thresholds.scan_page_size)
            keys.extend(page)
            if cursor == 0:
                break
        del keys[self.sample_size :]
        return keys
