# File: site_indexer/partition.py
"""Deterministic assignment of domains to shards.

``shard_for(host) = stable_hash(host) % shard_count`` does not depend on the
process, the run or the position of the host in the list, so every shard
process can compute its own slice of the same domain list independently.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from site_indexer.logger import logger
from site_indexer.models import DomainEntry
from site_indexer.utils import stable_hash

__all__ = ["shard_for", "assign", "partition"]


def shard_for(host: str, shard_count: int) -> int:
    if shard_count < 1:
        raise ValueError(f"shard_count must be >= 1, got {shard_count}")
    return stable_hash(host) % shard_count


def assign(
    domains: Sequence[DomainEntry],
    shard_index: int,
    shard_count: int,
    max_domains_per_shard: Optional[int] = None,
) -> List[DomainEntry]:
    """Return the domains owned by *shard_index*, in list order.

    At most *max_domains_per_shard* entries are returned; later matches are
    skipped (soft capacity limit, logged).
    """
    if not 0 <= shard_index < shard_count:
        raise ValueError(f"shard_index {shard_index} out of range for shard_count {shard_count}")
    owned = partition(domains, shard_count)[shard_index]
    if max_domains_per_shard is not None and len(owned) > max_domains_per_shard:
        logger.info(
            "Shard %d/%d: %d domains matched, capped at %d",
            shard_index, shard_count, len(owned), max_domains_per_shard,
        )
        owned = owned[:max_domains_per_shard]
    return owned


def partition(domains: Sequence[DomainEntry], shard_count: int) -> Dict[int, List[DomainEntry]]:
    """Full partition of *domains* (no cap); every bucket keeps list order."""
    shards: Dict[int, List[DomainEntry]] = {i: [] for i in range(shard_count)}
    for d in domains:
        shards[shard_for(d.host, shard_count)].append(d)
    return shards
