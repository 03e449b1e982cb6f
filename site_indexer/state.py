# File: site_indexer/state.py
"""site_indexer.state: per-host crawl ledger (``last_indexed.json``) and its fragments.

The ledger maps ``host -> {"lastAt": <epoch ms>, "urls": [...]}``. A shard
reads it once at start, owns the entries of its hosts for the run and
writes them back as a fragment; only the merge writes the ledger itself.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Union

from site_indexer.logger import logger
from site_indexer.models import HostState
from site_indexer.storage import load_json, write_json_atomic

__all__ = ["now_ms", "parse_states", "merge_states", "CrawlStateStore"]


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_states(data: object, source: Union[str, Path] = "<memory>") -> Dict[str, HostState]:
    """Turn a decoded ledger document into ``HostState`` objects, skipping bad entries."""
    if not isinstance(data, dict):
        if data is not None:
            logger.warning("Ledger %s is not a mapping, ignoring it", source)
        return {}
    states: Dict[str, HostState] = {}
    for host, entry in data.items():
        if not isinstance(host, str) or not host or not (entry is None or isinstance(entry, dict)):
            logger.debug("Ledger %s: skipping bad entry for %r", source, host)
            continue
        states[host] = HostState.from_dict(host, entry)
    return states


def merge_states(
    base: Mapping[str, HostState], fragment: Mapping[str, HostState], cap: int
) -> Dict[str, HostState]:
    """Host-by-host merge: ``max(lastAt)`` and capped union of URLs."""
    merged = dict(base)
    for host, state in fragment.items():
        current = merged.get(host)
        merged[host] = state.merged(HostState(host), cap) if current is None else current.merged(state, cap)
    return merged


class CrawlStateStore:
    """Read side of the ledger for one shard run plus fragment output."""

    def __init__(self, states: Optional[Mapping[str, HostState]] = None) -> None:
        self._states: Dict[str, HostState] = dict(states or {})

    @classmethod
    def load(cls, path: Union[str, Path, None]) -> CrawlStateStore:
        """Load the ledger; a missing or corrupt file yields an empty store."""
        if path is None:
            return cls()
        p = Path(path)
        states = parse_states(load_json(p, default=None), p)
        logger.info("Loaded crawl state for %d hosts from %s", len(states), p)
        return cls(states)

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, host: object) -> bool:
        return host in self._states

    def get(self, host: str) -> HostState:
        """Known state of *host*, or an empty one (never crawled)."""
        return self._states.get(host) or HostState(host)

    def is_fresh(self, host: str, now: int, ttl_ms: int, force: bool = False) -> bool:
        """True when *host* was crawled less than *ttl_ms* before *now* and *force* is off."""
        if force:
            return False
        state = self._states.get(host)
        return state is not None and state.is_fresh(now, ttl_ms)

    def as_dict(self) -> Dict[str, HostState]:
        return dict(self._states)

    @staticmethod
    def save_fragment(path: Union[str, Path], states: Iterable[HostState]) -> Path:
        """Write a shard's host-state fragment atomically."""
        doc = {s.host: s.to_dict() for s in states}
        return write_json_atomic(path, doc)
