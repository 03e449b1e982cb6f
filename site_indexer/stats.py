# File: site_indexer/stats.py
"""site_indexer.stats: счётчики запуска шарда и слияния (структурированный итог в логах и CLI)."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, TypedDict


class FailureInfo(TypedDict):
    """Страница, отброшенная после всех попыток."""

    url: str
    reason: str
    attempts: int


@dataclass(slots=True)
class CrawlStats:
    """Итоги одного запуска шарда."""

    shard_index: int = 0
    shard_count: int = 1
    hosts_assigned: int = 0
    hosts_fresh: int = 0
    hosts_crawled: int = 0
    hosts_without_candidates: int = 0
    hosts_timed_out: int = 0
    hosts_failed: int = 0
    hosts_not_started: int = 0
    candidates: int = 0
    pages_kept: int = 0
    pages_failed: int = 0
    pages_skipped: int = 0
    failures: List[FailureInfo] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def json(self, *, pretty: bool = False) -> str:
        """JSON-представление счётчиков."""
        return json.dumps(self.as_dict(), ensure_ascii=False, indent=2 if pretty else None)


@dataclass(slots=True)
class MergeStats:
    """Итоги слияния артефактов шардов."""

    existing_records: int = 0
    added_records: int = 0
    duplicate_records: int = 0
    invalid_records: int = 0
    # records whose stored url was missing or not canonical and got rewritten
    normalized_records: int = 0
    output_files_merged: int = 0
    state_files_merged: int = 0
    files_skipped: List[str] = field(default_factory=list)
    hosts_tracked: int = 0

    @property
    def total_records(self) -> int:
        return self.existing_records + self.added_records

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["total_records"] = self.total_records
        return data

    def json(self, *, pretty: bool = False) -> str:
        return json.dumps(self.as_dict(), ensure_ascii=False, indent=2 if pretty else None)


__all__ = ["FailureInfo", "CrawlStats", "MergeStats"]
