# File: site_indexer/merge.py
"""site_indexer.merge: слияние артефактов шардов в канонический индекс и журнал.

Один потоковый проход: сначала записи существующего индекса, затем записи
шардов в порядке файлов. Каждая запись заново канонизируется, получает
пересчитанный ``id`` и обрезанные поля; URL, уже встреченный раньше,
пропускается. В памяти держится только множество URL, не сами записи.

Индекс и журнал пишутся во временные файлы и переименовываются атомарно;
при ошибке предыдущие файлы остаются нетронутыми.
"""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from site_indexer.crawler.worker import OUTPUT_PREFIX, STATE_PREFIX
from site_indexer.errors import InvalidUrlError, MalformedArtifactError
from site_indexer.logger import logger
from site_indexer.models import HostState, PageRecord
from site_indexer.state import CrawlStateStore, merge_states, parse_states
from site_indexer.stats import MergeStats
from site_indexer.utils import is_canonical_url
from site_indexer.storage import AtomicJsonArrayWriter, iter_records, load_json, stage_json

__all__ = ["ShardMergeEngine", "collect_artifacts"]

PathT = Union[str, Path]


def collect_artifacts(artifacts_dir: PathT) -> Tuple[List[Path], List[Path]]:
    """Файлы ``shard-output-*.json`` и ``shard-last-*.json`` каталога в порядке имён."""
    root = Path(artifacts_dir)
    if not root.is_dir():
        raise FileNotFoundError(f"Artifacts directory not found: {root}")
    outputs = sorted(p for p in root.glob(f"{OUTPUT_PREFIX}*.json") if p.is_file())
    states = sorted(p for p in root.glob(f"{STATE_PREFIX}*.json") if p.is_file())
    return outputs, states


class ShardMergeEngine:
    """Объединяет выходы шардов с существующими индексом и журналом."""

    def __init__(self, max_field_chars: int = 100, max_urls_per_host: int = 10000) -> None:
        self.max_field_chars = max_field_chars
        self.max_urls_per_host = max_urls_per_host

    def merge_directory(
        self,
        artifacts_dir: PathT,
        index_path: PathT,
        state_path: PathT,
        *,
        out_index: Optional[PathT] = None,
        out_state: Optional[PathT] = None,
    ) -> MergeStats:
        outputs, states = collect_artifacts(artifacts_dir)
        logger.info(
            "Found %d shard outputs and %d state fragments in %s", len(outputs), len(states), artifacts_dir
        )
        return self.merge(outputs, states, index_path, state_path, out_index=out_index, out_state=out_state)

    def merge(
        self,
        output_files: Sequence[PathT],
        state_files: Sequence[PathT],
        index_path: PathT,
        state_path: PathT,
        *,
        out_index: Optional[PathT] = None,
        out_state: Optional[PathT] = None,
    ) -> MergeStats:
        """
        Сливает *output_files* в индекс *index_path* и *state_files* в журнал
        *state_path*. Результат пишется в *out_index* / *out_state*
        (по умолчанию поверх исходных файлов).

        Повреждённый файл шарда пропускается с предупреждением; повреждённый
        существующий индекс - ошибка (MalformedArtifactError), индекс не
        перезаписывается.
        """
        start = time.monotonic()
        index_src = Path(index_path)
        state_src = Path(state_path)
        index_dst = Path(out_index) if out_index is not None else index_src
        state_dst = Path(out_state) if out_state is not None else state_src
        stats = MergeStats()

        ledger = self._merge_ledger(state_src, [Path(p) for p in state_files], stats)

        seen: Set[str] = set()
        with AtomicJsonArrayWriter(index_dst, auto_commit=False) as writer:
            if index_src.is_file():
                stats.existing_records = self._copy(iter_records(index_src), writer, seen, stats)
                logger.info("Existing index %s: %d records", index_src, stats.existing_records)
            for path in output_files:
                path = Path(path)
                try:
                    added = self._copy(iter_records(path), writer, seen, stats)
                except (MalformedArtifactError, OSError, ValueError) as exc:
                    stats.files_skipped.append(str(path))
                    logger.warning("Skipping malformed shard output %s: %s", path, exc)
                    continue
                stats.added_records += added
                stats.output_files_merged += 1
                logger.info("Merged %s: +%d records", path.name, added)
            writer.close()
            # both files are complete on disk before either rename
            state_tmp = stage_json(state_dst, {host: s.to_dict() for host, s in ledger.items()})
            try:
                writer.commit()
                os.replace(state_tmp, state_dst)
            except BaseException:
                state_tmp.unlink(missing_ok=True)
                raise
        stats.hosts_tracked = len(ledger)

        logger.info(
            "Merge done in %.2f s: %d records (%d new, %d duplicates, %d invalid), %d hosts",
            time.monotonic() - start, stats.total_records, stats.added_records,
            stats.duplicate_records, stats.invalid_records, stats.hosts_tracked,
        )
        return stats

    def _copy(
        self, items: Iterable[object], writer: AtomicJsonArrayWriter, seen: Set[str], stats: MergeStats
    ) -> int:
        """Пишет новые записи из *items*; возвращает их число.

        Для файла шарда порча обнаруживается до первой записи, так что
        пропущенный файл ничего не оставляет в индексе.
        """
        written = 0
        for item in items:
            if not isinstance(item, dict):
                stats.invalid_records += 1
                continue
            try:
                record = PageRecord.from_dict(item, self.max_field_chars)
            except InvalidUrlError as exc:
                stats.invalid_records += 1
                logger.debug("Dropping record with bad url: %s", exc)
                continue
            if not is_canonical_url(item.get("url")):
                stats.normalized_records += 1
            if record.url in seen:
                stats.duplicate_records += 1
                continue
            seen.add(record.url)
            writer.write(record.to_dict())
            written += 1
        return written

    def _merge_ledger(self, state_src: Path, fragments: List[Path], stats: MergeStats) -> Dict[str, HostState]:
        ledger = CrawlStateStore.load(state_src).as_dict()
        for path in fragments:
            data = load_json(path, default=None)
            if not isinstance(data, dict):
                stats.files_skipped.append(str(path))
                logger.warning("Skipping malformed state fragment %s", path)
                continue
            ledger = merge_states(ledger, parse_states(data, path), self.max_urls_per_host)
            stats.state_files_merged += 1
        return ledger
