# File: site_indexer/engine.py
"""site_indexer.engine: Orchestration layer для запуска шарда и слияния артефактов."""

from __future__ import annotations

from pathlib import Path
from typing import FrozenSet, Optional, Union

from site_indexer.config import CrawlerConfig, load_config
from site_indexer.crawler.worker import ShardResult, ShardWorker
from site_indexer.domains import load_domains
from site_indexer.errors import IndexerError, InvalidUrlError
from site_indexer.logger import logger
from site_indexer.merge import ShardMergeEngine
from site_indexer.state import CrawlStateStore
from site_indexer.stats import MergeStats
from site_indexer.storage import iter_records
from site_indexer.utils import canonicalize

__all__ = ["Engine", "start_shard", "start_merge", "load_known_urls"]


def load_known_urls(index_path: Union[str, Path, None]) -> FrozenSet[str]:
    """Канонические URL существующего индекса; нет файла или он повреждён - пустое множество."""
    if index_path is None or not Path(index_path).is_file():
        return frozenset()
    urls = set()
    try:
        for item in iter_records(index_path):
            if not isinstance(item, dict):
                continue
            try:
                urls.add(canonicalize(item.get("url") or item.get("id")))
            except InvalidUrlError:
                continue
    except (IndexerError, OSError, ValueError) as exc:
        logger.warning("Cannot read known urls from %s: %s", index_path, exc)
        return frozenset()
    logger.info("Loaded %d known urls from %s", len(urls), index_path)
    return frozenset(urls)


async def start_shard(
    cfg: CrawlerConfig,
    domains_path: Union[str, Path, None] = None,
    out_dir: Union[str, Path, None] = None,
) -> ShardResult:
    """
    Запускает один шард: читает список доменов, журнал и индекс, обходит
    хосты шарда и атомарно пишет shard-output-<i>.json и shard-last-<i>.json.
    Отсутствие списка доменов - FileNotFoundError, ничего не записывается.
    """
    path = domains_path or cfg.domains_file
    if path is None:
        raise FileNotFoundError("No domain list given (domains_file is not set)")
    domains = load_domains(path)
    store = CrawlStateStore.load(cfg.state_path)
    known = load_known_urls(cfg.index_path)

    async with ShardWorker(cfg, state_store=store, known_urls=known) as worker:
        result = await worker.run(domains)
    worker.write_artifacts(result, out_dir or cfg.artifacts_dir)
    logger.info("Shard stats: %s", result.stats.json())
    return result


def start_merge(
    cfg: CrawlerConfig,
    artifacts_dir: Union[str, Path, None] = None,
    index_path: Union[str, Path, None] = None,
    state_path: Union[str, Path, None] = None,
) -> MergeStats:
    """Сливает каталог артефактов в индекс и журнал; отсутствие каталога - FileNotFoundError."""
    engine = ShardMergeEngine(cfg.max_field_chars, cfg.max_urls_per_host)
    stats = engine.merge_directory(
        artifacts_dir or cfg.artifacts_dir,
        index_path or cfg.index_path,
        state_path or cfg.state_path,
    )
    logger.info("Merge stats: %s", stats.json())
    return stats


class Engine:
    """Фасад для CLI и тестов: загрузка конфига, запуск шарда и слияние."""

    @staticmethod
    def load_config(path: Optional[str]) -> CrawlerConfig:
        """Загружает конфиг из YAML/JSON или использует значения по умолчанию."""
        return load_config(path)

    def __init__(self, config: CrawlerConfig) -> None:
        self.config = config

    async def start_shard(self, domains_path: Union[str, Path, None] = None) -> ShardResult:
        logger.info("Starting shard %d/%d…", self.config.shard_index, self.config.shard_count)
        try:
            return await start_shard(self.config, domains_path)
        except Exception as exc:
            logger.error("Shard run failed: %s", exc)
            raise

    def start_merge(self) -> MergeStats:
        logger.info("Starting merge…")
        try:
            return start_merge(self.config)
        except Exception as exc:
            logger.error("Merge failed: %s", exc)
            raise
