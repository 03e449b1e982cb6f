# === FILE: site_indexer/crawler/worker.py ===
"""
ShardWorker: drives one shard of the domain list.

For every host owned by the shard the worker walks the phases

    CHECK_FRESHNESS -> DISCOVER_SITEMAPS -> EXPAND -> FETCH -> RECORD_STATE -> DONE

Hosts are independent: a failure or a per-host timeout in one of them is
logged, counted and never affects the next host. The shard produces a
record collection and a host-state fragment, both written atomically.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import AbstractSet, Callable, Dict, List, Optional, Sequence, Tuple

from aiohttp import ClientSession, ClientTimeout

from site_indexer.config import CrawlerConfig
from site_indexer.crawler.fetcher import Fetcher
from site_indexer.crawler.pipeline import FetchPipeline, FetchResult
from site_indexer.crawler.retry import RetryPolicy
from site_indexer.crawler.sitemap import AllowFilter, SitemapExpander, make_allow_filter
from site_indexer.models import DomainEntry, HostState, PageRecord
from site_indexer.parser.html_parser import PageExtractor, make_extractor
from site_indexer.partition import assign
from site_indexer.state import CrawlStateStore, now_ms
from site_indexer.stats import CrawlStats
from site_indexer.storage import AtomicJsonArrayWriter

__all__ = ("HostPhase", "ShardResult", "ShardWorker", "output_file_name", "state_file_name")

OUTPUT_PREFIX = "shard-output-"
STATE_PREFIX = "shard-last-"


def output_file_name(shard_index: int) -> str:
    return f"{OUTPUT_PREFIX}{shard_index}.json"


def state_file_name(shard_index: int) -> str:
    return f"{STATE_PREFIX}{shard_index}.json"


class HostPhase(str, enum.Enum):
    IDLE = "idle"
    SELECTING_HOSTS = "selecting_hosts"
    CHECK_FRESHNESS = "check_freshness"
    DISCOVER_SITEMAPS = "discover_sitemaps"
    EXPAND = "expand"
    FETCH = "fetch"
    RECORD_STATE = "record_state"
    DONE = "done"


class _SeenUrls:
    """Membership view over several URL sets without copying them."""

    __slots__ = ("_sets",)

    def __init__(self, *sets: AbstractSet[str]) -> None:
        self._sets = sets

    def __contains__(self, url: object) -> bool:
        return any(url in s for s in self._sets)


@dataclass(slots=True)
class ShardResult:
    """Everything a shard run produced."""

    records: List[PageRecord] = field(default_factory=list)
    states: Dict[str, HostState] = field(default_factory=dict)
    stats: CrawlStats = field(default_factory=CrawlStats)


class ShardWorker:
    """Crawls the hosts of one shard with a shared HTTP session."""

    def __init__(
        self,
        config: CrawlerConfig,
        *,
        state_store: Optional[CrawlStateStore] = None,
        known_urls: AbstractSet[str] = frozenset(),
        extractor: Optional[PageExtractor] = None,
        clock: Callable[[], int] = now_ms,
        session: Optional[ClientSession] = None,
    ) -> None:
        self.config = config
        self.state_store = state_store or CrawlStateStore()
        self.known_urls = known_urls
        self.extractor = extractor or make_extractor(config.max_text_chars)
        self.clock = clock
        self.session = session
        self._own_session = session is None
        self.logger = logging.getLogger("SiteIndexer")
        self.phase = HostPhase.IDLE
        self.host_phases: Dict[str, HostPhase] = {}
        self._kept_urls: set[str] = set()
        self.expander: Optional[SitemapExpander] = None
        self.pipeline: Optional[FetchPipeline] = None

    async def __aenter__(self) -> ShardWorker:
        if self.session is None:
            self.session = ClientSession(
                timeout=ClientTimeout(total=self.config.fetch_timeout_ms / 1000.0),
                headers={"User-Agent": self.config.user_agent},
                raise_for_status=False,
            )
        cfg = self.config
        fetcher = Fetcher(self.session, cfg.fetch_timeout_ms)
        self.expander = SitemapExpander(
            fetcher,
            delay_ms=cfg.rate_ms,
            robots_timeout_ms=cfg.robots_timeout_ms,
            retry_policy=RetryPolicy(
                retries=cfg.sitemap_retries,
                backoff_ms=cfg.retry_backoff_ms,
                max_backoff_ms=cfg.max_backoff_ms,
            ),
            max_sitemaps=cfg.max_sitemaps_per_host,
        )
        self.pipeline = FetchPipeline(
            fetcher,
            concurrency=cfg.concurrency,
            rate_ms=cfg.rate_ms,
            retry_policy=RetryPolicy(
                retries=cfg.retries,
                backoff_ms=cfg.retry_backoff_ms,
                max_backoff_ms=cfg.max_backoff_ms,
            ),
            max_field_chars=cfg.max_field_chars,
            strict=cfg.strict_extraction,
            extractor=self.extractor,
            user_agent=cfg.user_agent,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._own_session and self.session and not self.session.closed:
            await self.session.close()

    # ------------------------------------------------------------------ #
    # Shard level                                                        #
    # ------------------------------------------------------------------ #

    async def run(self, domains: Sequence[DomainEntry]) -> ShardResult:
        """Select this shard's hosts from *domains* and process them one by one."""
        if self.expander is None or self.pipeline is None:
            raise RuntimeError("ShardWorker must be used as an async context manager")
        cfg = self.config
        result = ShardResult(stats=CrawlStats(shard_index=cfg.shard_index, shard_count=cfg.shard_count))
        start = time.monotonic()

        self.phase = HostPhase.SELECTING_HOSTS
        hosts = assign(domains, cfg.shard_index, cfg.shard_count, cfg.max_domains_per_shard)
        result.stats.hosts_assigned = len(hosts)
        self.logger.info(
            "Shard %d/%d: %d of %d domains assigned", cfg.shard_index, cfg.shard_count, len(hosts), len(domains)
        )
        allow = make_allow_filter([d.hostname for d in hosts])

        for entry in hosts:
            if len(result.records) >= cfg.max_total_pages:
                result.stats.hosts_not_started += 1
                continue
            self.logger.info("Processing domain=%s", entry.canonical_origin)
            await self.process_host(entry, allow, result)

        if result.stats.hosts_not_started:
            self.logger.info(
                "max_total_pages=%d reached, %d hosts left for a later run",
                cfg.max_total_pages, result.stats.hosts_not_started,
            )
        self.phase = HostPhase.DONE
        self.logger.info(
            "Shard %d done: %d pages from %d hosts in %.2f s",
            cfg.shard_index, len(result.records), result.stats.hosts_crawled, time.monotonic() - start,
        )
        return result

    # ------------------------------------------------------------------ #
    # Host level                                                         #
    # ------------------------------------------------------------------ #

    async def process_host(self, entry: DomainEntry, allow: AllowFilter, result: ShardResult) -> HostState:
        """Run the per-host state machine and record the host's new state in *result*."""
        cfg = self.config
        stats = result.stats
        host = entry.host
        prior = self.state_store.get(host)

        self.host_phases[host] = HostPhase.CHECK_FRESHNESS
        if self.state_store.is_fresh(host, self.clock(), cfg.ttl_ms, cfg.force):
            self.logger.info(" Skipping %s: crawled less than %s days ago", host, cfg.days_no_check)
            stats.hosts_fresh += 1
            result.states[host] = prior
            self.host_phases[host] = HostPhase.DONE
            return prior

        fetched = FetchResult()
        try:
            await asyncio.wait_for(
                self._crawl_host(entry, prior, allow, fetched, stats),
                timeout=cfg.host_timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError:
            stats.hosts_timed_out += 1
            self.logger.warning(
                "[WARN] host %s timed out after %d ms, keeping %d pages",
                host, cfg.host_timeout_ms, len(fetched.records),
            )
        except Exception:
            stats.hosts_failed += 1
            self.logger.exception("[WARN] host %s failed", host)

        self.host_phases[host] = HostPhase.RECORD_STATE
        new_records = [r for r in fetched.records if r.url not in self._kept_urls]
        self._kept_urls.update(r.url for r in new_records)
        result.records.extend(new_records)

        stats.pages_kept += len(new_records)
        stats.pages_failed += len(fetched.failures)
        stats.pages_skipped += len(fetched.skipped)
        stats.failures.extend(
            {"url": f.url, "reason": f.reason, "attempts": f.attempts} for f in fetched.failures
        )

        state = prior.advanced(self.clock(), [r.url for r in new_records], cfg.max_urls_per_host)
        result.states[host] = state
        self.host_phases[host] = HostPhase.DONE
        self.logger.info(" Added %d new pages for %s", len(new_records), host)
        return state

    async def _crawl_host(
        self,
        entry: DomainEntry,
        prior: HostState,
        allow: AllowFilter,
        fetched: FetchResult,
        stats: CrawlStats,
    ) -> None:
        assert self.expander is not None and self.pipeline is not None
        cfg = self.config
        host = entry.host

        self.host_phases[host] = HostPhase.DISCOVER_SITEMAPS
        discovery = await self.expander.discover(entry)

        self.host_phases[host] = HostPhase.EXPAND
        expansion = await self.expander.expand(discovery.seeds, allow, cfg.max_pages_per_host)
        candidates = self.expander.with_homepage(entry, expansion)

        robots = discovery.robots if cfg.respect_robots else None
        seen = _SeenUrls(frozenset(prior.seen_urls), self.known_urls, self._kept_urls)
        urls = self.pipeline.select(candidates, seen, robots, fetched, cfg.max_pages_per_host)
        stats.candidates += len(urls)
        if not urls:
            stats.hosts_without_candidates += 1
            self.logger.info(" No new pages for %s", host)
            return

        self.host_phases[host] = HostPhase.FETCH
        stats.hosts_crawled += 1
        await self.pipeline.fetch_urls(urls, fetched)

    # ------------------------------------------------------------------ #
    # Artifacts                                                          #
    # ------------------------------------------------------------------ #

    def write_artifacts(self, result: ShardResult, out_dir: Path | str) -> Tuple[Path, Path]:
        """Write ``shard-output-<i>.json`` and ``shard-last-<i>.json`` into *out_dir*."""
        out = Path(out_dir)
        out.mkdir(parents=True, exist_ok=True)
        output_path = out / output_file_name(self.config.shard_index)
        state_path = out / state_file_name(self.config.shard_index)
        with AtomicJsonArrayWriter(output_path) as writer:
            for record in result.records:
                writer.write(record.to_dict())
        CrawlStateStore.save_fragment(state_path, result.states.values())
        self.logger.info("Wrote %s (%d records) and %s (%d hosts)",
                         output_path, len(result.records), state_path, len(result.states))
        return output_path, state_path
