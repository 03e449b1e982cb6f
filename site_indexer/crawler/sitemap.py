# site_indexer/crawler/sitemap.py
"""
SitemapExpander: discovers page candidates for one host.

Seeds come from ``Sitemap:`` lines in robots.txt plus the fallback
``/sitemap.xml``; the sitemap graph is walked breadth-first, every sitemap
URL at most once per host.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List, Optional, Set
from urllib.parse import urljoin

from aiohttp import ClientError

from site_indexer.crawler.fetcher import Fetcher
from site_indexer.crawler.retry import RetryPolicy, with_retry
from site_indexer.errors import FetchError, InvalidUrlError
from site_indexer.models import DomainEntry, PageCandidate
from site_indexer.parser.robots_parser import RobotsTxtRules, parse_robots
from site_indexer.parser.sitemap_parser import ParseStrategy, parse_sitemap
from site_indexer.utils import canonicalize, hostname_of, host_matches, is_sitemap_url, remove_duplicates

AllowFilter = Callable[[str], bool]

logger = logging.getLogger("SiteIndexer")


def make_allow_filter(hostnames: List[str]) -> AllowFilter:
    """Allow URLs on one of *hostnames* or their subdomains."""
    allowed = [h.lower().rstrip(".") for h in hostnames]

    def _allowed(url: str) -> bool:
        host = hostname_of(url)
        return bool(host) and host_matches(host, allowed)

    return _allowed


@dataclass(slots=True)
class SitemapDiscovery:
    """What robots.txt told us about a host."""

    seeds: List[str]
    robots: Optional[RobotsTxtRules] = None


@dataclass(slots=True)
class Expansion:
    """Result of walking the sitemap graph of one host."""

    candidates: List[PageCandidate] = field(default_factory=list)
    visited: Set[str] = field(default_factory=set)
    strategies: List[ParseStrategy] = field(default_factory=list)
    errors: int = 0


class SitemapExpander:
    """Walks the sitemap / sitemap-index graph of a single host."""

    def __init__(
        self,
        fetcher: Fetcher,
        *,
        delay_ms: int,
        robots_timeout_ms: int,
        retry_policy: RetryPolicy,
        max_sitemaps: int = 50,
    ) -> None:
        self.fetcher = fetcher
        self.delay_ms = delay_ms
        self.robots_timeout_ms = robots_timeout_ms
        self.max_sitemaps = max_sitemaps
        self._fetch_sitemap = with_retry(
            retry_policy,
            retry_on=(FetchError, ClientError, asyncio.TimeoutError),
        )(self.fetcher.fetch_sitemap)

    async def discover(self, entry: DomainEntry) -> SitemapDiscovery:
        """Read robots.txt of *entry*; unreachable robots.txt only leaves the fallback seed."""
        origin = entry.canonical_origin
        robots: Optional[RobotsTxtRules] = None
        seeds: List[str] = []
        try:
            doc = await self.fetcher.get(origin + "/robots.txt", timeout_ms=self.robots_timeout_ms)
            robots = parse_robots(doc.text())
        except (FetchError, ClientError, asyncio.TimeoutError) as exc:
            logger.warning("[WARN] robots.txt unavailable for %s: %s", origin, str(exc) or type(exc).__name__)
        else:
            for value in robots.sitemaps:
                try:
                    seeds.append(canonicalize(urljoin(origin + "/", value)))
                except InvalidUrlError:
                    logger.debug("Discarding unparsable sitemap %r for %s", value, origin)
        seeds.append(origin + "/sitemap.xml")
        return SitemapDiscovery(seeds=remove_duplicates(seeds), robots=robots)

    async def expand(self, seeds: List[str], allow: AllowFilter, max_pages: int) -> Expansion:
        """Breadth-first walk from *seeds*, collecting at most *max_pages* allowed pages."""
        result = Expansion()
        queue: Deque[str] = deque(seeds)
        seen_pages: Set[str] = set()

        while queue and len(result.candidates) < max_pages:
            sitemap_url = queue.popleft()
            if sitemap_url in result.visited:
                continue
            if len(result.visited) >= self.max_sitemaps:
                logger.info("Sitemap limit %d reached at %s", self.max_sitemaps, sitemap_url)
                break
            result.visited.add(sitemap_url)

            try:
                body = await self._fetch_sitemap(sitemap_url)
            except (FetchError, ClientError, asyncio.TimeoutError) as exc:
                result.errors += 1
                logger.debug("Sitemap %s failed: %s", sitemap_url, str(exc) or type(exc).__name__)
            else:
                parsed = parse_sitemap(body)
                result.strategies.append(parsed.strategy)
                if parsed.strategy is ParseStrategy.FAILED:
                    logger.debug("Sitemap %s: nothing parseable", sitemap_url)
                for loc in parsed.locs:
                    try:
                        url = canonicalize(urljoin(sitemap_url, loc))
                    except InvalidUrlError:
                        continue
                    if is_sitemap_url(url):
                        if url not in result.visited:
                            queue.append(url)
                    elif url not in seen_pages and allow(url):
                        seen_pages.add(url)
                        result.candidates.append(PageCandidate(url))
                        if len(result.candidates) >= max_pages:
                            break

            if self.delay_ms:
                await asyncio.sleep(self.delay_ms / 1000.0)

        return result

    async def candidates_for(
        self, entry: DomainEntry, allow: AllowFilter, max_pages: int
    ) -> tuple[List[PageCandidate], Optional[RobotsTxtRules]]:
        """Discover + expand, with the homepage always first among the candidates."""
        discovery = await self.discover(entry)
        expansion = await self.expand(discovery.seeds, allow, max_pages)
        return self.with_homepage(entry, expansion), discovery.robots

    @staticmethod
    def with_homepage(entry: DomainEntry, expansion: Expansion) -> List[PageCandidate]:
        """Candidates of *expansion* with the host's homepage moved/prepended to the front."""
        if expansion.errors and not expansion.strategies:
            logger.warning("[WARN] no reachable sitemap for %s", entry.canonical_origin)
        homepage = canonicalize(entry.homepage)
        candidates = [c for c in expansion.candidates if c.url != homepage]
        candidates.insert(0, PageCandidate(homepage))
        logger.info(" Domain %s collected urls=%d", entry.canonical_origin, len(candidates))
        return candidates


__all__ = ["AllowFilter", "Expansion", "SitemapDiscovery", "SitemapExpander", "make_allow_filter"]
