# site_indexer/crawler/pipeline.py
"""
FetchPipeline: turns page candidates into :class:`PageRecord` objects.

Each candidate goes through a bounded worker pool; every attempt waits the
configured delay, fetches with a hard timeout, extracts the three text
fields and, in strict mode, rejects incomplete pages. Failed attempts are
retried with exponential backoff, except for non-HTML and empty responses.
A candidate that exhausts its retries is logged and dropped.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Container, Iterable, List, Optional
from urllib.parse import urlsplit

from aiohttp import ClientError

from site_indexer.crawler.fetcher import Fetcher
from site_indexer.crawler.pool import run_bounded
from site_indexer.crawler.retry import RetryPolicy, with_retry
from site_indexer.errors import FetchError, IncompleteExtractionError, InvalidUrlError
from site_indexer.models import PageCandidate, PageRecord
from site_indexer.parser.html_parser import PageExtractor, extract_page
from site_indexer.parser.robots_parser import RobotsTxtRules
from site_indexer.utils import canonicalize

logger = logging.getLogger("SiteIndexer")

_RETRYABLE = (FetchError, ClientError, asyncio.TimeoutError)


@dataclass(slots=True)
class FetchFailure:
    url: str
    reason: str
    attempts: int


@dataclass(slots=True)
class FetchResult:
    """Records kept plus the per-URL error/skip log."""

    records: List[PageRecord] = field(default_factory=list)
    failures: List[FetchFailure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def kept_urls(self) -> List[str]:
        return [r.url for r in self.records]


def _describe(exc: BaseException) -> str:
    text = str(exc)
    return text if text else type(exc).__name__


def _path_of(url: str) -> str:
    parts = urlsplit(url)
    return parts.path + ("?" + parts.query if parts.query else "")


class FetchPipeline:
    """Bounded-concurrency, rate-limited, retrying fetch-and-extract engine."""

    def __init__(
        self,
        fetcher: Fetcher,
        *,
        concurrency: int = 5,
        rate_ms: int = 200,
        retry_policy: Optional[RetryPolicy] = None,
        max_field_chars: int = 100,
        strict: bool = True,
        extractor: Optional[PageExtractor] = None,
        user_agent: str = "",
    ) -> None:
        self.fetcher = fetcher
        self.concurrency = concurrency
        self.rate_ms = rate_ms
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_field_chars = max_field_chars
        self.strict = strict
        self.extractor: PageExtractor = extractor or extract_page
        self.user_agent = user_agent

    def select(
        self,
        candidates: Iterable[PageCandidate],
        seen_urls: Container[str],
        robots: Optional[RobotsTxtRules],
        result: FetchResult,
        limit: Optional[int] = None,
    ) -> List[str]:
        """Canonicalize and filter candidates before any request is made."""
        selected: List[str] = []
        taken: set[str] = set()
        for candidate in candidates:
            try:
                url = canonicalize(candidate.url)
            except InvalidUrlError:
                result.failures.append(FetchFailure(candidate.url, "invalid url", 0))
                continue
            if url in taken:
                continue
            taken.add(url)
            if url in seen_urls:
                result.skipped.append(url)
                continue
            if robots is not None and not robots.can_fetch(self.user_agent, _path_of(url)):
                logger.debug("Disallowed by robots.txt: %s", url)
                result.skipped.append(url)
                continue
            selected.append(url)
            if limit is not None and len(selected) >= limit:
                break
        return selected

    async def fetch_one(self, url: str, attempts: Optional[List[int]] = None) -> PageRecord:
        """Fetch and extract *url*, retrying per the policy; raises on final failure.

        *attempts*, when given, is a one-element counter of attempts made.
        """
        counter = attempts if attempts is not None else [0]

        async def _attempt() -> PageRecord:
            counter[0] += 1
            if self.rate_ms:
                await asyncio.sleep(self.rate_ms / 1000.0)
            doc = await self.fetcher.fetch_html(url)
            try:
                page = self.extractor(doc.text(), url)
            except Exception as exc:
                raise FetchError(url, f"extraction failed: {exc}") from exc
            if self.strict:
                missing = page.missing_fields()
                if missing:
                    raise IncompleteExtractionError(url, missing)
            return PageRecord.build(url, page.title, page.description, page.text, self.max_field_chars)

        retrying = with_retry(
            self.retry_policy,
            retry_on=_RETRYABLE,
            give_up=lambda exc: isinstance(exc, FetchError) and not exc.retryable,
        )(_attempt)
        return await retrying()

    async def fetch_all(
        self,
        candidates: Iterable[PageCandidate],
        seen_urls: Container[str] = frozenset(),
        robots: Optional[RobotsTxtRules] = None,
        result: Optional[FetchResult] = None,
        limit: Optional[int] = None,
    ) -> FetchResult:
        """Process every candidate; records are appended to *result* as they complete.

        Passing *result* lets the caller keep what finished if the whole call
        is cancelled (per-host timeout).
        """
        result = result if result is not None else FetchResult()
        urls = self.select(candidates, seen_urls, robots, result, limit)
        await self.fetch_urls(urls, result)
        return result

    async def fetch_urls(self, urls: List[str], result: FetchResult) -> FetchResult:
        """Fetch already selected canonical URLs into *result*."""

        async def _handle(url: str) -> None:
            attempts = [0]
            try:
                record = await self.fetch_one(url, attempts)
            except _RETRYABLE as exc:
                result.failures.append(FetchFailure(url, _describe(exc), attempts[0]))
                logger.warning("[ERR FETCH] %s %s", url, _describe(exc))
                return
            result.records.append(record)
            logger.info(
                "[KEEP] %s title-len=%d meta-len=%d", record.url, len(record.title), len(record.description)
            )

        await run_bounded(urls, _handle, self.concurrency)
        return result


__all__ = ["FetchFailure", "FetchResult", "FetchPipeline"]
