# site_indexer/crawler/fetcher.py
"""
Fetcher module: one HTTP attempt with a hard timeout.

Retries, rate limiting and concurrency live in the callers
(:mod:`site_indexer.crawler.pipeline`, :mod:`site_indexer.crawler.sitemap`).
"""
from __future__ import annotations

import gzip
import zlib
from dataclasses import dataclass
from typing import Optional

from aiohttp import ClientSession, ClientTimeout

from site_indexer.errors import EmptyContentError, HttpStatusError, NonHtmlContentError

_GZIP_MAGIC = b"\x1f\x8b"


@dataclass(slots=True)
class FetchedDocument:
    """Body and metadata of a successful (2xx) response."""

    url: str
    status: int
    content_type: str
    body: bytes
    charset: Optional[str] = None

    @property
    def mime(self) -> str:
        return self.content_type.split(";", 1)[0].strip().lower()

    def text(self) -> str:
        try:
            return self.body.decode(self.charset or "utf-8", errors="replace")
        except LookupError:
            return self.body.decode("utf-8", errors="replace")


def maybe_gunzip(url: str, content_type: str, body: bytes) -> bytes:
    """Decompress sitemap bodies served as gzip; undecodable data is returned as is."""
    if url.lower().endswith(".gz") or "gzip" in content_type.lower() or body[:2] == _GZIP_MAGIC:
        try:
            return gzip.decompress(body)
        except (OSError, EOFError, zlib.error):
            return body
    return body


class Fetcher:
    """Performs single GET attempts on a shared :class:`aiohttp.ClientSession`."""

    def __init__(self, session: ClientSession, timeout_ms: int) -> None:
        self.session = session
        self.timeout_ms = timeout_ms

    async def get(self, url: str, timeout_ms: Optional[int] = None) -> FetchedDocument:
        """
        GET *url*; the request is cancelled once the timeout expires.

        Raises HttpStatusError for non-2xx responses; aiohttp.ClientError and
        asyncio.TimeoutError propagate unchanged.
        """
        timeout = ClientTimeout(total=(timeout_ms or self.timeout_ms) / 1000.0)
        async with self.session.get(url, timeout=timeout, allow_redirects=True) as resp:
            if not 200 <= resp.status < 300:
                raise HttpStatusError(url, resp.status)
            body = await resp.read()
            return FetchedDocument(
                url=url,
                status=resp.status,
                content_type=resp.headers.get("Content-Type", ""),
                body=body,
                charset=resp.charset,
            )

    async def fetch_html(self, url: str) -> FetchedDocument:
        """GET an HTML page; non-HTML or empty responses are rejected."""
        doc = await self.get(url)
        if "html" not in doc.mime:
            raise NonHtmlContentError(url, doc.mime)
        if not doc.body.strip():
            raise EmptyContentError(url)
        return doc

    async def fetch_sitemap(self, url: str) -> bytes:
        """GET a sitemap document, transparently gunzipping ``.gz`` payloads."""
        doc = await self.get(url)
        return maybe_gunzip(url, doc.content_type, doc.body)


__all__ = ["FetchedDocument", "Fetcher", "maybe_gunzip"]
