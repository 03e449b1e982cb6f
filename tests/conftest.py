# File: tests/conftest.py
from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path
from typing import Callable, Iterable

import pytest
from aiohttp import web

from site_indexer.config import CrawlerConfig


async def serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        await runner.cleanup()


def html_page(title: str = "Title", description: str = "Description", text: str = "Body text") -> str:
    """Minimal HTML document carrying all three extracted fields."""
    head = f"<title>{title}</title>" if title else ""
    if description:
        head += f'<meta name="description" content="{description}">'
    body = f"<p>{text}</p>" if text else ""
    return f"<html><head>{head}</head><body>{body}</body></html>"


def urlset(*locs: str) -> str:
    items = "".join(f"<url><loc>{loc}</loc></url>" for loc in locs)
    return f'<?xml version="1.0" encoding="UTF-8"?><urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{items}</urlset>'


def sitemap_index(*locs: str) -> str:
    items = "".join(f"<sitemap><loc>{loc}</loc></sitemap>" for loc in locs)
    return f'<?xml version="1.0" encoding="UTF-8"?><sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{items}</sitemapindex>'


@pytest.fixture()
def make_config(tmp_path: Path) -> Callable[..., CrawlerConfig]:
    """
    Factory for a fast CrawlerConfig: no politeness delay, tiny backoff,
    every output path inside tmp_path.
    """

    def _make(**overrides) -> CrawlerConfig:
        params = dict(
            user_agent="TestAgent/1.0",
            shard_index=0,
            shard_count=1,
            rate_ms=0,
            retry_backoff_ms=1,
            max_backoff_ms=5,
            fetch_timeout_ms=2000,
            robots_timeout_ms=2000,
            host_timeout_ms=10000,
            artifacts_dir=tmp_path / "artifacts",
            index_path=tmp_path / "site" / "index.json",
            state_path=tmp_path / "site" / "last_indexed.json",
        )
        params.update(overrides)
        return CrawlerConfig(**params)

    return _make


@pytest.fixture()
def write_domains(tmp_path: Path) -> Callable[[Iterable[str]], Path]:
    """Write a domain list (one CSV row per item) and return its path."""

    def _write(rows: Iterable[str], name: str = "domains.csv") -> Path:
        path = tmp_path / name
        path.write_text("\n".join(rows) + "\n", encoding="utf-8")
        return path

    return _write
