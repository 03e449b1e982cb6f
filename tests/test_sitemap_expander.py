# File: tests/test_sitemap_expander.py
# SitemapExpander: robots.txt discovery, index/urlset traversal, gzip, cycles, limits
from __future__ import annotations

import gzip
from collections import Counter

import pytest
from aiohttp import ClientSession, web

from site_indexer.crawler.fetcher import Fetcher
from site_indexer.crawler.retry import RetryPolicy
from site_indexer.crawler.sitemap import SitemapExpander, make_allow_filter
from site_indexer.models import DomainEntry

from .conftest import serve_app, sitemap_index, urlset


def build_site_app(hits: Counter, *, robots: bool = True, sitemaps: bool = True) -> web.Application:
    app = web.Application()

    def base_of(request) -> str:
        return f"http://{request.host}"

    async def handle_robots(request):
        hits[request.path] += 1
        return web.Response(
            text="User-agent: *\nDisallow: /private\nSitemap: /sitemap_index.xml\n",
            content_type="text/plain",
        )

    async def handle_index(request):
        hits[request.path] += 1
        b = base_of(request)
        body = sitemap_index(f"{b}/s1.xml", f"{b}/s2.xml.gz", f"{b}/s1.xml", f"{b}/sitemap_index.xml", f"{b}/gone.xml")
        return web.Response(text=body, content_type="application/xml")

    async def handle_s1(request):
        hits[request.path] += 1
        b = base_of(request)
        body = urlset(f"{b}/p1", f"{b}/p2", "http://other.example/x", f"{b}/sitemap_index.xml", f"{b}/p1")
        return web.Response(text=body, content_type="application/xml")

    async def handle_s2(request):
        hits[request.path] += 1
        body = gzip.compress(urlset(f"{base_of(request)}/p3").encode("utf-8"))
        return web.Response(body=body, content_type="application/octet-stream")

    async def handle_fallback(request):
        hits[request.path] += 1
        return web.Response(text=urlset(f"{base_of(request)}/p4"), content_type="application/xml")

    if robots:
        app.router.add_get("/robots.txt", handle_robots)
    if sitemaps:
        app.router.add_get("/sitemap_index.xml", handle_index)
        app.router.add_get("/s1.xml", handle_s1)
        app.router.add_get("/s2.xml.gz", handle_s2)
        app.router.add_get("/sitemap.xml", handle_fallback)
    return app


def make_expander(session: ClientSession, **kw) -> SitemapExpander:
    params = dict(
        delay_ms=0,
        robots_timeout_ms=2000,
        retry_policy=RetryPolicy(retries=0, backoff_ms=1),
        max_sitemaps=50,
    )
    params.update(kw)
    return SitemapExpander(Fetcher(session, 2000), **params)


@pytest.mark.asyncio()
async def test_discover_reads_robots_sitemaps(unused_tcp_port: int):
    hits: Counter = Counter()
    async for base in serve_app(build_site_app(hits), unused_tcp_port):
        entry = DomainEntry.from_raw(base)
        async with ClientSession() as session:
            discovery = await make_expander(session).discover(entry)

    assert discovery.seeds == [f"{base}/sitemap_index.xml", f"{base}/sitemap.xml"]
    assert discovery.robots is not None
    assert not discovery.robots.can_fetch("TestAgent/1.0", "/private")


@pytest.mark.asyncio()
async def test_expand_walks_index_gzip_and_breaks_cycles(unused_tcp_port: int):
    hits: Counter = Counter()
    async for base in serve_app(build_site_app(hits), unused_tcp_port):
        entry = DomainEntry.from_raw(base)
        allow = make_allow_filter([entry.hostname])
        async with ClientSession() as session:
            expander = make_expander(session)
            discovery = await expander.discover(entry)
            expansion = await expander.expand(discovery.seeds, allow, max_pages=100)

    assert [c.url for c in expansion.candidates] == [f"{base}/p4", f"{base}/p1", f"{base}/p2", f"{base}/p3"]
    assert hits["/sitemap_index.xml"] == 1
    assert hits["/s1.xml"] == 1
    assert hits["/s2.xml.gz"] == 1
    assert f"{base}/gone.xml" in expansion.visited
    assert expansion.errors == 1


@pytest.mark.asyncio()
async def test_expand_stops_at_max_pages(unused_tcp_port: int):
    hits: Counter = Counter()
    async for base in serve_app(build_site_app(hits), unused_tcp_port):
        entry = DomainEntry.from_raw(base)
        async with ClientSession() as session:
            expander = make_expander(session)
            discovery = await expander.discover(entry)
            expansion = await expander.expand(discovery.seeds, make_allow_filter([entry.hostname]), max_pages=2)

    assert [c.url for c in expansion.candidates] == [f"{base}/p4", f"{base}/p1"]
    assert hits["/s2.xml.gz"] == 0


@pytest.mark.asyncio()
async def test_expand_respects_sitemap_limit(unused_tcp_port: int):
    hits: Counter = Counter()
    async for base in serve_app(build_site_app(hits), unused_tcp_port):
        entry = DomainEntry.from_raw(base)
        async with ClientSession() as session:
            expander = make_expander(session, max_sitemaps=2)
            discovery = await expander.discover(entry)
            expansion = await expander.expand(discovery.seeds, make_allow_filter([entry.hostname]), max_pages=100)

    assert len(expansion.visited) == 2
    assert [c.url for c in expansion.candidates] == [f"{base}/p4"]


@pytest.mark.asyncio()
async def test_candidates_for_puts_homepage_first(unused_tcp_port: int):
    hits: Counter = Counter()
    async for base in serve_app(build_site_app(hits), unused_tcp_port):
        entry = DomainEntry.from_raw(base)
        async with ClientSession() as session:
            found, robots = await make_expander(session).candidates_for(
                entry, make_allow_filter([entry.hostname]), max_pages=3
            )

    assert [c.url for c in found] == [f"{base}/", f"{base}/p4", f"{base}/p1", f"{base}/p2"]
    assert robots is not None


@pytest.mark.asyncio()
async def test_no_robots_and_no_sitemap_yields_homepage_only(unused_tcp_port: int):
    hits: Counter = Counter()
    app = build_site_app(hits, robots=False, sitemaps=False)
    async for base in serve_app(app, unused_tcp_port):
        entry = DomainEntry.from_raw(base)
        async with ClientSession() as session:
            found, robots = await make_expander(session).candidates_for(
                entry, make_allow_filter([entry.hostname]), max_pages=10
            )

    assert [c.url for c in found] == [f"{base}/"]
    assert robots is None


def test_allow_filter_accepts_subdomains_only():
    allow = make_allow_filter(["example.com"])
    assert allow("https://example.com/a")
    assert allow("https://www.example.com/a")
    assert not allow("https://example.org/a")
    assert not allow("not a url")
