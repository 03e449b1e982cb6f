# File: tests/test_engine.py
# Shard run and merge wired together through the engine
from __future__ import annotations

import json
from collections import Counter

import pytest
from aiohttp import web

from site_indexer.engine import Engine, load_known_urls, start_merge, start_shard
from site_indexer.storage import iter_records

from .conftest import html_page, serve_app, urlset


def build_app(hits: Counter) -> web.Application:
    app = web.Application()

    async def robots(request):
        return web.Response(text="User-agent: *\nDisallow: /private\n", content_type="text/plain")

    async def sitemap(request):
        b = f"http://{request.host}"
        return web.Response(text=urlset(f"{b}/a", f"{b}/private/x"), content_type="application/xml")

    async def page(request):
        hits[request.path] += 1
        return web.Response(text=html_page(f"Title {request.path}", "About", "Text"), content_type="text/html")

    app.router.add_get("/robots.txt", robots)
    app.router.add_get("/sitemap.xml", sitemap)
    app.router.add_get("/", page)
    app.router.add_get("/a", page)
    app.router.add_get("/private/x", page)
    return app


def test_load_known_urls(tmp_path):
    assert load_known_urls(None) == frozenset()
    assert load_known_urls(tmp_path / "missing.json") == frozenset()
    index = tmp_path / "index.json"
    index.write_text(json.dumps([{"url": "HTTPS://A.example/x"}, {"id": "b.example"}, {"url": "ftp://c"}, 1]), encoding="utf-8")
    assert load_known_urls(index) == frozenset({"https://a.example/x", "https://b.example/"})
    index.write_text("[\n{broken", encoding="utf-8")
    assert load_known_urls(index) == frozenset()


@pytest.mark.asyncio()
async def test_shard_then_merge(make_config, write_domains, tmp_path, unused_tcp_port: int):
    hits: Counter = Counter()
    async for base in serve_app(build_app(hits), unused_tcp_port):
        cfg = make_config(domains_file=write_domains(["# list", f"Local,{base}"]))
        result = await start_shard(cfg)

    assert sorted(r.url for r in result.records) == [f"{base}/", f"{base}/a"]
    assert hits["/private/x"] == 0
    artifacts = cfg.artifacts_dir
    assert sorted(p.name for p in artifacts.iterdir()) == ["shard-last-0.json", "shard-output-0.json"]

    stats = start_merge(cfg)
    assert stats.added_records == 2
    assert sorted(r["url"] for r in iter_records(cfg.index_path)) == [f"{base}/", f"{base}/a"]
    ledger = json.loads(cfg.state_path.read_text(encoding="utf-8"))
    host = base.split("://", 1)[1]
    assert set(ledger[host]["urls"]) == {f"{base}/", f"{base}/a"}


@pytest.mark.asyncio()
async def test_known_index_urls_are_excluded(make_config, write_domains, tmp_path, unused_tcp_port: int):
    hits: Counter = Counter()
    async for base in serve_app(build_app(hits), unused_tcp_port):
        cfg = make_config(domains_file=write_domains([base]), respect_robots=False)
        cfg.index_path.parent.mkdir(parents=True)
        cfg.index_path.write_text(json.dumps([{"url": f"{base}/a", "title": "t"}]), encoding="utf-8")
        result = await start_shard(cfg)

    assert hits["/a"] == 0
    assert sorted(r.url for r in result.records) == [f"{base}/", f"{base}/private/x"]


@pytest.mark.asyncio()
async def test_missing_domain_list_writes_nothing(make_config, tmp_path):
    cfg = make_config(domains_file=tmp_path / "missing.csv")
    with pytest.raises(FileNotFoundError):
        await start_shard(cfg)
    assert not cfg.artifacts_dir.exists()

    with pytest.raises(FileNotFoundError):
        await start_shard(make_config())


def test_engine_facade_merge_missing_dir(make_config):
    engine = Engine(make_config())
    with pytest.raises(FileNotFoundError):
        engine.start_merge()


def test_load_known_urls_with_bad_bytes_is_empty(tmp_path):
    index = tmp_path / "index.json"
    lines = [json.dumps({"url": f"https://a.example/{i}"}) for i in range(2000)]
    index.write_bytes(("\n".join(lines) + "\n").encode("utf-8") + b"\xff\n")
    assert load_known_urls(index) == frozenset()


def test_load_known_urls_on_directory_is_empty(tmp_path):
    assert load_known_urls(tmp_path) == frozenset()
