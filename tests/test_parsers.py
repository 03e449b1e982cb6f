# File: tests/test_parsers.py
import gzip

from site_indexer.crawler.fetcher import maybe_gunzip
from site_indexer.parser import ParseStrategy, extract_page, parse_robots, parse_sitemap

from .conftest import html_page, sitemap_index, urlset


# --------------------------------------------------------------------------- #
#                                  sitemap                                     #
# --------------------------------------------------------------------------- #


def test_parse_urlset():
    result = parse_sitemap(urlset("https://a.example/1", " https://a.example/2 "))
    assert result.strategy is ParseStrategy.STRUCTURED
    assert result.kind == "urlset"
    assert result.locs == ["https://a.example/1", "https://a.example/2"]


def test_parse_sitemap_index():
    result = parse_sitemap(sitemap_index("https://a.example/s1.xml").encode("utf-8"))
    assert result.strategy is ParseStrategy.STRUCTURED
    assert result.kind == "sitemapindex"
    assert result.locs == ["https://a.example/s1.xml"]


def test_parse_sitemap_without_namespace():
    result = parse_sitemap("<urlset><url><loc>https://a.example/x</loc></url></urlset>")
    assert result.strategy is ParseStrategy.STRUCTURED
    assert result.locs == ["https://a.example/x"]


def test_broken_xml_falls_back_to_regex():
    body = "<urlset><url><loc>https://a.example/x?a=1&amp;b=2</loc></url><url><loc>https://a.example/y</loc>"
    result = parse_sitemap(body)
    assert result.strategy is ParseStrategy.REGEX_FALLBACK
    assert result.locs == ["https://a.example/x?a=1&b=2", "https://a.example/y"]


def test_unknown_root_falls_back_to_regex():
    result = parse_sitemap("<rss><item><loc>https://a.example/z</loc></item></rss>")
    assert result.strategy is ParseStrategy.REGEX_FALLBACK
    assert result.locs == ["https://a.example/z"]


def test_garbage_is_failed():
    assert parse_sitemap("<html><body>Not found</body></html>").strategy is ParseStrategy.FAILED
    assert parse_sitemap(b"").strategy is ParseStrategy.FAILED


def test_external_entities_are_not_resolved():
    body = (
        '<?xml version="1.0"?><!DOCTYPE urlset [<!ENTITY e SYSTEM "file:///etc/passwd">]>'
        "<urlset><url><loc>https://a.example/&e;</loc></url></urlset>"
    )
    result = parse_sitemap(body)
    assert all("root:" not in loc for loc in result.locs)


def test_maybe_gunzip():
    raw = urlset("https://a.example/gz").encode("utf-8")
    packed = gzip.compress(raw)
    assert maybe_gunzip("https://a.example/s.xml.gz", "application/octet-stream", packed) == raw
    assert maybe_gunzip("https://a.example/s.xml", "application/xml", packed) == raw
    assert maybe_gunzip("https://a.example/s.xml", "application/xml", raw) == raw
    assert maybe_gunzip("https://a.example/s.xml.gz", "", b"not gzip") == b"not gzip"


# --------------------------------------------------------------------------- #
#                                  robots                                      #
# --------------------------------------------------------------------------- #

ROBOTS = """
# comment
User-agent: *
Disallow: /private/
Allow: /private/public
Disallow: /*.pdf$

User-agent: TestAgent
Disallow: /only-for-test

Sitemap: https://a.example/sitemap-main.xml
sitemap: /relative.xml
"""


def test_robots_sitemaps_in_file_order():
    rules = parse_robots(ROBOTS)
    assert rules.sitemaps == ["https://a.example/sitemap-main.xml", "/relative.xml"]


def test_robots_generic_group():
    rules = parse_robots(ROBOTS)
    assert rules.can_fetch("OtherBot", "/")
    assert not rules.can_fetch("OtherBot", "/private/x")
    assert rules.can_fetch("OtherBot", "/private/public/page")
    assert not rules.can_fetch("OtherBot", "/docs/file.pdf")
    assert rules.can_fetch("OtherBot", "/docs/file.pdf?x=1")


def test_robots_specific_group_wins():
    rules = parse_robots(ROBOTS)
    assert not rules.can_fetch("TestAgent/1.0", "/only-for-test")
    assert rules.can_fetch("TestAgent/1.0", "/private/x")


def test_robots_empty_disallow_allows_everything():
    rules = parse_robots("User-agent: *\nDisallow:\n")
    assert rules.can_fetch("Any", "/anything")
    assert rules.sitemaps == []


# --------------------------------------------------------------------------- #
#                                   html                                       #
# --------------------------------------------------------------------------- #


def test_extract_page_fields():
    page = extract_page(html_page("Hello", "Short summary", "First paragraph"))
    assert page.title == "Hello"
    assert page.description == "Short summary"
    assert page.text == "First paragraph"
    assert page.missing_fields() == []


def test_extract_page_joins_paragraphs_and_ignores_empty():
    html = (
        '<html><head><META NAME="Description" content=" d "></head>'
        "<body><p>one</p><p>  </p><div><p>two <b>bold</b></p></div></body></html>"
    )
    page = extract_page(html)
    assert page.title == ""
    assert page.description == "d"
    assert page.text == "one\ntwo bold"
    assert page.missing_fields() == ["title"]


def test_extract_page_caps_text():
    page = extract_page(html_page(text="x" * 50), max_text_chars=10)
    assert page.text == "x" * 10
