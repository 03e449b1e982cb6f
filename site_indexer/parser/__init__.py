# File: site_indexer/parser/__init__.py
"""site_indexer.parser: разбор robots.txt, sitemap XML и HTML-страниц."""

from .html_parser import extract_page
from .robots_parser import RobotsTxtRules, parse_robots
from .sitemap_parser import ParseStrategy, SitemapParseResult, parse_sitemap

__all__ = [
    "extract_page",
    "RobotsTxtRules",
    "parse_robots",
    "ParseStrategy",
    "SitemapParseResult",
    "parse_sitemap",
]
