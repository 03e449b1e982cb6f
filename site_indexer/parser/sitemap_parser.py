# File: site_indexer/parser/sitemap_parser.py
"""site_indexer.parser.sitemap_parser: разбор sitemap.xml / sitemap index и извлечение <loc>.

Две стратегии, результат помечается той, что сработала:

* ``STRUCTURED`` – документ разобран lxml и имеет вид ``urlset`` или
  ``sitemapindex``;
* ``REGEX_FALLBACK`` – XML битый или неизвестной формы, но регулярное
  выражение нашло теги ``<loc>``;
* ``FAILED`` – ни одна стратегия ничего не дала.
"""

from __future__ import annotations

import enum
import html
import re
from dataclasses import dataclass, field
from typing import List, Union

from lxml import etree

_LOC_RE = re.compile(r"<loc>\s*([^<]+?)\s*</loc>", re.IGNORECASE)
_SHAPES = {"urlset": "{*}url/{*}loc", "sitemapindex": "{*}sitemap/{*}loc"}


class ParseStrategy(str, enum.Enum):
    STRUCTURED = "structured"
    REGEX_FALLBACK = "regex_fallback"
    FAILED = "failed"


@dataclass(slots=True)
class SitemapParseResult:
    """Найденные ``<loc>`` и стратегия, которой они получены."""

    strategy: ParseStrategy
    locs: List[str] = field(default_factory=list)
    kind: str = ""  # "urlset" | "sitemapindex" | ""


def _as_bytes(content: Union[str, bytes]) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else content


def _structured(data: bytes) -> SitemapParseResult | None:
    parser = etree.XMLParser(
        ns_clean=True, recover=False, resolve_entities=False, no_network=True, huge_tree=False
    )
    try:
        root = etree.fromstring(data, parser=parser)
    except (etree.XMLSyntaxError, ValueError):
        return None
    if root is None or not isinstance(root.tag, str):
        return None
    kind = etree.QName(root).localname
    path = _SHAPES.get(kind)
    if path is None:
        return None
    locs = [loc.text.strip() for loc in root.findall(path) if loc.text and loc.text.strip()]
    return SitemapParseResult(ParseStrategy.STRUCTURED, locs, kind)


def _regex(data: bytes) -> List[str]:
    text = data.decode("utf-8", errors="replace")
    return [html.unescape(m.group(1)) for m in _LOC_RE.finditer(text)]


def parse_sitemap(content: Union[str, bytes]) -> SitemapParseResult:
    """Разбирает sitemap и возвращает ``<loc>`` в порядке документа.

    Args:
        content: содержимое sitemap (уже распакованное из gzip).

    Пример:
    ```python
    from site_indexer.parser.sitemap_parser import parse_sitemap

    result = parse_sitemap(b"<urlset><url><loc>https://a.example/</loc></url></urlset>")
    print(result.strategy, result.locs)
    ```
    """
    data = _as_bytes(content)
    if not data.strip():
        return SitemapParseResult(ParseStrategy.FAILED)
    result = _structured(data)
    if result is not None:
        return result
    locs = _regex(data)
    if locs:
        return SitemapParseResult(ParseStrategy.REGEX_FALLBACK, locs)
    return SitemapParseResult(ParseStrategy.FAILED)


__all__ = ["ParseStrategy", "SitemapParseResult", "parse_sitemap"]
