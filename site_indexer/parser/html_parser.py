# === FILE: site_indexer/parser/html_parser.py ===
"""Default page extractor for SiteIndexer.

The crawler treats extraction as a pluggable collaborator: any callable
``(html: str, url: str) -> ExtractedPage`` can be handed to the fetch
pipeline. This module provides the stock implementation:

* title — document ``<title>`` text or ``""`` if absent.
* description — ``<meta name="description" content="…">`` or ``""``.
* text — non-empty ``<p>`` paragraphs joined by newlines, capped at
  *max_text_chars* (field-length truncation happens later, on the record).
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import Callable

from bs4 import BeautifulSoup

from site_indexer.models import ExtractedPage

__all__: Sequence[str] = ("PageExtractor", "extract_page", "make_extractor")

PageExtractor = Callable[[str, str], ExtractedPage]

_DEFAULT_MAX_TEXT = 120_000


def _meta_description(soup: BeautifulSoup) -> str:
    for tag in soup.find_all("meta"):
        name = tag.get("name")
        if isinstance(name, str) and name.strip().lower() == "description":
            content = tag.get("content")
            return content.strip() if isinstance(content, str) else ""
    return ""


def extract_page(html: str, url: str = "", *, max_text_chars: int = _DEFAULT_MAX_TEXT) -> ExtractedPage:
    """Extract title, meta description and paragraph text from *html*.

    Parameters
    ----------
    html
        Raw markup of the page.
    url
        Page URL; unused by the stock extractor but part of the collaborator
        signature so custom extractors can resolve relative data.
    """
    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""

    paragraphs = [p.get_text(" ", strip=True) for p in soup.find_all("p")]
    text = "\n".join(p for p in paragraphs if p)[:max_text_chars]

    return ExtractedPage(title=title, description=_meta_description(soup), text=text)


def make_extractor(max_text_chars: int) -> PageExtractor:
    """Bind *max_text_chars* into an extractor callable."""

    def _extract(html: str, url: str) -> ExtractedPage:
        return extract_page(html, url, max_text_chars=max_text_chars)

    return _extract
