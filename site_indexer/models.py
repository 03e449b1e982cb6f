# site_indexer/models.py
"""
Data models shared by the crawler, the crawl-state ledger and the merge.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from site_indexer.errors import InvalidUrlError
from site_indexer.utils import canonicalize, hostname_of, origin_of, record_id, truncate


@dataclass(slots=True, frozen=True)
class DomainEntry:
    """One configured domain: the raw input plus its canonical origin and host."""

    raw_input: str
    canonical_origin: str
    host: str

    @classmethod
    def from_raw(cls, raw: str) -> DomainEntry:
        """Build an entry from a raw list value; raises :class:`InvalidUrlError`."""
        url = canonicalize(str(raw).strip().rstrip("/"))
        origin = origin_of(url)
        return cls(raw_input=raw, canonical_origin=origin, host=origin.split("://", 1)[1])

    @property
    def hostname(self) -> str:
        """Host without port (used for subdomain matching)."""
        return hostname_of(self.canonical_origin) or self.host

    @property
    def homepage(self) -> str:
        return self.canonical_origin + "/"


@dataclass(slots=True, frozen=True)
class PageCandidate:
    """A page URL discovered for a host; never persisted."""

    url: str


@dataclass(slots=True, frozen=True)
class ExtractedPage:
    """Output of the page extractor before field limits are applied."""

    title: str
    description: str
    text: str

    def missing_fields(self) -> List[str]:
        return [name for name in ("title", "description", "text") if not getattr(self, name)]


@dataclass(slots=True, frozen=True)
class PageRecord:
    """One entry of the canonical index."""

    id: int
    url: str
    title: str
    description: str
    text: str

    @classmethod
    def build(
        cls, url: str, title: object, description: object, text: object, max_chars: int
    ) -> PageRecord:
        """Canonicalize *url*, derive the id and enforce the field-length limit."""
        canonical = canonicalize(url)
        return cls(
            id=record_id(canonical),
            url=canonical,
            title=truncate(title, max_chars),
            description=truncate(description, max_chars),
            text=truncate(text, max_chars),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], max_chars: int) -> PageRecord:
        """Rebuild a record from stored JSON, re-validating every field.

        Legacy entries may carry only ``id`` (the URL) or untruncated text.
        """
        raw_url = data.get("url") or data.get("id")
        if not isinstance(raw_url, str) or not raw_url.strip():
            raise InvalidUrlError(raw_url, "record without url")
        return cls.build(
            raw_url,
            data.get("title") or "",
            data.get("description") or "",
            data.get("text") or "",
            max_chars,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "text": self.text,
        }


def _cap_recent(urls: Iterable[str], cap: int) -> Tuple[str, ...]:
    unique = list(dict.fromkeys(urls))
    if len(unique) > cap:
        unique = unique[len(unique) - cap :]
    return tuple(unique)


@dataclass(slots=True, frozen=True)
class HostState:
    """Ledger entry of one host.

    ``last_crawled_at`` is in epoch milliseconds (the on-disk ``lastAt``);
    ``seen_urls`` keeps insertion order so that the cap drops the oldest
    URLs first.
    """

    host: str
    last_crawled_at: int = 0
    seen_urls: Tuple[str, ...] = field(default_factory=tuple)

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        return self.last_crawled_at > 0 and now_ms - self.last_crawled_at < ttl_ms

    def advanced(self, now_ms: int, new_urls: Iterable[str], cap: int) -> HostState:
        """State after a crawl: ``lastAt`` moves to *now_ms*, URLs are unioned and capped."""
        return HostState(
            host=self.host,
            last_crawled_at=now_ms,
            seen_urls=_cap_recent([*self.seen_urls, *new_urls], cap),
        )

    def merged(self, other: HostState, cap: int) -> HostState:
        """Combine two fragments of the same host: max of ``lastAt``, union of URLs."""
        return HostState(
            host=self.host,
            last_crawled_at=max(self.last_crawled_at, other.last_crawled_at),
            seen_urls=_cap_recent([*self.seen_urls, *other.seen_urls], cap),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"lastAt": self.last_crawled_at, "urls": list(self.seen_urls)}

    @classmethod
    def from_dict(cls, host: str, data: Optional[Mapping[str, Any]]) -> HostState:
        """Parse the ``{"lastAt": ..., "urls": [...]}`` form; bad values fall back to empty."""
        data = data or {}
        last_at = data.get("lastAt", 0)
        if isinstance(last_at, bool) or not isinstance(last_at, (int, float)):
            last_at = 0
        urls = data.get("urls") or []
        if not isinstance(urls, list):
            urls = []
        return cls(
            host=host,
            last_crawled_at=int(last_at),
            seen_urls=tuple(dict.fromkeys(u for u in urls if isinstance(u, str) and u)),
        )


__all__ = [
    "DomainEntry",
    "PageCandidate",
    "ExtractedPage",
    "PageRecord",
    "HostState",
]
