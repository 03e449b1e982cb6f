# File: site_indexer/errors.py
"""site_indexer.errors: exception hierarchy shared by crawler, state and merge code.

Page-level and host-level failures are raised as :class:`FetchError`
subclasses and caught at the unit that owns them (page, host, shard);
only fatal input/output problems leave a run, as plain ``OSError``.
"""
from __future__ import annotations

from pathlib import Path
from typing import Sequence, Union


class IndexerError(Exception):
    """Base class for all SiteIndexer errors."""


class InvalidUrlError(IndexerError, ValueError):
    """Raised when a string cannot be turned into an absolute http(s) URL."""

    def __init__(self, raw: object, reason: str = "not a valid URL") -> None:
        self.raw = raw
        self.reason = reason
        super().__init__(f"{raw!r}: {reason}")


class FetchError(IndexerError):
    """A single fetch attempt was rejected."""

    retryable: bool = True

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(f"{url}: {message}")


class HttpStatusError(FetchError):
    def __init__(self, url: str, status: int) -> None:
        self.status = status
        super().__init__(url, f"HTTP {status}")


class NonHtmlContentError(FetchError):
    retryable = False

    def __init__(self, url: str, content_type: str) -> None:
        self.content_type = content_type
        super().__init__(url, f"non-html {content_type or '<none>'}")


class EmptyContentError(FetchError):
    retryable = False

    def __init__(self, url: str) -> None:
        super().__init__(url, "empty body")


class IncompleteExtractionError(FetchError):
    def __init__(self, url: str, missing_fields: Sequence[str]) -> None:
        self.missing_fields = tuple(missing_fields)
        super().__init__(url, "missing " + ", ".join(self.missing_fields))


class MalformedArtifactError(IndexerError):
    """A shard artifact could not be decoded."""

    def __init__(self, path: Union[str, Path], message: str) -> None:
        self.path = Path(path)
        super().__init__(f"{self.path}: {message}")


__all__ = [
    "IndexerError",
    "InvalidUrlError",
    "FetchError",
    "HttpStatusError",
    "NonHtmlContentError",
    "EmptyContentError",
    "IncompleteExtractionError",
    "MalformedArtifactError",
]
