# site_indexer/crawler/__init__.py
"""site_indexer.crawler: загрузка sitemap и страниц, конвейер и воркер шарда."""

from .fetcher import Fetcher
from .pipeline import FetchPipeline, FetchResult
from .sitemap import SitemapExpander
from .worker import HostPhase, ShardResult, ShardWorker

__all__ = [
    "Fetcher",
    "FetchPipeline",
    "FetchResult",
    "SitemapExpander",
    "HostPhase",
    "ShardResult",
    "ShardWorker",
]
