# site_indexer/crawler/pool.py
"""
Bounded worker pool: ``concurrency`` tasks drain a shared queue.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")

logger = logging.getLogger("SiteIndexer")


async def run_bounded(
    items: Iterable[T],
    handler: Callable[[T], Awaitable[None]],
    concurrency: int,
) -> None:
    """Run ``handler(item)`` for every item with at most *concurrency* in flight.

    An exception raised by one handler is logged and does not stop the
    others. Cancelling the caller cancels every worker.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")
    queue: asyncio.Queue[T] = asyncio.Queue()
    for item in items:
        queue.put_nowait(item)
    if queue.empty():
        return

    async def _worker() -> None:
        while True:
            item = await queue.get()
            try:
                await handler(item)
            except Exception:
                logger.exception("Worker failed on %r", item)
            finally:
                queue.task_done()

    workers = [asyncio.create_task(_worker()) for _ in range(min(concurrency, queue.qsize()))]
    try:
        await queue.join()
    finally:
        for w in workers:
            w.cancel()
        await asyncio.gather(*workers, return_exceptions=True)


__all__ = ["run_bounded"]
