from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """Serialize blocking provider calls behind a spacing and concurrency cap.

    ``run`` dispatches calls in submission order, keeps at most
    ``max_concurrent`` of them in flight and starts successive calls at least
    ``min_interval`` seconds apart. The callable runs in a worker thread so the
    event loop keeps scheduling other tasks while a request is pending.
    """

    def __init__(self, *, min_interval: float, max_concurrent: int = 1, name: str = "limiter") -> None:
        if min_interval < 0:
            msg = "min_interval must be >= 0"
            raise ValueError(msg)
        if max_concurrent <= 0:
            msg = "max_concurrent must be > 0"
            raise ValueError(msg)

        self.min_interval = min_interval
        self.max_concurrent = max_concurrent
        self.name = name
        self.dispatched = 0
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._lock = asyncio.Lock()
        self._next_start: float | None = None

    async def run(self, func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
        async with self._semaphore:
            await self._wait_turn()
            return await asyncio.to_thread(func, *args, **kwargs)

    async def _wait_turn(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            now = loop.time()
            if self._next_start is not None and self._next_start > now:
                await asyncio.sleep(self._next_start - now)
                now = loop.time()
            self._next_start = now + self.min_interval
            self.dispatched += 1
            logger.debug("%s dispatching request #%d", self.name, self.dispatched)


__all__ = ["RateLimiter"]
