"""Bounded admission gate shared by all handles of one job kind."""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class ConcurrencyLimiter:
    """Async context manager admitting at most ``size`` bodies at once.

    Example:
        limiter = ConcurrencyLimiter("export", 2)
        async with limiter:
            await body()
    """

    def __init__(self, name: str, size: int):
        if size <= 0:
            raise ValueError(f"limiter size must be positive, got {size}")
        self.name = name
        self.size = size
        self._semaphore = asyncio.Semaphore(size)
        self._active = 0

    @property
    def active(self) -> int:
        """Bodies currently admitted."""
        return self._active

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self._semaphore.acquire()
        self._active += 1
        logger.debug(f"{self.name} limiter: {self._active}/{self.size} active")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._active -= 1
        self._semaphore.release()
