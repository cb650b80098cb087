"""Pacing for everything that touches the retailer site."""
import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateGate:
    """Runs one operation at a time, with a minimum gap between operation starts."""

    def __init__(self, min_interval_ms: int = 1000):
        self.min_interval = max(min_interval_ms, 0) / 1000
        self._lock = asyncio.Lock()
        self._last_start: float | None = None

    async def schedule(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Wait for the gate, then run the operation and return its result."""
        async with self._lock:
            if self._last_start is not None:
                elapsed = time.monotonic() - self._last_start
                if elapsed < self.min_interval:
                    wait_time = self.min_interval - elapsed
                    logger.debug(f"Rate gate waiting {wait_time:.2f}s")
                    await asyncio.sleep(wait_time)
            self._last_start = time.monotonic()
            return await operation()
