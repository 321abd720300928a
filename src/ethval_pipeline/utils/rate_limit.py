"""
utils/rate_limit.py — Per-host spacing between successive HTTP calls.

Third-party APIs (Etherscan, CryptoCompare, DefiLlama) throttle bursts, so
every call to the same host waits until at least `min_interval` seconds
have passed since the previous one started.

Usage:
    limiter = RateLimiter(min_interval=0.3)
    await limiter.wait("api.etherscan.io")
    response = await client.get(url)
"""

from __future__ import annotations

import asyncio
import time

import structlog

log = structlog.get_logger(__name__)


class RateLimiter:
    """Async-safe minimum-interval limiter keyed by host."""

    def __init__(self, min_interval: float) -> None:
        self._min_interval = max(0.0, min_interval)
        self._last_call: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def wait(self, key: str) -> None:
        """Sleep until the next call to *key* is allowed, then claim it."""
        async with self._lock_for(key):
            last = self._last_call.get(key)
            if last is not None:
                delay = self._min_interval - (time.monotonic() - last)
                if delay > 0:
                    log.debug("rate_limit_wait", host=key, delay_s=round(delay, 3))
                    await asyncio.sleep(delay)
            self._last_call[key] = time.monotonic()

