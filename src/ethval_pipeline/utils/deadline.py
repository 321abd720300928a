"""
utils/deadline.py — Run-level deadline and cancellation signal.

The orchestrator checks the deadline between metrics; the resolver and the
loader check it between tiers and between batches. A passed deadline or a
set cancel event raises RunCancelled, which the metric boundary turns into
an explicit `failed` status.

Usage:
    deadline = Deadline.after(settings.run_deadline_seconds)
    deadline.check("before_tier")       # raises RunCancelled when expired
    deadline.cancel()                   # e.g. from a SIGTERM handler
"""

from __future__ import annotations

import asyncio
import time

from ethval_pipeline.errors import RunCancelled


class Deadline:
    """Monotonic deadline plus a cooperative cancel flag."""

    def __init__(self, expires_at: float | None = None) -> None:
        self._expires_at = expires_at
        self._cancelled = asyncio.Event()

    @classmethod
    def after(cls, seconds: float | None) -> "Deadline":
        if seconds is None:
            return cls(None)
        return cls(time.monotonic() + seconds)

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def check(self, where: str = "") -> None:
        if self._cancelled.is_set():
            raise RunCancelled(f"run cancelled{f' at {where}' if where else ''}")
        if self._expires_at is not None and time.monotonic() >= self._expires_at:
            raise RunCancelled(f"run deadline exceeded{f' at {where}' if where else ''}")
