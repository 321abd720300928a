"""
utils/retry.py — Exponential-backoff retry for async HTTP calls.

Uses tenacity under the hood. Logs each attempt with structlog so failures
are observable without crashing the pipeline. The policy is built from
Settings at runtime rather than fixed at decoration time, so tests can run
with a single attempt.

Usage:
    from ethval_pipeline.utils.retry import RetryPolicy, call_with_retry

    policy = RetryPolicy.from_settings(settings, retry_if=is_transient)
    response = await call_with_retry(policy, client.get, url, params=params)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ethval_shared.config import Settings

log = structlog.get_logger(__name__)

T = TypeVar("T")


def _always(exc: BaseException) -> bool:
    return isinstance(exc, Exception)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Delays: base_delay * 2^(attempt-1), capped at max_delay.
    Default: 1 s, 2 s, 4 s.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    retry_if: Callable[[BaseException], bool] = _always

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        retry_if: Callable[[BaseException], bool] = _always,
    ) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, settings.http_max_attempts),
            base_delay=settings.http_retry_base_delay,
            retry_if=retry_if,
        )


async def call_with_retry(
    policy: RetryPolicy,
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """
    Await fn(*args, **kwargs), retrying exceptions accepted by policy.retry_if.

    The last exception is re-raised unchanged once attempts run out, so
    callers can still match on its type.
    """
    attempt_log = log.bind(function=getattr(fn, "__qualname__", repr(fn)))
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(multiplier=policy.base_delay, max=policy.max_delay),
        retry=retry_if_exception(policy.retry_if),
        reraise=True,
    ):
        with attempt:
            attempt_num = attempt.retry_state.attempt_number
            if attempt_num > 1:
                attempt_log.warning(
                    "retry_attempt",
                    attempt=attempt_num,
                    max_attempts=policy.max_attempts,
                )
            return await fn(*args, **kwargs)
    raise AssertionError("unreachable")  # pragma: no cover
