"""
sources/http.py — Shared HTTP access for every live source.

One HttpFetcher wraps one httpx.AsyncClient for the whole run and adds:

  - per-host spacing between calls (RateLimiter)
  - retry with exponential backoff on transient failures
    (transport errors, 429, 5xx)
  - explicit redirect following for text/CSV downloads, bounded by
    settings.max_redirects
  - mapping of transport and decoding failures onto the FetchError taxonomy

Usage:
    async with HttpFetcher.open(settings) as http:
        payload = await http.get_json("https://api.llama.fi/v2/historicalChainTvl/Ethereum")
        csv_text = await http.get_text("https://etherscan.io/chart/tx", params={"output": "csv"})
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog

from ethval_pipeline.errors import SchemaMismatch, SourceUnavailable
from ethval_pipeline.utils.rate_limit import RateLimiter
from ethval_pipeline.utils.retry import RetryPolicy, call_with_retry
from ethval_shared.config import Settings

log = structlog.get_logger(__name__)


def is_transient(exc: BaseException) -> bool:
    """True for failures worth retrying: network errors, 429 and 5xx."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class HttpFetcher:
    """Rate-limited, retrying GET helper shared by all sources."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: Settings,
        *,
        limiter: RateLimiter | None = None,
    ) -> None:
        self._client = client
        self._max_redirects = settings.max_redirects
        self._limiter = limiter or RateLimiter(settings.rate_limit_delay)
        self._policy = RetryPolicy.from_settings(settings, retry_if=is_transient)

    @classmethod
    @asynccontextmanager
    async def open(cls, settings: Settings) -> AsyncIterator["HttpFetcher"]:
        """Own an AsyncClient for the duration of the block."""
        async with httpx.AsyncClient(
            timeout=settings.http_timeout,
            headers={"User-Agent": settings.user_agent},
            max_redirects=settings.max_redirects,
        ) as client:
            yield cls(client, settings)

    async def _get(
        self,
        url: str | httpx.URL,
        params: dict[str, Any] | None,
        *,
        follow_redirects: bool,
    ) -> httpx.Response:
        await self._limiter.wait(httpx.URL(url).host)
        response = await self._client.get(
            url, params=params, follow_redirects=follow_redirects
        )
        if not response.is_redirect:
            response.raise_for_status()
        return response

    async def _get_with_retry(
        self,
        url: str | httpx.URL,
        params: dict[str, Any] | None,
        *,
        follow_redirects: bool,
    ) -> httpx.Response:
        try:
            return await call_with_retry(
                self._policy, self._get, url, params, follow_redirects=follow_redirects
            )
        except httpx.HTTPStatusError as exc:
            raise SourceUnavailable(
                f"HTTP {exc.response.status_code} from {exc.request.url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"{type(exc).__name__} fetching {url}: {exc}") from exc

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET url and decode the JSON body."""
        log.debug("http_get_json", url=url)
        response = await self._get_with_retry(
            url, params, follow_redirects=True
        )
        try:
            return response.json()
        except ValueError as exc:
            raise SchemaMismatch(f"invalid JSON from {url}: {exc}") from exc

    async def get_text(self, url: str, params: dict[str, Any] | None = None) -> str:
        """
        GET url and return the decoded body, following at most
        settings.max_redirects redirects.

        Raises:
            SourceUnavailable: network failure, error status, or too many
                               redirects.
        """
        log.debug("http_get_text", url=url)
        current: str | httpx.URL = url
        current_params = params
        for hop in range(self._max_redirects + 1):
            response = await self._get_with_retry(
                current, current_params, follow_redirects=False
            )
            if not response.is_redirect:
                return response.text
            current = response.url.join(response.headers["location"])
            current_params = None
            log.debug("http_redirect", hop=hop + 1, location=str(current))
        raise SourceUnavailable(
            f"too many redirects (> {self._max_redirects}) fetching {url}"
        )
