"""
sources/coingecko.py — CoinGecko market charts and global dominance.

market_chart returns parallel [[ms_timestamp, value], ...] arrays:

    {"prices": [[1709942400000, 3900.1], ...],
     "market_caps": [[...]], "total_volumes": [[...]]}

The adapter zips the requested arrays into one row per UTC day; the first
point of a day wins (the trailing intraday "now" point is ignored when the
day already has its midnight point).

/global is a snapshot used to enrich today's dominance record.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from typing import Any

from ethval_pipeline.errors import SchemaMismatch
from ethval_pipeline.sources.base import BaseSource, RawRow
from ethval_pipeline.sources.http import HttpFetcher
from ethval_pipeline.sources.rest_json import RestJsonSource
from ethval_shared.config import Settings
from ethval_shared.time_utils import HistoryWindow, parse_chain_date


def _auth_params(settings: Settings) -> dict[str, Any]:
    if settings.coingecko_api_key:
        return {"x_cg_demo_api_key": settings.coingecko_api_key}
    return {}


class CoinGeckoMarketChartSource(BaseSource):
    """Daily series from /coins/{id}/market_chart."""

    name = "coingecko"

    def __init__(
        self,
        http: HttpFetcher,
        settings: Settings,
        *,
        series: Mapping[str, str],
        coin_id: str = "ethereum",
        vs_currency: str = "usd",
    ) -> None:
        super().__init__()
        self._http = http
        self._url = f"{settings.coingecko_base_url}/coins/{coin_id}/market_chart"
        self._params = {"vs_currency": vs_currency, "interval": "daily", **_auth_params(settings)}
        self._series = dict(series)
        self.description = f"CoinGecko market_chart {coin_id}/{vs_currency}"

    async def extract(
        self,
        window: HistoryWindow,
        *,
        dimension: str | None = None,
    ) -> list[RawRow]:
        payload = await self._http.get_json(
            self._url, params={**self._params, "days": window.days}
        )
        if not isinstance(payload, dict):
            raise SchemaMismatch("coingecko: expected an object", source=self.name)

        rows: dict[date, RawRow] = {}
        for field, key in self._series.items():
            points = payload.get(key)
            if not isinstance(points, list):
                raise SchemaMismatch(f"coingecko: response has no {key}", source=self.name)
            seen: set[date] = set()
            for ts, value in points:
                d = parse_chain_date(ts)
                if d is None or d in seen:
                    continue
                seen.add(d)
                rows.setdefault(d, {"date": d})[field] = value
        return [rows[d] for d in sorted(rows)]


def coingecko_dominance_snapshot(http: HttpFetcher, settings: Settings) -> RestJsonSource:
    """Today's ETH share of total crypto market cap, in percent."""
    return RestJsonSource(
        http,
        name="coingecko",
        url=f"{settings.coingecko_base_url}/global",
        params=_auth_params(settings),
        rows_path=("data",),
        date_field=None,
        fields={"dominance_pct": "market_cap_percentage.eth"},
        description="CoinGecko /global market_cap_percentage.eth",
    )
