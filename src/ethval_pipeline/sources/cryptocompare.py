"""
sources/cryptocompare.py — CryptoCompare daily OHLCV.

Endpoint: {base}/data/v2/histoday?fsym=ETH&tsym=USD&limit=2000&toTs=<cursor>
Response:  {"Response": "Success", "Data": {"Data": [{"time": 1709942400,
            "open": .., "high": .., "low": .., "close": .., "volumeto": ..}]}}

One request returns at most 2000 days ending at toTs, so longer histories are
walked backwards with toTs = oldest time - 86400 until the window is covered.
Days with close <= 0 (before listing) are dropped.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ethval_pipeline.errors import SourceUnavailable
from ethval_pipeline.sources.http import HttpFetcher
from ethval_pipeline.sources.rest_json import BackwardCursor, FieldGetter, RestJsonSource
from ethval_shared.config import Settings

PAGE_LIMIT = 2000

OHLCV_FIELDS: dict[str, FieldGetter] = {
    "open": "open",
    "high": "high",
    "low": "low",
    "close": "close",
    "volume": "volumeto",
}


class CryptoCompareHistoDaySource(RestJsonSource):
    """Paginated daily candles for one currency pair."""

    def __init__(
        self,
        http: HttpFetcher,
        settings: Settings,
        *,
        fsym: str = "ETH",
        tsym: str = "USD",
        fields: Mapping[str, FieldGetter] | None = None,
    ) -> None:
        params: dict[str, Any] = {"fsym": fsym, "tsym": tsym, "limit": PAGE_LIMIT}
        if settings.cryptocompare_api_key:
            params["api_key"] = settings.cryptocompare_api_key
        super().__init__(
            http,
            name="cryptocompare",
            url=f"{settings.cryptocompare_base_url}/data/v2/histoday",
            params=params,
            rows_path=("Data", "Data"),
            date_field="time",
            fields=fields or OHLCV_FIELDS,
            paginator=BackwardCursor(param="toTs", time_field="time"),
            description=f"CryptoCompare histoday {fsym}/{tsym}",
        )

    def check_payload(self, payload: Any) -> None:
        if isinstance(payload, dict) and payload.get("Response") == "Error":
            raise SourceUnavailable(
                f"cryptocompare: {payload.get('Message', 'unknown error')}",
                source=self.name,
            )

    def keep_item(self, item: Any) -> bool:
        close = item.get("close") if isinstance(item, dict) else None
        return isinstance(close, (int, float)) and close > 0
