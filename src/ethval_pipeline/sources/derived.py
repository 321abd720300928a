"""
sources/derived.py — Tiers computed from data already collected this run.

StoredSeriesSource  reads rows back from a Supabase table
VolatilitySource    annualized rolling volatility from a price tier

Usage:
    stored = StoredSeriesSource(loader, table="historical_eth_price", columns=["date", "close"])
    vol = VolatilitySource(stored, windows={"volatility_7d": 7, "volatility_30d": 30})
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from datetime import date
from typing import TYPE_CHECKING

import polars as pl
from dateutil.relativedelta import relativedelta

from ethval_pipeline.errors import RowError
from ethval_pipeline.sources.base import BaseSource, RawRow
from ethval_pipeline.transforms.normalize import parse_number
from ethval_shared.time_utils import HistoryWindow, parse_chain_date

if TYPE_CHECKING:
    from ethval_pipeline.loaders.supabase_loader import SupabaseLoader

TRADING_DAYS_PER_YEAR = 365


class StoredSeriesSource(BaseSource):
    """Read a previously written series from the store."""

    def __init__(
        self,
        loader: SupabaseLoader,
        *,
        table: str,
        columns: Sequence[str],
        name: str | None = None,
        lookback_days: int = 0,
    ) -> None:
        super().__init__(name or f"store:{table}")
        self._loader = loader
        self._table = table
        self._columns = list(columns)
        self._lookback_days = lookback_days
        self.description = f"rows already stored in {table}"

    async def extract(
        self,
        window: HistoryWindow,
        *,
        dimension: str | None = None,
    ) -> list[RawRow]:
        start = window.start - relativedelta(days=self._lookback_days)
        return await self._loader.query(
            self._table,
            ",".join(self._columns),
            filters=[
                ("date", "gte", start.isoformat()),
                ("date", "lte", window.end.isoformat()),
            ],
            order="date",
        )


class VolatilitySource(BaseSource):
    """
    Annualized volatility of daily log returns:

        stdev(ln(p_t / p_{t-1}) over N days) * sqrt(365) * 100

    The price tier is asked for the window plus the longest lookback, so the
    first day of the window already has a full rolling sample.
    """

    def __init__(
        self,
        prices: BaseSource,
        *,
        windows: Mapping[str, int],
        price_field: str = "close",
        name: str = "derived",
    ) -> None:
        super().__init__(name)
        self._prices = prices
        self._windows = dict(windows)
        self._price_field = price_field
        self.description = f"rolling volatility from {prices.name}"

    async def extract(
        self,
        window: HistoryWindow,
        *,
        dimension: str | None = None,
    ) -> list[RawRow]:
        lookback = max(self._windows.values())
        extended = HistoryWindow(start=window.start - relativedelta(days=lookback), end=window.end)
        raw = await self._prices.fetch_raw(extended, dimension=dimension)

        prices: dict[date, float] = {}
        for row in raw:
            d = parse_chain_date(row.get("date"))
            value = row.get(self._price_field)
            if d is None or value is None:
                continue
            try:
                price = parse_number(value)
            except RowError:
                continue
            if price > 0:
                prices.setdefault(d, price)
        if len(prices) < 2:
            return []

        df = (
            pl.DataFrame({"date": list(prices), "price": list(prices.values())})
            .sort("date")
            .with_columns(pl.col("price").log().diff().alias("log_return"))
        )
        df = df.with_columns(
            [
                (
                    pl.col("log_return").rolling_std(window_size=n)
                    * math.sqrt(TRADING_DAYS_PER_YEAR)
                    * 100
                ).alias(field)
                for field, n in self._windows.items()
            ]
        )
        return df.select(["date", *self._windows]).to_dicts()
