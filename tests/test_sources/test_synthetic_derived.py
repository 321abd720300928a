"""
tests/test_sources/test_synthetic_derived.py — Terminal generators and store-derived tiers.
"""

from __future__ import annotations

import math
from datetime import date

import pytest

from conftest import StaticSource
from ethval_pipeline.errors import EmptyResult
from ethval_pipeline.series import FieldSpec
from ethval_pipeline.sources.derived import StoredSeriesSource, VolatilitySource
from ethval_pipeline.sources.synthetic import AnchorSource, RegimeSource
from ethval_pipeline.transforms.interpolate import Anchor, Regime
from ethval_shared.time_utils import date_range

PRICE_TABLE = "historical_eth_price"


class TestAnchorSource:
    @pytest.mark.asyncio
    async def test_interpolated_rows_inside_window(self, make_metric, window):
        source = AnchorSource(
            [Anchor(date(2024, 2, 1), {"value": 0}), Anchor(date(2024, 4, 1), {"value": 60})],
            {"value": FieldSpec(precision=2)},
            derived={"double": lambda row: row["value"] * 2},
        )
        metric = make_metric(
            fields={"value": FieldSpec(precision=2), "double": FieldSpec(precision=2)},
            terminal=source,
        )
        df = await source.fetch(metric, window)
        assert df["value"].to_list() == [29.0, 30.0, 31.0, 32.0, 33.0]
        assert df["double"].to_list() == [58.0, 60.0, 62.0, 64.0, 66.0]
        assert set(df["source"].to_list()) == {"interpolated"}


class TestRegimeSource:
    REGIMES = [Regime(None, None, {"value": (10.0, 20.0)})]

    @pytest.mark.asyncio
    async def test_covers_every_day_with_estimated_tag(self, make_metric, window):
        source = RegimeSource(self.REGIMES, {"value": FieldSpec(precision=2)}, seed="test")
        df = await source.fetch(make_metric(terminal=source), window)
        assert df["date"].to_list() == window.dates()
        assert all(10.0 <= v <= 20.0 for v in df["value"].to_list())
        assert set(df["source"].to_list()) == {"estimated"}

    @pytest.mark.asyncio
    async def test_dimension_changes_the_seed(self, make_metric, window):
        source = RegimeSource(self.REGIMES, {"value": FieldSpec(precision=4)}, seed="test")
        metric = make_metric(
            terminal=source,
            fields={"value": FieldSpec(precision=4)},
            dimension="chain",
            dimensions=["Arbitrum", "Base"],
        )
        a = await source.fetch(metric, window, dimension="Arbitrum")
        b = await source.fetch(metric, window, dimension="Base")
        again = await source.fetch(metric, window, dimension="Arbitrum")
        assert a["value"].to_list() != b["value"].to_list()
        assert a.equals(again)
        assert set(b["chain"].to_list()) == {"Base"}


def _seed_prices(fake_supabase, start: date, end: date) -> None:
    fake_supabase.tables[PRICE_TABLE] = [
        {"date": d.isoformat(), "close": 100.0 if i % 2 == 0 else 110.0, "open": 1.0}
        for i, d in enumerate(date_range(start, end))
    ]


class TestStoredSeriesSource:
    @pytest.mark.asyncio
    async def test_reads_window_plus_lookback(self, fake_supabase, loader, window):
        _seed_prices(fake_supabase, date(2024, 2, 1), date(2024, 3, 31))
        source = StoredSeriesSource(
            loader, table=PRICE_TABLE, columns=["date", "close"], lookback_days=3
        )
        rows = await source.fetch_raw(window)
        assert rows[0] == {"date": "2024-02-27", "close": 100.0}
        assert rows[-1]["date"] == "2024-03-05"
        assert len(rows) == 8
        assert source.name == f"store:{PRICE_TABLE}"


class TestVolatilitySource:
    @pytest.mark.asyncio
    async def test_rolling_volatility_from_stored_prices(
        self, fake_supabase, loader, make_metric, window
    ):
        _seed_prices(fake_supabase, date(2024, 2, 1), date(2024, 3, 31))
        prices = StoredSeriesSource(loader, table=PRICE_TABLE, columns=["date", "close"])
        source = VolatilitySource(prices, windows={"volatility_2d": 2})
        metric = make_metric(fields={"volatility_2d": FieldSpec(precision=2)}, tiers=[source])

        df = await source.fetch(metric, window)

        # alternating 100/110 closes: returns are +/- ln(1.1)
        expected = round(math.log(1.1) * math.sqrt(2) * math.sqrt(365) * 100, 2)
        assert df["date"].to_list() == window.dates()
        assert df["volatility_2d"].to_list() == pytest.approx([expected] * 5, abs=0.02)
        assert set(df["source"].to_list()) == {"derived"}

    @pytest.mark.asyncio
    async def test_price_tier_gets_extended_window(self, make_metric, window):
        prices = StaticSource("cryptocompare", [])
        source = VolatilitySource(prices, windows={"v7": 7, "v30": 30})
        with pytest.raises(EmptyResult):
            await source.fetch(make_metric(fields={"v7": FieldSpec()}, tiers=[source]), window)
        requested, _ = prices.calls[0]
        assert requested.start == date(2024, 1, 31)
        assert requested.end == window.end

    @pytest.mark.asyncio
    async def test_bad_prices_are_ignored(self, make_metric, window):
        prices = StaticSource(
            "cryptocompare",
            [
                {"date": "2024-03-01", "close": "n/a"},
                {"date": "2024-03-02", "close": 0},
                {"date": "2024-03-03", "close": 100.0},
            ],
        )
        source = VolatilitySource(prices, windows={"v2": 2})
        with pytest.raises(EmptyResult):
            await source.fetch(make_metric(fields={"v2": FieldSpec()}, tiers=[source]), window)
