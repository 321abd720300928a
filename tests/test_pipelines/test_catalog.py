"""
tests/test_pipelines/test_catalog.py — The 28-metric catalog and its generators.
"""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest

from conftest import TODAY
from ethval_pipeline.pipelines.catalog import (
    STAKING_MILESTONES,
    build_catalog,
    select_metrics,
    staking_anchors,
    supply_anchors,
)
from ethval_shared.constants import L2_CHAINS, TRACKED_PROTOCOLS
from ethval_shared.time_utils import HistoryWindow

EXPECTED = [
    "eth_price",
    "eth_btc_ratio",
    "eth_market_cap",
    "fear_greed",
    "eth_dominance",
    "eth_volatility",
    "ethereum_tvl",
    "l2_tvl",
    "protocol_tvl",
    "protocol_fees",
    "protocol_revenue",
    "dex_volume",
    "stablecoin_supply",
    "gas_burn",
    "gas_price",
    "transaction_count",
    "active_addresses",
    "block_count",
    "block_time",
    "block_size",
    "network_utilization",
    "gas_used",
    "network_fees",
    "erc20_transfers",
    "verified_contracts",
    "staking_data",
    "staking_apr",
    "eth_supply",
]


@pytest.fixture
def catalog(settings, loader):
    return build_catalog(settings, MagicMock(), loader, today=TODAY)


def _by_name(metrics):
    return {m.name: m for m in metrics}


class TestBuildCatalog:
    def test_all_metrics_in_run_order(self, catalog):
        assert [m.name for m in catalog] == EXPECTED
        assert len({m.table for m in catalog}) == 28

    def test_price_is_collected_before_volatility(self, catalog):
        names = [m.name for m in catalog]
        assert names.index("eth_price") < names.index("eth_volatility")

    def test_composite_metrics(self, catalog):
        metrics = _by_name(catalog)
        assert metrics["l2_tvl"].key_columns == ["date", "chain"]
        assert metrics["l2_tvl"].dimensions == L2_CHAINS
        assert metrics["protocol_tvl"].conflict_key == "date,protocol"
        assert metrics["protocol_tvl"].dimensions == list(TRACKED_PROTOCOLS.values())

    def test_supply_has_no_timestamp_column(self, catalog):
        assert "timestamp" not in _by_name(catalog)["eth_supply"].columns
        assert "timestamp" in _by_name(catalog)["eth_price"].columns

    def test_stats_api_tiers_need_a_key(self, settings, loader):
        without = _by_name(build_catalog(settings, MagicMock(), loader, today=TODAY))
        assert [s.name for s in without["gas_price"].tiers] == ["etherscan_csv"]

        settings.etherscan_api_key = "key"
        with_key = _by_name(build_catalog(settings, MagicMock(), loader, today=TODAY))
        assert [s.name for s in with_key["gas_price"].tiers] == ["etherscan", "etherscan_csv"]
        assert [s.name for s in with_key["gas_burn"].tiers] == ["etherscan", "etherscan_csv"]
        assert [(e.source.name, e.mode) for e in with_key["eth_supply"].enrichments] == [
            ("beaconchain", "overlay"),
            ("etherscan", "overlay"),
        ]

    def test_volatility_without_store(self, settings):
        metrics = _by_name(build_catalog(settings, MagicMock(), None, today=TODAY))
        assert len(metrics["eth_volatility"].tiers) == 1

    def test_terminal_tiers(self, catalog):
        metrics = _by_name(catalog)
        assert metrics["gas_burn"].terminal.name == "estimated"
        assert metrics["staking_data"].terminal.name == "interpolated"
        assert metrics["staking_data"].tiers == []
        assert metrics["eth_price"].terminal is None

    @pytest.mark.asyncio
    async def test_gas_burn_terminal_within_post_dencun_bounds(self, catalog):
        metric = _by_name(catalog)["gas_burn"]
        window = HistoryWindow.last_days(5, today=TODAY)
        df = await metric.terminal.fetch(metric, window)
        assert len(df) == 5
        assert all(4.5 <= v <= 10.5 for v in df["avg_gas_price_gwei"].to_list())
        assert all(1_000_000 <= v <= 1_300_000 for v in df["transaction_count"].to_list())

    @pytest.mark.asyncio
    async def test_staking_terminal_interpolates_milestones(self, catalog):
        metric = _by_name(catalog)["staking_data"]
        window = HistoryWindow.last_days(5, today=TODAY)
        df = await metric.terminal.fetch(metric, window)
        assert df["date"].to_list() == window.dates()
        assert all(28_000_000 <= v <= 34_800_000 for v in df["total_staked_eth"].to_list())
        assert set(df["source"].to_list()) == {"interpolated"}


class TestAnchors:
    def test_staking_anchors_end_today(self):
        anchors = staking_anchors(date(2024, 3, 20))
        assert anchors[0].date == date(2020, 12, 1)
        assert anchors[0].values["total_staked_eth"] == 524_288
        assert anchors[-1].date == date(2024, 3, 20)
        assert [a.date for a in anchors] == sorted(a.date for a in anchors)
        assert len(anchors) == sum(1 for m in STAKING_MILESTONES if m[0] < date(2024, 3, 20)) + 1

    def test_supply_anchors_end_today(self):
        anchors = supply_anchors(date(2025, 1, 1))
        assert anchors[-1].date == date(2025, 1, 1)
        assert anchors[-2].date == date(2024, 12, 1)


class TestSelectMetrics:
    def test_keeps_catalog_order(self, catalog):
        chosen = select_metrics(catalog, ["gas_price", "eth_price"])
        assert [m.name for m in chosen] == ["eth_price", "gas_price"]

    def test_none_selects_everything(self, catalog):
        assert select_metrics(catalog, None) == catalog

    def test_unknown_name(self, catalog):
        with pytest.raises(ValueError, match="unknown metric\\(s\\): nope"):
            select_metrics(catalog, ["eth_price", "nope"])
