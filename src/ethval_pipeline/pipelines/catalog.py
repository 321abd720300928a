"""
pipelines/catalog.py — Declarations of the 28 tracked metrics.

Each metric is data, not code: table, typed fields, natural key, ordered
tiers, optional terminal generator and enrichments. The resolver and loader
are shared by all of them.

Unit rescale heuristics (magnitude based, see FieldSpec.rescale_above):
  gas prices     raw > 1e6  → wei, divided by 1e9 to gwei
  ETH amounts    raw > 1e12 → wei, divided by 1e18 to ETH

Regime bounds and milestone anchors below are placeholder generators, not
measurements. Rows they produce carry source "estimated" / "interpolated".

Usage:
    metrics = build_catalog(settings, http, loader, today=utc_today())
    names = [m.name for m in metrics]
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from ethval_pipeline.series import Enrichment, FieldSpec, MetricSeries
from ethval_pipeline.sources import coingecko, defillama, etherscan, snapshots
from ethval_pipeline.sources.base import BaseSource, JoinedSource
from ethval_pipeline.sources.cryptocompare import CryptoCompareHistoDaySource
from ethval_pipeline.sources.derived import StoredSeriesSource, VolatilitySource
from ethval_pipeline.sources.http import HttpFetcher
from ethval_pipeline.sources.synthetic import AnchorSource, RegimeSource
from ethval_pipeline.transforms.interpolate import Anchor, Regime
from ethval_shared.config import Settings
from ethval_shared.constants import (
    BEACON_CHAIN_GENESIS,
    L2_CHAINS,
    TRACKED_PROTOCOLS,
    WEI_PER_ETH,
    WEI_PER_GWEI,
)

if TYPE_CHECKING:
    from ethval_pipeline.loaders.supabase_loader import SupabaseLoader

# ---------------------------------------------------------------------------
# Field specs
# ---------------------------------------------------------------------------

USD = FieldSpec(precision=2)
RATIO = FieldSpec(precision=8)
PCT = FieldSpec(precision=4)
COUNT = FieldSpec(kind="int")
TEXT = FieldSpec(kind="text")
GWEI = FieldSpec(precision=4, rescale_above=1e6, rescale_divisor=WEI_PER_GWEI, valid_range=(0, 1000))
ETH = FieldSpec(precision=4, rescale_above=1e12, rescale_divisor=WEI_PER_ETH)

# ---------------------------------------------------------------------------
# Placeholder generators
# ---------------------------------------------------------------------------

# Gas eras: pre EIP-1559, pre Merge, pre Dencun, post Dencun; value = base * U(0.3, 0.7)
GAS_ERAS: list[tuple[date | None, date | None, float]] = [
    (None, date(2021, 8, 5), 100.0),
    (date(2021, 8, 5), date(2022, 9, 15), 40.0),
    (date(2022, 9, 15), date(2024, 3, 13), 25.0),
    (date(2024, 3, 13), None, 15.0),
]
TX_COUNT_BOUNDS = (1_000_000, 1_300_000)
VOLATILITY_WINDOWS = {"volatility_7d": 7, "volatility_30d": 30}


def gas_regimes(*, with_tx_count: bool = False) -> list[Regime]:
    regimes = []
    for start, end, base in GAS_ERAS:
        bounds = {"avg_gas_price_gwei": (base * 0.3, base * 0.7)}
        if with_tx_count:
            bounds["transaction_count"] = TX_COUNT_BOUNDS
        regimes.append(Regime(start, end, bounds))
    return regimes


# Yearly address activity bases; value = base * U(0.85, 1.15)
ADDRESS_ERAS: list[tuple[date | None, date | None, float, float]] = [
    (None, date(2021, 1, 1), 400_000, 40_000),
    (date(2021, 1, 1), date(2022, 1, 1), 550_000, 80_000),
    (date(2022, 1, 1), date(2023, 1, 1), 380_000, 35_000),
    (date(2023, 1, 1), date(2024, 1, 1), 420_000, 45_000),
    (date(2024, 1, 1), None, 480_000, 55_000),
]

ADDRESS_REGIMES = [
    Regime(
        start,
        end,
        {
            "active_addresses": (active * 0.85, active * 1.15),
            "new_addresses": (new * 0.85, new * 1.15),
        },
    )
    for start, end, active, new in ADDRESS_ERAS
]

DOMINANCE_REGIMES = [
    Regime(None, date(2022, 1, 1), {"dominance_pct": (16.0, 21.0)}),
    Regime(date(2022, 1, 1), date(2023, 1, 1), {"dominance_pct": (17.0, 21.0)}),
    Regime(date(2023, 1, 1), date(2024, 1, 1), {"dominance_pct": (17.0, 20.0)}),
    Regime(date(2024, 1, 1), None, {"dominance_pct": (13.0, 18.0)}),
]

STAKING_APR_REGIMES = [
    Regime(None, date(2022, 9, 15), {"apr": (4.5, 6.0)}),
    Regime(date(2022, 9, 15), date(2023, 4, 12), {"apr": (4.0, 5.5)}),
    Regime(date(2023, 4, 12), date(2024, 1, 1), {"apr": (3.5, 4.5)}),
    Regime(date(2024, 1, 1), None, {"apr": (2.8, 3.6)}),
]

# (date, total staked ETH, validators, avg APR)
STAKING_MILESTONES: list[tuple[date, float, float, float]] = [
    (date.fromisoformat(BEACON_CHAIN_GENESIS), 524_288, 16_384, 5.0),
    (date(2021, 6, 1), 5_000_000, 156_250, 4.78),
    (date(2022, 1, 1), 9_000_000, 281_250, 4.56),
    (date(2022, 9, 15), 14_000_000, 437_500, 4.33),      # the Merge
    (date(2023, 4, 12), 18_000_000, 562_500, 4.11),      # Shapella
    (date(2023, 12, 1), 28_000_000, 875_000, 3.89),
    (date(2024, 6, 1), 32_000_000, 1_000_000, 3.67),
    (date(2024, 12, 1), 34_000_000, 1_062_500, 3.44),
]
STAKING_CURRENT = (34_800_000, 1_087_500, 3.0)

# (date, supply, staked, burnt) in ETH
SUPPLY_MILESTONES: list[tuple[date, float, float, float]] = [
    (date(2021, 1, 1), 114_000_000, 2_100_000, 0),
    (date(2021, 8, 5), 117_000_000, 6_900_000, 0),         # EIP-1559
    (date(2022, 1, 1), 118_900_000, 9_000_000, 1_200_000),
    (date(2022, 9, 15), 120_500_000, 14_000_000, 2_600_000),  # the Merge
    (date(2023, 1, 1), 120_400_000, 16_000_000, 2_900_000),
    (date(2023, 4, 12), 120_200_000, 18_000_000, 3_100_000),  # Shapella
    (date(2024, 1, 1), 120_100_000, 29_000_000, 4_000_000),
    (date(2024, 6, 1), 120_200_000, 32_000_000, 4_300_000),
    (date(2024, 12, 1), 120_350_000, 34_000_000, 4_450_000),
]
SUPPLY_CURRENT = (120_400_000, 34_800_000, 4_500_000)


def staking_anchors(today: date) -> list[Anchor]:
    """
    Milestones up to today, closed by an anchor dated today.

    Placeholder generator: avg_apr is linearly interpolated between the
    milestone values (a 5.0 to 3.0 slope), so it drifts daily instead of
    stepping once per milestone interval.
    """
    anchors = [
        Anchor(d, {"total_staked_eth": staked, "total_validators": validators, "avg_apr": apr})
        for d, staked, validators, apr in STAKING_MILESTONES
        if d < today
    ]
    staked, validators, apr = STAKING_CURRENT
    anchors.append(
        Anchor(today, {"total_staked_eth": staked, "total_validators": validators, "avg_apr": apr})
    )
    return anchors


def supply_anchors(today: date) -> list[Anchor]:
    anchors = [
        Anchor(d, {"eth_supply": supply, "eth2_staking": staked, "burnt_fees": burnt})
        for d, supply, staked, burnt in SUPPLY_MILESTONES
        if d < today
    ]
    supply, staked, burnt = SUPPLY_CURRENT
    anchors.append(Anchor(today, {"eth_supply": supply, "eth2_staking": staked, "burnt_fees": burnt}))
    return anchors


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class _Builder:
    """Holds shared collaborators while the metric list is assembled."""

    def __init__(
        self,
        settings: Settings,
        http: HttpFetcher,
        loader: SupabaseLoader | None,
        today: date,
    ) -> None:
        self.settings = settings
        self.http = http
        self.loader = loader
        self.today = today
        self.min_rows = settings.min_history_rows
        self.has_etherscan_key = bool(settings.etherscan_api_key)

    def stats(self, action: str, fields: dict[str, str]) -> list[BaseSource]:
        """Etherscan API tier, declared only when a key is configured."""
        if not self.has_etherscan_key:
            return []
        return [etherscan.EtherscanStatsSource(self.http, self.settings, action=action, fields=fields)]

    def chart(self, chart: str, columns: dict[str, str]) -> BaseSource:
        return etherscan.etherscan_chart(self.http, self.settings, chart=chart, columns=columns)

    def volatility_tiers(self) -> list[BaseSource]:
        """Stored prices first, then a fresh CryptoCompare price pull."""
        price_sources: list[BaseSource] = []
        if self.loader is not None:
            price_sources.append(
                StoredSeriesSource(self.loader, table="historical_eth_price", columns=["date", "close"])
            )
        price_sources.append(CryptoCompareHistoDaySource(self.http, self.settings, fields={"close": "close"}))
        return [
            VolatilitySource(prices, windows=VOLATILITY_WINDOWS, name="derived")
            for prices in price_sources
        ]

    # -- market -----------------------------------------------------------

    def market(self) -> list[MetricSeries]:
        s, http = self.settings, self.http
        return [
            MetricSeries(
                name="eth_price",
                table="historical_eth_price",
                fields={"open": USD, "high": USD, "low": USD, "close": USD, "volume": USD},
                tiers=[
                    CryptoCompareHistoDaySource(http, s),
                    coingecko.CoinGeckoMarketChartSource(
                        http, s, series={"close": "prices", "volume": "total_volumes"}
                    ),
                ],
                min_rows=self.min_rows,
                description="Daily ETH/USD OHLCV",
            ),
            MetricSeries(
                name="eth_btc_ratio",
                table="historical_eth_btc",
                fields={"ratio": RATIO},
                tiers=[
                    CryptoCompareHistoDaySource(http, s, tsym="BTC", fields={"ratio": "close"}),
                    coingecko.CoinGeckoMarketChartSource(
                        http, s, vs_currency="btc", series={"ratio": "prices"}
                    ),
                ],
                min_rows=self.min_rows,
                description="Daily ETH/BTC close",
            ),
            MetricSeries(
                name="eth_market_cap",
                table="historical_eth_market_cap",
                fields={"market_cap": USD},
                tiers=[
                    coingecko.CoinGeckoMarketChartSource(http, s, series={"market_cap": "market_caps"}),
                ],
                min_rows=self.min_rows,
                description="Daily ETH market capitalisation (USD)",
            ),
            MetricSeries(
                name="fear_greed",
                table="historical_fear_greed",
                fields={"value": COUNT, "classification": TEXT},
                tiers=[snapshots.FearGreedSource(http, s)],
                min_rows=self.min_rows,
                description="Crypto Fear & Greed index",
            ),
            MetricSeries(
                name="eth_dominance",
                table="historical_eth_dominance",
                fields={"dominance_pct": USD},
                terminal=RegimeSource(DOMINANCE_REGIMES, {"dominance_pct": USD}, seed="eth_dominance"),
                enrichments=[Enrichment(coingecko.coingecko_dominance_snapshot(http, s), "replace")],
                min_rows=self.min_rows,
                description="ETH share of total crypto market cap (%)",
            ),
            MetricSeries(
                name="eth_volatility",
                table="historical_eth_volatility",
                fields={"volatility_7d": USD, "volatility_30d": USD},
                tiers=self.volatility_tiers(),
                min_rows=self.min_rows,
                description="Annualised 7d/30d volatility of ETH daily log returns (%)",
            ),
        ]

    # -- DeFi -------------------------------------------------------------

    def defi(self) -> list[MetricSeries]:
        s, http = self.settings, self.http
        return [
            MetricSeries(
                name="ethereum_tvl",
                table="historical_ethereum_tvl",
                fields={"tvl": USD},
                tiers=[defillama.chain_tvl(http, s)],
                min_rows=self.min_rows,
                description="Total value locked on Ethereum (USD)",
            ),
            MetricSeries(
                name="l2_tvl",
                table="historical_l2_tvl",
                fields={"tvl": USD},
                tiers=[defillama.chain_tvl(http, s, per_dimension=True)],
                dimension="chain",
                dimensions=list(L2_CHAINS),
                min_rows=1,
                description="TVL per layer-2 chain (USD)",
            ),
            MetricSeries(
                name="protocol_tvl",
                table="historical_protocol_tvl",
                fields={"tvl": USD},
                tiers=[
                    defillama.protocol_tvl(
                        http, s, slugs={label: slug for slug, label in TRACKED_PROTOCOLS.items()}
                    )
                ],
                dimension="protocol",
                dimensions=list(TRACKED_PROTOCOLS.values()),
                min_rows=1,
                description="Ethereum-chain TVL per major protocol (USD)",
            ),
            MetricSeries(
                name="protocol_fees",
                table="historical_protocol_fees",
                fields={"fees": USD},
                tiers=[defillama.fees_summary(http, s, data_type="dailyFees", field="fees")],
                min_rows=self.min_rows,
                description="Daily fees paid across Ethereum protocols (USD)",
            ),
            MetricSeries(
                name="protocol_revenue",
                table="historical_protocol_revenue",
                fields={"revenue": USD},
                tiers=[defillama.fees_summary(http, s, data_type="dailyRevenue", field="revenue")],
                min_rows=self.min_rows,
                description="Daily protocol revenue on Ethereum (USD)",
            ),
            MetricSeries(
                name="dex_volume",
                table="historical_dex_volume",
                fields={"volume": USD},
                tiers=[defillama.dex_volume(http, s)],
                min_rows=self.min_rows,
                description="Daily DEX volume on Ethereum (USD)",
            ),
            MetricSeries(
                name="stablecoin_supply",
                table="historical_stablecoin_supply",
                fields={"total_usd": USD},
                tiers=[defillama.stablecoin_supply(http, s)],
                min_rows=self.min_rows,
                description="USD-pegged stablecoins circulating on Ethereum",
            ),
        ]

    # -- network ----------------------------------------------------------

    def network(self) -> list[MetricSeries]:
        s, http = self.settings, self.http
        gas_burn_api: list[BaseSource] = []
        if self.has_etherscan_key:
            gas_burn_api.append(
                JoinedSource(
                    [
                        *self.stats("dailytx", {"transaction_count": "transactionCount"}),
                        *self.stats("dailyavggasprice", {"avg_gas_price_gwei": "avgGasPrice_Wei"}),
                        *self.stats("dailygasused", {"total_gas_used": "gasUsed"}),
                    ]
                )
            )
        gas_fields = {"avg_gas_price_gwei": GWEI, "transaction_count": COUNT}

        return [
            MetricSeries(
                name="gas_burn",
                table="historical_gas_burn",
                fields={
                    "avg_gas_price_gwei": GWEI,
                    "total_gas_used": COUNT,
                    "transaction_count": COUNT,
                    "eth_burnt": ETH,
                },
                tiers=[
                    *gas_burn_api,
                    JoinedSource(
                        [
                            self.chart("tx", {"transaction_count": "Value"}),
                            self.chart("gasprice", {"avg_gas_price_gwei": "Value (Wei)"}),
                            self.chart("gasused", {"total_gas_used": "Value"}),
                        ]
                    ),
                ],
                terminal=RegimeSource(gas_regimes(with_tx_count=True), gas_fields, seed="gas_burn"),
                enrichments=[Enrichment(snapshots.ultrasound_burn(http, s), "fill")],
                min_rows=self.min_rows,
                description="Gas price, gas used, transactions and ETH burnt",
            ),
            MetricSeries(
                name="gas_price",
                table="historical_gas_price",
                fields={"avg_gas_price_gwei": GWEI, "max_gas_price_gwei": GWEI, "min_gas_price_gwei": GWEI},
                tiers=[
                    *self.stats(
                        "dailyavggasprice",
                        {
                            "avg_gas_price_gwei": "avgGasPrice_Wei",
                            "max_gas_price_gwei": "maxGasPrice_Wei",
                            "min_gas_price_gwei": "minGasPrice_Wei",
                        },
                    ),
                    self.chart("gasprice", {"avg_gas_price_gwei": "Value (Wei)"}),
                ],
                terminal=RegimeSource(
                    gas_regimes(), {"avg_gas_price_gwei": GWEI}, seed="gas_price"
                ),
                min_rows=self.min_rows,
                description="Daily average / max / min gas price (gwei)",
            ),
            MetricSeries(
                name="transaction_count",
                table="historical_transaction_count",
                fields={"transaction_count": COUNT},
                tiers=[
                    *self.stats("dailytx", {"transaction_count": "transactionCount"}),
                    self.chart("tx", {"transaction_count": "Value"}),
                ],
                terminal=RegimeSource(
                    [Regime(None, None, {"transaction_count": TX_COUNT_BOUNDS})],
                    {"transaction_count": COUNT},
                    seed="transaction_count",
                ),
                min_rows=self.min_rows,
                description="Daily transactions",
            ),
            MetricSeries(
                name="active_addresses",
                table="historical_active_addresses",
                fields={"active_addresses": COUNT, "new_addresses": COUNT},
                tiers=[
                    *self.stats("dailynewaddress", {"new_addresses": "newAddressCount"}),
                    JoinedSource(
                        [
                            self.chart("active-address", {"active_addresses": "Value"}),
                            self.chart("address", {"new_addresses": "Value"}),
                        ]
                    ),
                ],
                terminal=RegimeSource(
                    ADDRESS_REGIMES,
                    {"active_addresses": COUNT, "new_addresses": COUNT},
                    seed="active_addresses",
                ),
                min_rows=self.min_rows,
                description="Daily active and new addresses",
            ),
            MetricSeries(
                name="block_count",
                table="historical_block_count",
                fields={"block_count": COUNT, "block_rewards_eth": PCT},
                tiers=[
                    *self.stats(
                        "dailyblkcount",
                        {"block_count": "blockCount", "block_rewards_eth": "blockRewards_Eth"},
                    ),
                    self.chart("blocks", {"block_count": "Value"}),
                ],
                min_rows=self.min_rows,
                description="Blocks per day and block rewards",
            ),
            MetricSeries(
                name="block_time",
                table="historical_block_time",
                fields={"block_time_sec": USD},
                tiers=[
                    *self.stats("dailyavgblocktime", {"block_time_sec": "blockTime_sec"}),
                    self.chart("blocktime", {"block_time_sec": "Value"}),
                ],
                min_rows=self.min_rows,
                description="Average block time (seconds)",
            ),
            MetricSeries(
                name="block_size",
                table="historical_block_size",
                fields={"block_size_bytes": COUNT},
                tiers=[
                    *self.stats("dailyavgblocksize", {"block_size_bytes": "blockSize_bytes"}),
                    self.chart("blocksize", {"block_size_bytes": "Value"}),
                ],
                min_rows=self.min_rows,
                description="Average block size (bytes)",
            ),
            MetricSeries(
                name="network_utilization",
                table="historical_network_utilization",
                fields={"utilization": RATIO},
                tiers=[
                    *self.stats("dailynetutilization", {"utilization": "networkUtilization"}),
                    self.chart("networkutilization", {"utilization": "Value"}),
                ],
                min_rows=self.min_rows,
                description="Gas used / gas limit (0-1)",
            ),
            MetricSeries(
                name="gas_used",
                table="historical_gas_used",
                fields={"gas_used": COUNT},
                tiers=[
                    *self.stats("dailygasused", {"gas_used": "gasUsed"}),
                    self.chart("gasused", {"gas_used": "Value"}),
                ],
                min_rows=self.min_rows,
                description="Total gas used per day",
            ),
            MetricSeries(
                name="network_fees",
                table="historical_network_fees",
                fields={"fees_eth": ETH},
                tiers=[
                    *self.stats("dailytxnfee", {"fees_eth": "transactionFee_Eth"}),
                    self.chart("transactionfee", {"fees_eth": "Value"}),
                ],
                min_rows=self.min_rows,
                description="Transaction fees paid per day (ETH)",
            ),
            MetricSeries(
                name="erc20_transfers",
                table="historical_erc20_transfers",
                fields={"transfer_count": COUNT},
                tiers=[self.chart("tokenerc-20txns", {"transfer_count": "Value"})],
                min_rows=self.min_rows,
                description="ERC-20 token transfers per day",
            ),
            MetricSeries(
                name="verified_contracts",
                table="historical_verified_contracts",
                fields={"verified_count": COUNT},
                tiers=[self.chart("verified-contracts", {"verified_count": "Value"})],
                min_rows=self.min_rows,
                description="Contracts verified per day",
            ),
        ]

    # -- staking / supply -------------------------------------------------

    def staking(self) -> list[MetricSeries]:
        s, http = self.settings, self.http
        staking_fields = {"total_staked_eth": USD, "total_validators": COUNT, "avg_apr": PCT}
        supply_fields = {"eth_supply": ETH, "eth2_staking": ETH, "burnt_fees": ETH, "withdrawn_total": ETH}

        # Etherscan staking, when reported, wins over the beacon-chain count
        supply_enrichments = [
            Enrichment(snapshots.BeaconChainSource(http, s, staked_field="eth2_staking"), "overlay")
        ]
        if self.has_etherscan_key:
            supply_enrichments.append(
                Enrichment(etherscan.etherscan_supply_snapshot(http, s), "overlay")
            )

        return [
            MetricSeries(
                name="staking_data",
                table="historical_staking",
                fields=staking_fields,
                terminal=AnchorSource(staking_anchors(self.today), staking_fields),
                enrichments=[
                    Enrichment(
                        snapshots.BeaconChainSource(
                            http, s, staked_field="total_staked_eth", validators_field="total_validators"
                        ),
                        "replace",
                    ),
                    Enrichment(snapshots.lido_sma_apr(http, s, field="avg_apr"), "fill"),
                ],
                min_rows=self.min_rows,
                description="Total ETH staked, validators and average APR",
            ),
            MetricSeries(
                name="staking_apr",
                table="historical_staking_apr",
                fields={"apr": PCT},
                tiers=[snapshots.lido_apr_history(http, s)],
                terminal=RegimeSource(STAKING_APR_REGIMES, {"apr": PCT}, seed="staking_apr"),
                min_rows=self.min_rows,
                description="stETH staking APR (%)",
            ),
            MetricSeries(
                name="eth_supply",
                table="historical_eth_supply",
                fields=supply_fields,
                terminal=AnchorSource(supply_anchors(self.today), supply_fields),
                enrichments=supply_enrichments,
                has_timestamp=False,
                min_rows=self.min_rows,
                description="Circulating supply, staked, burnt and withdrawn ETH",
            ),
        ]


def build_catalog(
    settings: Settings,
    http: HttpFetcher,
    loader: SupabaseLoader | None,
    *,
    today: date,
) -> list[MetricSeries]:
    """
    All 28 metrics in run order.

    eth_price precedes eth_volatility, which reads the stored price series.
    Without a loader the stored-price volatility tier is left out.
    """
    builder = _Builder(settings, http, loader, today)
    return [*builder.market(), *builder.defi(), *builder.network(), *builder.staking()]


def select_metrics(metrics: list[MetricSeries], only: list[str] | None) -> list[MetricSeries]:
    """Restrict to the named metrics, keeping catalog order."""
    if not only:
        return metrics
    known = {m.name for m in metrics}
    unknown = sorted(set(only) - known)
    if unknown:
        raise ValueError(f"unknown metric(s): {', '.join(unknown)}")
    wanted = set(only)
    return [m for m in metrics if m.name in wanted]
