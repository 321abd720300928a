"""
sources/defillama.py — DefiLlama TVL, fees, DEX volume and stablecoin series.

Endpoints (all unauthenticated):
  /v2/historicalChainTvl/{chain}      [{"date": 1709942400, "tvl": 5.1e10}]
  /protocol/{slug}                    {"chainTvls": {"Ethereum": {"tvl":
                                       [{"date": .., "totalLiquidityUSD": ..}]}}}
  /summary/fees/ethereum?dataType=..  {"totalDataChart": [[ts, value], ...]}
  /overview/dexs/ethereum             {"totalDataChart": [[ts, value], ...]}
  stablecoins: /stablecoincharts/Ethereum
                                      [{"date": "1709942400",
                                        "totalCirculatingUSD": {"peggedUSD": ..}}]

Usage:
    tvl = chain_tvl(http, settings)                      # Ethereum only
    l2 = chain_tvl(http, settings, per_dimension=True)   # {dimension} = chain
"""

from __future__ import annotations

from collections.abc import Mapping

from ethval_pipeline.sources.http import HttpFetcher
from ethval_pipeline.sources.rest_json import RestJsonSource
from ethval_shared.config import Settings

NAME = "defillama"


def chain_tvl(
    http: HttpFetcher,
    settings: Settings,
    *,
    per_dimension: bool = False,
) -> RestJsonSource:
    chain = "{dimension}" if per_dimension else "Ethereum"
    return RestJsonSource(
        http,
        name=NAME,
        url=f"{settings.defillama_base_url}/v2/historicalChainTvl/{chain}",
        date_field="date",
        fields={"tvl": "tvl"},
        description="DefiLlama historicalChainTvl",
    )


def protocol_tvl(
    http: HttpFetcher,
    settings: Settings,
    *,
    slugs: Mapping[str, str],
) -> RestJsonSource:
    """Ethereum-chain TVL per protocol; slugs maps display name → DefiLlama slug."""
    return RestJsonSource(
        http,
        name=NAME,
        url=f"{settings.defillama_base_url}/protocol/{{dimension}}",
        rows_path=("chainTvls", "Ethereum", "tvl"),
        date_field="date",
        fields={"tvl": "totalLiquidityUSD"},
        dimension_keys=slugs,
        description="DefiLlama protocol chainTvls.Ethereum",
    )


def fees_summary(
    http: HttpFetcher,
    settings: Settings,
    *,
    data_type: str,
    field: str,
) -> RestJsonSource:
    """dataType is "dailyFees" or "dailyRevenue"."""
    return RestJsonSource(
        http,
        name=NAME,
        url=f"{settings.defillama_base_url}/summary/fees/ethereum",
        params={"dataType": data_type},
        rows_path=("totalDataChart",),
        date_field="0",
        fields={field: "1"},
        description=f"DefiLlama fees summary ({data_type})",
    )


def dex_volume(http: HttpFetcher, settings: Settings) -> RestJsonSource:
    return RestJsonSource(
        http,
        name=NAME,
        url=f"{settings.defillama_base_url}/overview/dexs/ethereum",
        params={
            "excludeTotalDataChart": "false",
            "excludeTotalDataChartBreakdown": "true",
            "dataType": "dailyVolume",
        },
        rows_path=("totalDataChart",),
        date_field="0",
        fields={"volume": "1"},
        description="DefiLlama DEX overview",
    )


def stablecoin_supply(http: HttpFetcher, settings: Settings) -> RestJsonSource:
    return RestJsonSource(
        http,
        name=NAME,
        url=f"{settings.defillama_stablecoins_url}/stablecoincharts/Ethereum",
        date_field="date",
        fields={"total_usd": "totalCirculatingUSD.peggedUSD"},
        description="DefiLlama stablecoin charts (Ethereum)",
    )
