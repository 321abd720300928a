"""
sources/snapshots.py — Smaller providers: beaconcha.in, Lido, ultrasound.money,
alternative.me.

  beaconcha.in   /epoch/latest           {"status": "OK", "data": {"validatorscount": N}}
  Lido           /protocol/steth/apr/last7d
                                         {"data": {"aprs": [{"timeUnix": .., "apr": ..}],
                                                   "smaApr": ..}}
                 /protocol/steth/apr/sma {"data": {"smaApr": ..}}
  ultrasound     /fees/eth-burned-all-time
                                         {"ethBurned": ..}
  alternative.me /fng/?limit=0           {"data": [{"value": "40", "value_classification":
                                                   "Fear", "timestamp": "1551157200"}],
                                          "metadata": {"error": null}}

Everything except the Lido history and Fear & Greed index is a point-in-time
snapshot stamped with the run's last day and used as an enrichment.
"""

from __future__ import annotations

from typing import Any

from ethval_pipeline.errors import SourceUnavailable
from ethval_pipeline.sources.http import HttpFetcher
from ethval_pipeline.sources.rest_json import RestJsonSource
from ethval_shared.config import Settings
from ethval_shared.constants import ETH_PER_VALIDATOR


class BeaconChainSource(RestJsonSource):
    """Latest epoch: active validator count and the ETH it represents."""

    def __init__(
        self,
        http: HttpFetcher,
        settings: Settings,
        *,
        staked_field: str,
        validators_field: str | None = None,
    ) -> None:
        fields: dict[str, Any] = {
            staked_field: lambda data: data["validatorscount"] * ETH_PER_VALIDATOR,
        }
        if validators_field:
            fields[validators_field] = "validatorscount"
        super().__init__(
            http,
            name="beaconchain",
            url=f"{settings.beaconchain_base_url}/epoch/latest",
            rows_path=("data",),
            date_field=None,
            fields=fields,
            description="beaconcha.in latest epoch",
        )

    def check_payload(self, payload: Any) -> None:
        if isinstance(payload, dict) and payload.get("status") not in (None, "OK"):
            raise SourceUnavailable(f"beaconchain: {payload.get('status')}", source=self.name)


def lido_apr_history(http: HttpFetcher, settings: Settings) -> RestJsonSource:
    return RestJsonSource(
        http,
        name="lido",
        url=f"{settings.lido_base_url}/protocol/steth/apr/last7d",
        rows_path=("data", "aprs"),
        date_field="timeUnix",
        fields={"apr": "apr"},
        description="Lido stETH APR, last 7 days",
    )


def lido_sma_apr(http: HttpFetcher, settings: Settings, *, field: str) -> RestJsonSource:
    return RestJsonSource(
        http,
        name="lido",
        url=f"{settings.lido_base_url}/protocol/steth/apr/sma",
        rows_path=("data",),
        date_field=None,
        fields={field: "smaApr"},
        description="Lido stETH 7-day SMA APR",
    )


def ultrasound_burn(http: HttpFetcher, settings: Settings) -> RestJsonSource:
    return RestJsonSource(
        http,
        name="ultrasound",
        url=f"{settings.ultrasound_base_url}/fees/eth-burned-all-time",
        date_field=None,
        fields={"eth_burnt": "ethBurned"},
        description="ultrasound.money cumulative ETH burned",
    )


class FearGreedSource(RestJsonSource):
    """Full Fear & Greed history from alternative.me."""

    def __init__(self, http: HttpFetcher, settings: Settings) -> None:
        super().__init__(
            http,
            name="alternative_me",
            url=f"{settings.alternative_me_base_url}/fng/",
            params={"limit": 0, "format": "json"},
            rows_path=("data",),
            date_field="timestamp",
            fields={"value": "value", "classification": "value_classification"},
            description="alternative.me Fear & Greed index",
        )

    def check_payload(self, payload: Any) -> None:
        error = (payload.get("metadata") or {}).get("error") if isinstance(payload, dict) else None
        if error:
            raise SourceUnavailable(f"alternative.me: {error}", source=self.name)
