"""
sources/etherscan.py — Etherscan stats API and chart CSV exports.

Stats API (v2, needs an API key):
    {api}?chainid=1&module=stats&action=dailytx&startdate=2024-01-01
          &enddate=2024-03-09&sort=asc&apikey=...
    {"status": "1", "message": "OK", "result": [
        {"UTCDate": "2024-03-09", "unixTimeStamp": "1709942400",
         "transactionCount": 1234567}]}

  status "0" means an API-level error; the message distinguishes "no
  records" (EmptyResult) from rate limits and bad keys (SourceUnavailable).

Chart CSV (no key; served through redirects):
    https://etherscan.io/chart/tx?output=csv
    "Date(UTC)","UnixTimeStamp","Value"
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ethval_pipeline.errors import EmptyResult, SourceUnavailable
from ethval_pipeline.sources.csv_http import CsvHttpSource
from ethval_pipeline.sources.http import HttpFetcher
from ethval_pipeline.sources.rest_json import FieldGetter, RestJsonSource
from ethval_shared.config import Settings
from ethval_shared.time_utils import HistoryWindow

MAINNET_CHAIN_ID = 1

_EMPTY_MESSAGES = ("no transactions found", "no records found", "no data found")


class EtherscanStatsSource(RestJsonSource):
    """One module=stats action over the run window."""

    def __init__(
        self,
        http: HttpFetcher,
        settings: Settings,
        *,
        action: str,
        fields: Mapping[str, FieldGetter],
        dated: bool = True,
    ) -> None:
        super().__init__(
            http,
            name="etherscan",
            url=settings.etherscan_api_url,
            params={
                "chainid": MAINNET_CHAIN_ID,
                "module": "stats",
                "action": action,
                "apikey": settings.etherscan_api_key,
            },
            rows_path=("result",),
            date_field="UTCDate" if dated else None,
            fields=fields,
            description=f"Etherscan stats {action}",
        )
        self.action = action
        self._dated = dated

    def params_for(self, window: HistoryWindow) -> dict[str, Any]:
        params = super().params_for(window)
        if self._dated:
            params.update(
                startdate=window.start.isoformat(),
                enddate=window.end.isoformat(),
                sort="asc",
            )
        return params

    def check_payload(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            return
        if str(payload.get("status")) == "1":
            return
        message = str(payload.get("message") or "")
        detail = payload.get("result")
        if message.lower().startswith(_EMPTY_MESSAGES):
            raise EmptyResult(f"etherscan {self.action}: {message}", source=self.name)
        raise SourceUnavailable(
            f"etherscan {self.action}: {message or 'error'} ({detail})",
            source=self.name,
        )


def etherscan_chart(
    http: HttpFetcher,
    settings: Settings,
    *,
    chart: str,
    columns: Mapping[str, str],
) -> CsvHttpSource:
    """CSV export of https://etherscan.io/chart/{chart}."""
    return CsvHttpSource(
        http,
        name="etherscan_csv",
        url=f"{settings.etherscan_charts_url}/{chart}",
        params={"output": "csv"},
        columns=columns,
        description=f"Etherscan chart CSV {chart}",
    )


def etherscan_supply_snapshot(http: HttpFetcher, settings: Settings) -> EtherscanStatsSource:
    """ethsupply2: current supply, staking, burn and withdrawals, all in wei."""
    return EtherscanStatsSource(
        http,
        settings,
        action="ethsupply2",
        dated=False,
        fields={
            "eth_supply": "EthSupply",
            "eth2_staking": "Eth2Staking",
            "burnt_fees": "BurntFees",
            "withdrawn_total": "WithdrawnTotal",
        },
    )
