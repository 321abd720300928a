"""
tests/test_sources/test_csv_http.py — Chart CSV downloads.
"""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import httpx
import pytest
import respx

from ethval_pipeline.errors import EmptyResult, SchemaMismatch
from ethval_pipeline.series import FieldSpec
from ethval_pipeline.sources.csv_http import CsvHttpSource
from ethval_pipeline.sources.etherscan import etherscan_chart
from ethval_pipeline.sources.http import HttpFetcher

TX_CSV = (
    "\ufeff\"Date(UTC)\",\"UnixTimeStamp\",\"Value\"\n"
    "\"2/29/2024\",\"1709164800\",\"1,050,000\"\n"
    "\"3/1/2024\",\"1709251200\",\"1,100,000\"\n"
    "\"3/2/2024\",\"1709337600\",\"1,200,000\"\n"
)


def _offline(**kwargs) -> CsvHttpSource:
    return CsvHttpSource(MagicMock(), name="csv", url="https://charts.test/x", **kwargs)


class TestParse:
    def test_bom_and_quoted_thousands(self):
        df = _offline(columns={"transaction_count": "Value"}).parse(TX_CSV)
        assert df.columns == ["Date(UTC)", "UnixTimeStamp", "Value"]
        assert df["Value"].to_list() == ["1,050,000", "1,100,000", "1,200,000"]

    def test_html_body_is_schema_mismatch(self):
        with pytest.raises(SchemaMismatch, match="HTML"):
            _offline(columns={"v": "Value"}).parse("<!DOCTYPE html><html></html>")

    def test_empty_body_is_empty_result(self):
        with pytest.raises(EmptyResult):
            _offline(columns={"v": "Value"}).parse("\ufeff  \n")

    def test_missing_value_column(self):
        with pytest.raises(SchemaMismatch, match="missing columns"):
            _offline(columns={"v": "Value"}).parse('"Date(UTC)","Other"\n"3/1/2024","1"\n')

    def test_missing_date_columns(self):
        with pytest.raises(SchemaMismatch, match="no date column"):
            _offline(columns={"v": "Value"}).parse('"Day","Value"\n"3/1/2024","1"\n')


class TestEtherscanChart:
    @pytest.mark.asyncio
    async def test_fetch_through_redirect(self, settings, make_metric, window):
        chart_url = f"{settings.etherscan_charts_url}/tx"
        with respx.mock() as router:
            first = router.get(chart_url).mock(
                return_value=httpx.Response(302, headers={"Location": "/download/tx.csv"})
            )
            router.get("https://etherscan.io/download/tx.csv").mock(
                return_value=httpx.Response(200, text=TX_CSV)
            )
            async with HttpFetcher.open(settings) as http:
                source = etherscan_chart(
                    http, settings, chart="tx", columns={"transaction_count": "Value"}
                )
                metric = make_metric(
                    fields={"transaction_count": FieldSpec(kind="int")}, tiers=[source]
                )
                df = await source.fetch(metric, window)

        assert first.calls[0].request.url.params["output"] == "csv"
        # 2/29 falls outside the window
        assert df["date"].to_list() == [date(2024, 3, 1), date(2024, 3, 2)]
        assert df["transaction_count"].to_list() == [1_100_000, 1_200_000]
        assert df["source"].to_list() == ["etherscan_csv", "etherscan_csv"]
