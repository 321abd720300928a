"""
sources/csv_http.py — Daily series published as downloadable CSV charts.

Etherscan exposes every chart as a CSV export:

    "Date(UTC)","UnixTimeStamp","Value"
    "7/30/2015","1438214400","8893"

Columns are read as strings (infer_schema_length=0) so quoted values with
thousands separators survive; the normalizer does the typing. Downloads go
through HttpFetcher.get_text, which follows a bounded number of redirects.

Usage:
    source = CsvHttpSource(
        http,
        name="etherscan_csv",
        url="https://etherscan.io/chart/tx",
        params={"output": "csv"},
        columns={"transaction_count": "Value"},
    )
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import polars as pl

from ethval_pipeline.errors import EmptyResult, SchemaMismatch
from ethval_pipeline.sources.base import BaseSource, RawRow
from ethval_pipeline.sources.http import HttpFetcher
from ethval_shared.time_utils import HistoryWindow


class CsvHttpSource(BaseSource):
    """Download a CSV over HTTP and map its columns onto metric fields."""

    def __init__(
        self,
        http: HttpFetcher,
        *,
        name: str,
        url: str,
        columns: Mapping[str, str],
        params: Mapping[str, Any] | None = None,
        date_column: str = "Date(UTC)",
        timestamp_column: str | None = "UnixTimeStamp",
        description: str = "",
    ) -> None:
        super().__init__(name)
        self._http = http
        self._url = url
        self._params = dict(params or {})
        self._columns = dict(columns)
        self._date_column = date_column
        self._timestamp_column = timestamp_column
        self.description = description or url

    def parse(self, text: str) -> pl.DataFrame:
        body = text.lstrip("\ufeff").strip()
        if not body:
            raise EmptyResult(f"{self.name}: empty CSV body", source=self.name)
        if body.lstrip().startswith("<"):
            raise SchemaMismatch(f"{self.name}: expected CSV, got HTML", source=self.name)

        df = pl.read_csv(
            body.encode("utf-8"),
            infer_schema_length=0,
            quote_char='"',
            truncate_ragged_lines=True,
        )
        df = df.rename({col: col.strip() for col in df.columns})

        date_cols = [c for c in (self._date_column, self._timestamp_column) if c]
        if not any(c in df.columns for c in date_cols):
            raise SchemaMismatch(
                f"{self.name}: no date column ({', '.join(date_cols)}) in {df.columns}",
                source=self.name,
            )
        missing = [c for c in self._columns.values() if c not in df.columns]
        if missing:
            raise SchemaMismatch(
                f"{self.name}: missing columns {missing} in {df.columns}",
                source=self.name,
            )
        return df

    async def extract(
        self,
        window: HistoryWindow,
        *,
        dimension: str | None = None,
    ) -> list[RawRow]:
        text = await self._http.get_text(self._url, params=self._params or None)
        df = self.parse(text)

        rows: list[RawRow] = []
        for record in df.iter_rows(named=True):
            day = record.get(self._date_column)
            if not day and self._timestamp_column:
                day = record.get(self._timestamp_column)
            rows.append(
                {
                    "date": day,
                    **{field: record.get(col) for field, col in self._columns.items()},
                }
            )
        return rows
