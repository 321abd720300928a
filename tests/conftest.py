"""
tests/conftest.py — Shared pytest fixtures for the collector test suite.

Provides:
  settings            — Settings with zero delays and a single HTTP attempt
  fake_supabase       — in-memory stand-in for supabase.Client that honours
                        upsert on_conflict keys and simple filters
  loader              — SupabaseLoader over fake_supabase
  mock_supabase_client — MagicMock of the Supabase client for call inspection
  make_metric()       — factory for small MetricSeries
  StaticSource        — BaseSource returning canned rows (or raising)
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Any, Callable
from unittest.mock import MagicMock

import pytest
from dateutil.relativedelta import relativedelta

from ethval_pipeline.loaders.supabase_loader import SupabaseLoader
from ethval_pipeline.series import FieldSpec, MetricSeries
from ethval_pipeline.sources.base import BaseSource, RawRow
from ethval_shared.config import Settings, load_settings
from ethval_shared.constants import STATUS_TABLE
from ethval_shared.time_utils import HistoryWindow

TODAY = date(2024, 3, 20)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    return load_settings(
        _env_file=None,
        supabase_url="http://supabase.test",
        supabase_service_key="service-key",
        etherscan_api_key="",
        cryptocompare_api_key="",
        coingecko_api_key="",
        days_to_fetch=30,
        batch_size=500,
        min_history_rows=100,
        rate_limit_delay_ms=0,
        inter_metric_delay_ms=0,
        http_max_attempts=1,
        http_retry_base_delay=0.0,
        max_redirects=5,
    )


@pytest.fixture
def window() -> HistoryWindow:
    return HistoryWindow(date(2024, 3, 1), date(2024, 3, 5))


# ---------------------------------------------------------------------------
# In-memory Supabase
# ---------------------------------------------------------------------------

class _Result:
    def __init__(self, data: list[dict[str, Any]]) -> None:
        self.data = data


class FakeQuery:
    """Chainable builder mirroring the postgrest calls the loader makes."""

    def __init__(self, client: "FakeSupabaseClient", table: str) -> None:
        self._client = client
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._on_conflict = ""
        self._filters: list[Callable[[dict[str, Any]], bool]] = []
        self._order: str | None = None
        self._range: tuple[int, int] | None = None
        self._columns = "*"

    # -- operations ---------------------------------------------------------

    def select(self, columns: str = "*") -> "FakeQuery":
        self._op, self._columns = "select", columns
        return self

    def upsert(self, rows: list[dict[str, Any]], on_conflict: str = "") -> "FakeQuery":
        self._op, self._payload, self._on_conflict = "upsert", rows, on_conflict
        return self

    def insert(self, row: dict[str, Any]) -> "FakeQuery":
        self._op, self._payload = "insert", row
        return self

    def update(self, values: dict[str, Any]) -> "FakeQuery":
        self._op, self._payload = "update", values
        return self

    # -- filters ------------------------------------------------------------

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda r: r.get(column) == value)
        return self

    def gte(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda r: r.get(column) is not None and r[column] >= value)
        return self

    def lte(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda r: r.get(column) is not None and r[column] <= value)
        return self

    def is_(self, column: str, value: str) -> "FakeQuery":
        assert value == "null"
        self._filters.append(lambda r: r.get(column) is None)
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order = column
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self._range = (start, end)
        return self

    def execute(self) -> _Result:
        return self._client._execute(self)


class FakeSupabaseClient:
    """
    Minimal supabase.Client double.

    Upserts overwrite the row with the same on_conflict key, so a second
    identical write leaves the table unchanged.
    Set fail_on[(table, op)] = exc or fail_upsert_call = n to inject errors.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.calls: list[tuple[str, str, Any]] = []
        self.fail_on: dict[tuple[str, str], Exception] = {}
        self.fail_upsert_call: int | None = None
        self._upserts = 0

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def seed_statuses(self, names: list[str]) -> None:
        # same shape as the rows sql/schema.sql seeds
        self.tables[STATUS_TABLE] = [
            {
                "id": i,
                "dataset_name": n,
                "status": "pending",
                "record_count": None,
                "date_from": None,
                "date_to": None,
                "last_error": None,
                "last_warning": None,
                "last_run_at": None,
                "created_at": "2024-01-01T00:00:00+00:00",
                "updated_at": "2024-01-01T00:00:00+00:00",
            }
            for i, n in enumerate(names, start=1)
        ]

    def _execute(self, q: FakeQuery) -> _Result:
        self.calls.append((q._table, q._op, q._payload))
        exc = self.fail_on.get((q._table, q._op))
        if exc is not None:
            raise exc
        rows = self.tables[q._table]

        if q._op == "upsert":
            self._upserts += 1
            if self.fail_upsert_call == self._upserts:
                raise RuntimeError("upstream 500")
            keys = q._on_conflict.split(",")
            for new in q._payload:
                match = next(
                    (r for r in rows if all(r.get(k) == new.get(k) for k in keys)), None
                )
                if match is None:
                    rows.append(dict(new))
                else:
                    match.update(new)
            return _Result(list(q._payload))

        if q._op == "insert":
            rows.append(dict(q._payload))
            return _Result([q._payload])

        matched = [r for r in rows if all(f(r) for f in q._filters)]
        if q._op == "update":
            for r in matched:
                r.update(q._payload)
            return _Result(matched)

        if q._order:
            matched = sorted(matched, key=lambda r: r.get(q._order) or "")
        if q._range:
            start, end = q._range
            matched = matched[start : end + 1]
        if q._columns != "*":
            cols = [c.strip() for c in q._columns.split(",")]
            matched = [{c: r.get(c) for c in cols} for r in matched]
        return _Result([dict(r) for r in matched])


@pytest.fixture
def fake_supabase() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def loader(fake_supabase: FakeSupabaseClient) -> SupabaseLoader:
    return SupabaseLoader(fake_supabase, batch_size=500)


@pytest.fixture
def mock_supabase_client() -> MagicMock:
    """
    A MagicMock that simulates the supabase.Client interface.

    The .table().<op>().execute() chains return empty data by default.
    """
    client = MagicMock()
    default_result = MagicMock()
    default_result.data = []
    client.table.return_value.upsert.return_value.execute.return_value = default_result
    client.table.return_value.insert.return_value.execute.return_value = default_result
    client.table.return_value.update.return_value.eq.return_value.execute.return_value = (
        default_result
    )
    return client


# ---------------------------------------------------------------------------
# Metrics and sources
# ---------------------------------------------------------------------------

class StaticSource(BaseSource):
    """
    Returns canned raw rows, or raises the given exception.

    rows may be a dict keyed by dimension value for composite metrics;
    errors maps dimension values to the exception raised for them.
    """

    def __init__(
        self,
        name: str,
        rows: list[RawRow] | dict[str, list[RawRow]] | None = None,
        *,
        error: Exception | None = None,
        errors: dict[str, Exception] | None = None,
    ) -> None:
        super().__init__(name)
        self.rows = rows if rows is not None else []
        self.error = error
        self.errors = errors or {}
        self.calls: list[tuple[HistoryWindow, str | None]] = []

    async def extract(
        self,
        window: HistoryWindow,
        *,
        dimension: str | None = None,
    ) -> list[RawRow]:
        self.calls.append((window, dimension))
        if self.error is not None:
            raise self.error
        if dimension in self.errors:
            raise self.errors[dimension]
        rows = self.rows.get(dimension, []) if isinstance(self.rows, dict) else self.rows
        return [dict(r) for r in rows]


def daily_rows(start: date, days: int, **values: Any) -> list[RawRow]:
    """One raw row per day starting at start, each with the given values."""
    return [{"date": start + relativedelta(days=i), **values} for i in range(days)]


@pytest.fixture
def make_metric() -> Callable[..., MetricSeries]:
    def _make(**overrides: Any) -> MetricSeries:
        params: dict[str, Any] = {
            "name": "test_metric",
            "table": "historical_test_metric",
            "fields": {"value": FieldSpec(precision=2)},
            "min_rows": 3,
        }
        params.update(overrides)
        if not params.get("tiers") and params.get("terminal") is None:
            params["tiers"] = [StaticSource("static", [])]
        return MetricSeries(**params)

    return _make
