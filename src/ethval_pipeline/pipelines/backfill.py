"""
pipelines/backfill.py — Fill null values of one field from the first live tier.

Earlier runs can leave a field null (an API tier was down, a later part of a
joined tier failed). Backfill:

  1. selects the stored records where the field is null
  2. re-fetches the metric's first live tier over their date range, in
     chunks of 365 days
  3. updates `field` and `source` on each matching record, keyed by its
     natural key; other columns are left alone

Values outside FieldSpec.valid_range are discarded. A failed chunk or a
failed record update is logged and counted, not fatal.

Usage:
    result = await backfill_field(metric, "avg_gas_price_gwei", loader=loader)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

from dateutil.relativedelta import relativedelta

from ethval_pipeline.errors import FetchError
from ethval_pipeline.loaders.supabase_loader import SupabaseLoader
from ethval_pipeline.series import FieldSpec, MetricSeries
from ethval_pipeline.utils.deadline import Deadline
from ethval_pipeline.utils.logging import get_logger
from ethval_shared.time_utils import HistoryWindow, parse_chain_date

log = get_logger(__name__, pipeline="backfill")

CHUNK_DAYS = 365


@dataclass
class BackfillResult:
    metric: str
    field: str
    null_records: int = 0
    fetched_values: int = 0
    updated: int = 0
    not_found: int = 0
    failed: int = 0


def chunk_windows(start: date, end: date, days: int = CHUNK_DAYS) -> list[HistoryWindow]:
    """Consecutive inclusive windows of at most `days` days covering [start, end]."""
    windows = []
    current = start
    while current <= end:
        chunk_end = min(current + relativedelta(days=days - 1), end)
        windows.append(HistoryWindow(current, chunk_end))
        current = chunk_end + relativedelta(days=1)
    return windows


def in_valid_range(value: Any, spec: FieldSpec) -> bool:
    if value is None:
        return False
    if spec.valid_range is None:
        return True
    lo, hi = spec.valid_range
    return lo < value < hi


async def backfill_field(
    metric: MetricSeries,
    field: str,
    *,
    loader: SupabaseLoader,
    deadline: Deadline | None = None,
) -> BackfillResult:
    """
    Re-fetch null values of `field` for stored records of `metric`.

    Raises:
        ValueError: the field is not one of the metric's value fields, or the
                    metric has no live tier to fetch from.
    """
    if field not in metric.fields:
        raise ValueError(f"{metric.name} has no field '{field}' (fields: {', '.join(metric.fields)})")
    if not metric.tiers:
        raise ValueError(f"{metric.name} has no live tier to backfill from")

    deadline = deadline or Deadline.never()
    spec = metric.fields[field]
    tier = metric.tiers[0]
    result = BackfillResult(metric=metric.name, field=field)
    bf_log = log.bind(metric=metric.name, field=field, source=tier.name)

    null_rows = await loader.query(
        metric.table,
        ",".join(metric.key_columns),
        filters=[(field, "is_", "null")],
        order="date",
    )
    result.null_records = len(null_rows)
    if not null_rows:
        bf_log.info("backfill_nothing_to_do")
        return result

    dates = sorted(d for d in (parse_chain_date(r["date"]) for r in null_rows) if d is not None)
    bf_log.info("backfill_start", null_records=len(null_rows), start=str(dates[0]), end=str(dates[-1]))

    dimensions = sorted({r[metric.dimension] for r in null_rows}) if metric.dimension else [None]

    # (date, dimension) → value
    fetched: dict[tuple[date, str | None], Any] = {}
    for dimension in dimensions:
        for window in chunk_windows(dates[0], dates[-1]):
            deadline.check(f"backfill {metric.name} {window.start}")
            try:
                df = await tier.fetch(metric, window, dimension=dimension)
            except FetchError as exc:
                bf_log.warning(
                    "backfill_chunk_failed",
                    dimension=dimension,
                    start=str(window.start),
                    end=str(window.end),
                    error=str(exc),
                )
                continue
            for row in df.select(metric.key_columns + [field]).iter_rows(named=True):
                value = row[field]
                if in_valid_range(value, spec):
                    key_dim = row[metric.dimension] if metric.dimension else None
                    fetched[(row["date"], key_dim)] = value
    result.fetched_values = len(fetched)

    for record in null_rows:
        d = parse_chain_date(record["date"])
        dimension = record[metric.dimension] if metric.dimension else None
        value = fetched.get((d, dimension))
        if value is None:
            result.not_found += 1
            continue
        match = {col: record[col] for col in metric.key_columns}
        try:
            await loader.update_where(metric.table, {field: value, "source": tier.name}, match)
        except Exception as exc:
            bf_log.error("backfill_update_failed", match=match, error=str(exc))
            result.failed += 1
            continue
        result.updated += 1

    bf_log.info(
        "backfill_complete",
        updated=result.updated,
        not_found=result.not_found,
        failed=result.failed,
    )
    return result
