"""
transforms/normalize.py — Raw provider rows → typed, keyed metric records.

Every source hands back loosely typed dicts ({"date": "3/9/2024",
"avg_gas_price_gwei": "25000000000", ...}). The normalizer turns them into a
polars DataFrame with the metric's fixed schema:

  - date canonicalized to a UTC calendar day, timestamp = midnight UTC
  - numbers parsed (thousands separators stripped), unit-rescaled by
    magnitude, rounded to the field's precision
  - the dimension value filled in for composite-keyed metrics
  - the source tag recorded on every row

A row whose date or a numeric value cannot be parsed is dropped, counted and
logged; it never aborts the batch.

Usage:
    from ethval_pipeline.transforms.normalize import RecordNormalizer

    df = RecordNormalizer(gas_price).normalize(raw_rows, source_tag="etherscan")
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

import polars as pl
import structlog

from ethval_pipeline.errors import RowError, UnparseableDate, UnparseableNumber
from ethval_pipeline.series import FieldSpec, MetricSeries
from ethval_shared.time_utils import parse_chain_date, to_unix_seconds

log = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Scalar coercion
# ---------------------------------------------------------------------------


def parse_number(raw: Any) -> float:
    """Parse an int/float/numeric string ("1,234.5") into a finite float."""
    if isinstance(raw, bool):
        raise UnparseableNumber(f"boolean is not a number: {raw!r}")
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        cleaned = raw.strip().replace(",", "").replace("_", "")
        try:
            value = float(cleaned)
        except ValueError as exc:
            raise UnparseableNumber(f"unparseable number {raw!r}") from exc
    else:
        raise UnparseableNumber(f"unsupported numeric type {type(raw).__name__}")
    if not math.isfinite(value):
        raise UnparseableNumber(f"non-finite number {raw!r}")
    return value


def round_value(value: float, spec: FieldSpec) -> float | int:
    """Apply the field's storage type and precision to an already-scaled value."""
    if spec.kind == "int":
        return int(round(value))
    if spec.precision is not None:
        return round(value, spec.precision)
    return value


def coerce_value(raw: Any, spec: FieldSpec) -> float | int | str | None:
    """
    Coerce one raw field value according to its FieldSpec.

    Empty values become None. Numeric values above spec.rescale_above are
    treated as smallest-subunit amounts (wei, gwei) and divided down.
    """
    if raw is None:
        return None
    if isinstance(raw, str) and not raw.strip():
        return None
    if spec.kind == "text":
        return str(raw).strip()

    value = parse_number(raw)
    if spec.rescale_above is not None and abs(value) > spec.rescale_above:
        value = value / spec.rescale_divisor
    return round_value(value, spec)


# ---------------------------------------------------------------------------
# Row normalizer
# ---------------------------------------------------------------------------


class RecordNormalizer:
    """Normalizes raw rows for one MetricSeries."""

    def __init__(self, metric: MetricSeries) -> None:
        self._metric = metric

    def normalize_row(
        self,
        raw: Mapping[str, Any],
        *,
        source_tag: str,
        dimension: str | None = None,
    ) -> dict[str, Any]:
        """
        Normalize one raw row.

        Raises:
            UnparseableDate:   date missing or unparseable.
            UnparseableNumber: a numeric value is malformed, or no value
                               field carries data.
            RowError:          dimension value missing for a composite key.
        """
        metric = self._metric
        d = parse_chain_date(raw.get("date"))
        if d is None:
            raise UnparseableDate(f"unparseable date {raw.get('date')!r}")

        row: dict[str, Any] = {"date": d}
        if metric.has_timestamp:
            row["timestamp"] = to_unix_seconds(d)
        if metric.dimension:
            dim_value = raw.get(metric.dimension) or dimension
            if not dim_value:
                raise RowError(f"missing {metric.dimension} value")
            row[metric.dimension] = str(dim_value)

        has_value = False
        for name, spec in metric.fields.items():
            value = coerce_value(raw.get(name), spec)
            if value is not None:
                has_value = True
            row[name] = value
        if not has_value:
            raise UnparseableNumber("row carries no value fields")

        row["source"] = raw.get("source") or source_tag
        return row

    def normalize(
        self,
        raw_rows: Iterable[Mapping[str, Any]],
        *,
        source_tag: str,
        dimension: str | None = None,
    ) -> pl.DataFrame:
        """Normalize many rows into a DataFrame, dropping and counting bad rows."""
        rows: list[dict[str, Any]] = []
        dropped: dict[str, int] = {}
        first_error: str | None = None

        for raw in raw_rows:
            try:
                rows.append(
                    self.normalize_row(raw, source_tag=source_tag, dimension=dimension)
                )
            except RowError as exc:
                kind = type(exc).__name__
                dropped[kind] = dropped.get(kind, 0) + 1
                first_error = first_error or str(exc)

        if dropped:
            log.warning(
                "rows_dropped",
                metric=self._metric.name,
                source=source_tag,
                dimension=dimension,
                dropped=dropped,
                example=first_error,
            )

        if not rows:
            return self._metric.empty_frame()
        return pl.DataFrame(rows, schema=self._metric.schema)
