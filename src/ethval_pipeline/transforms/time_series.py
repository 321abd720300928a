"""
transforms/time_series.py — Priority merge, enrichment overlay and coverage
checks for daily metric frames.

Works entirely on polars DataFrames produced by RecordNormalizer, i.e. frames
that already share the metric's schema and carry a `date` Date column.

Usage:
    from ethval_pipeline.transforms.time_series import merge_tiers, apply_enrichment

    # Earlier frames win on key collisions
    merged = merge_tiers([api_df, csv_df, estimated_df], ["date"])

    # Overlay today's live snapshot
    merged = apply_enrichment(merged, snapshot_df, ["date"], mode="replace")
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Literal

import polars as pl
import structlog

from ethval_shared.time_utils import HistoryWindow

log = structlog.get_logger(__name__)

_PRIORITY = "__tier_priority"
_SNAPSHOT_SUFFIX = "__snapshot"
_ROW = "__row"


def deduplicate_series(
    df: pl.DataFrame,
    key_cols: list[str],
    *,
    keep: Literal["first", "last"] = "first",
    sort_col: str | None = None,
) -> pl.DataFrame:
    """
    Remove duplicate rows by (key_cols), keeping first or last occurrence.

    Args:
        df:       Input DataFrame.
        key_cols: Columns that define uniqueness.
        keep:     Which duplicate to keep ("first" | "last").
        sort_col: If set, stable-sort by this column before deduplication.

    Returns:
        Deduplicated DataFrame.
    """
    n_before = len(df)

    if sort_col and sort_col in df.columns:
        df = df.sort(sort_col, descending=False, maintain_order=True)

    df = df.unique(subset=key_cols, keep=keep, maintain_order=True)

    dropped = n_before - len(df)
    if dropped:
        log.debug("deduplicated", dropped=dropped, key_cols=key_cols)

    return df


def merge_tiers(
    frames: Sequence[pl.DataFrame],
    key_cols: list[str],
    *,
    columns: list[str] | None = None,
) -> pl.DataFrame:
    """
    Merge tier outputs into one series, one row per key.

    frames[0] has the highest priority: when two frames hold the same key,
    the row from the earlier frame is kept whole. Within one frame the first
    occurrence of a key wins. Output is sorted by key_cols.

    Merging is idempotent: merging the result again, alone or ahead of the
    same tiers, returns the same frame.

    Args:
        frames:   Normalized frames in priority order.
        key_cols: Natural key, e.g. ["date"] or ["date", "chain"].
        columns:  Canonical output column order (default: union order).
    """
    tagged = [
        frame.with_columns(pl.lit(priority, dtype=pl.UInt32).alias(_PRIORITY))
        for priority, frame in enumerate(frames)
        if not frame.is_empty()
    ]
    if not tagged:
        if frames:
            return frames[0].clear()
        return pl.DataFrame(schema={col: pl.Null for col in (columns or key_cols)})

    combined = pl.concat(tagged, how="diagonal_relaxed")
    merged = deduplicate_series(combined, key_cols, keep="first", sort_col=_PRIORITY)
    merged = merged.drop(_PRIORITY).sort(key_cols, maintain_order=True)

    if columns:
        merged = merged.select([col for col in columns if col in merged.columns])

    log.debug(
        "tiers_merged",
        tiers=len(tagged),
        rows_in=len(combined),
        rows_out=len(merged),
    )
    return merged


def apply_enrichment(
    df: pl.DataFrame,
    snapshot: pl.DataFrame,
    key_cols: list[str],
    *,
    mode: Literal["replace", "fill", "overlay"] = "replace",
    value_cols: list[str] | None = None,
) -> pl.DataFrame:
    """
    Overlay snapshot rows (typically a single row for today) onto df.

    replace: snapshot rows supersede existing rows with the same key; keys
             not yet present are appended.
    fill:    existing rows keep their values; only null value columns are
             filled from the snapshot. Keys not yet present are ignored.
    overlay: non-null snapshot values overwrite existing values; the row
             takes the snapshot's source when at least one value came from
             it. Keys not yet present are appended.

    Args:
        df:         Merged series.
        snapshot:   Normalized snapshot frame with the same schema.
        key_cols:   Natural key columns.
        mode:       "replace" | "fill" | "overlay".
        value_cols: Columns the overlay may touch (default: all non-key,
                    non-bookkeeping columns of the snapshot).
    """
    if snapshot.is_empty():
        return df
    if df.is_empty():
        if mode == "fill":
            return df
        return snapshot.select(df.columns) if df.columns else snapshot

    if mode == "replace":
        return merge_tiers([snapshot, df], key_cols, columns=df.columns)

    cols = value_cols or [
        col
        for col in snapshot.columns
        if col not in key_cols and col not in ("timestamp", "source")
    ]
    snapshot = snapshot.unique(subset=key_cols, keep="first", maintain_order=True)
    overlay = snapshot.select(
        [
            *key_cols,
            *[pl.col(c).alias(f"{c}{_SNAPSHOT_SUFFIX}") for c in cols],
            pl.col("source").alias(f"source{_SNAPSHOT_SUFFIX}"),
        ]
    )
    joined = (
        df.with_row_index(_ROW)
        .join(overlay, on=key_cols, how="left")
        .sort(_ROW)
    )
    snap = [pl.col(f"{c}{_SNAPSHOT_SUFFIX}") for c in cols]

    if mode == "fill":
        return joined.with_columns(
            [pl.coalesce(pl.col(c), s).alias(c) for c, s in zip(cols, snap)]
        ).select(df.columns)

    contributed = pl.any_horizontal([s.is_not_null() for s in snap])
    updated = joined.with_columns(
        [pl.coalesce(s, pl.col(c)).alias(c) for c, s in zip(cols, snap)]
        + [
            pl.when(contributed)
            .then(pl.col(f"source{_SNAPSHOT_SUFFIX}"))
            .otherwise(pl.col("source"))
            .alias("source")
        ]
    ).select(df.columns)
    new_keys = snapshot.join(df.select(key_cols), on=key_cols, how="anti")
    if new_keys.is_empty():
        return updated
    return merge_tiers([updated, new_keys.select(df.columns)], key_cols, columns=df.columns)


def clip_to_window(df: pl.DataFrame, window: HistoryWindow) -> pl.DataFrame:
    """Keep rows whose date falls inside the window (both ends inclusive)."""
    if df.is_empty():
        return df
    return df.filter(pl.col("date").is_between(window.start, window.end, closed="both"))


def missing_dates(
    df: pl.DataFrame,
    window: HistoryWindow,
) -> list[date]:
    """Calendar days in the window that have no row in df."""
    present = set(df["date"].to_list()) if not df.is_empty() else set()
    return [d for d in window.dates() if d not in present]
