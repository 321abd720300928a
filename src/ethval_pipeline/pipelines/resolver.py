"""
pipelines/resolver.py — Tiered acquisition and reconciliation for one metric.

For each metric (and, for composite metrics, each dimension value):

  1. Try live tiers in priority order. A tier with at least metric.min_rows
     rows is sufficient and ends the search. A smaller non-empty result is
     kept and the next tier is consulted. FetchErrors are logged and skipped.
  2. If no live tier was sufficient, run the terminal synthetic tier to cover
     the remaining days.
  3. Merge all kept frames; earlier tiers win every key they hold.
  4. Overlay enrichment snapshots on today's record.

Quality:
  success    every dimension resolved from live tiers
  partial    some dimensions failed, others succeeded
  estimated  the terminal synthetic tier had to run

Usage:
    resolver = TieredResolver(deadline=Deadline.after(3600))
    resolution = await resolver.resolve(metric, HistoryWindow.last_days(1095))
"""

from __future__ import annotations

from dataclasses import dataclass, field

import polars as pl
import structlog

from ethval_pipeline.errors import AllTiersExhausted, FetchError
from ethval_pipeline.series import MetricSeries
from ethval_pipeline.transforms.time_series import (
    apply_enrichment,
    merge_tiers,
    missing_dates,
)
from ethval_pipeline.utils.deadline import Deadline
from ethval_shared.constants import SYNTHETIC_SOURCES, QualityTag
from ethval_shared.time_utils import HistoryWindow

log = structlog.get_logger(__name__)


@dataclass
class Resolution:
    """Merged rows for one metric plus how they were obtained."""

    metric: str
    frame: pl.DataFrame
    quality: QualityTag
    tiers_used: list[str] = field(default_factory=list)
    failed_dimensions: list[str] = field(default_factory=list)
    synthetic_rows: int = 0

    @property
    def warning(self) -> str | None:
        parts: list[str] = []
        if self.failed_dimensions:
            parts.append(
                f"{len(self.failed_dimensions)} dimension(s) failed: "
                + ", ".join(self.failed_dimensions)
            )
        if self.synthetic_rows:
            parts.append(f"{self.synthetic_rows} of {len(self.frame)} records are synthetic")
        return "; ".join(parts) or None


class TieredResolver:
    """Runs a MetricSeries' tiers and reconciles their output."""

    def __init__(self, *, deadline: Deadline | None = None) -> None:
        self._deadline = deadline or Deadline.never()

    async def _resolve_one(
        self,
        metric: MetricSeries,
        window: HistoryWindow,
        dimension: str | None,
    ) -> tuple[list[pl.DataFrame], list[str], bool]:
        """Frames in priority order, tier names used, whether the terminal tier ran."""
        tier_log = log.bind(metric=metric.name, dimension=dimension)
        frames: list[pl.DataFrame] = []
        used: list[str] = []

        for priority, source in enumerate(metric.tiers, start=1):
            self._deadline.check(f"{metric.name} tier {priority}")
            try:
                df = await source.fetch(metric, window, dimension=dimension)
            except FetchError as exc:
                tier_log.warning(
                    "tier_failed",
                    tier=priority,
                    source=source.name,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                continue

            frames.append(df)
            used.append(source.name)
            if len(df) >= metric.min_rows:
                tier_log.info("tier_accepted", tier=priority, source=source.name, rows=len(df))
                return frames, used, False
            tier_log.info(
                "tier_insufficient",
                tier=priority,
                source=source.name,
                rows=len(df),
                min_rows=metric.min_rows,
            )

        if metric.terminal is None:
            if frames:
                return frames, used, False
            raise AllTiersExhausted(
                f"{metric.name}{f' [{dimension}]' if dimension else ''}: "
                f"all {len(metric.tiers)} tier(s) failed and no terminal tier is declared"
            )

        self._deadline.check(f"{metric.name} terminal tier")
        gaps = missing_dates(merge_tiers(frames, metric.key_columns), window)
        tier_log.info("terminal_tier_start", source=metric.terminal.name, missing_days=len(gaps))
        try:
            df = await metric.terminal.fetch(metric, window, dimension=dimension)
        except FetchError as exc:
            if frames:
                tier_log.error("terminal_tier_failed", source=metric.terminal.name, error=str(exc))
                return frames, used, False
            raise AllTiersExhausted(
                f"{metric.name}: terminal tier {metric.terminal.name} failed: {exc}"
            ) from exc
        frames.append(df)
        used.append(metric.terminal.name)
        return frames, used, True

    async def resolve(self, metric: MetricSeries, window: HistoryWindow) -> Resolution:
        """
        Resolve one metric over the window.

        Raises:
            AllTiersExhausted: nothing produced rows (for composite metrics:
                               every dimension failed).
            RunCancelled:      the deadline passed between tiers.
        """
        frames: list[pl.DataFrame] = []
        used: list[str] = []
        failed: list[str] = []
        terminal_ran = False

        for dimension in metric.dimensions or [None]:
            try:
                dim_frames, dim_used, dim_terminal = await self._resolve_one(
                    metric, window, dimension
                )
            except AllTiersExhausted as exc:
                if dimension is None:
                    raise
                log.warning(
                    "dimension_failed", metric=metric.name, dimension=dimension, error=str(exc)
                )
                failed.append(dimension)
                continue
            frames.extend(dim_frames)
            used.extend(u for u in dim_used if u not in used)
            terminal_ran = terminal_ran or dim_terminal

        if metric.dimensions and len(failed) == len(metric.dimensions):
            raise AllTiersExhausted(f"{metric.name}: every {metric.dimension} failed")

        merged = merge_tiers(frames, metric.key_columns, columns=metric.columns)

        for enrichment in metric.enrichments:
            self._deadline.check(f"{metric.name} enrichment")
            try:
                snapshot = await enrichment.source.fetch(metric, window)
            except FetchError as exc:
                log.warning(
                    "enrichment_failed",
                    metric=metric.name,
                    source=enrichment.source.name,
                    error=str(exc),
                )
                continue
            merged = apply_enrichment(merged, snapshot, metric.key_columns, mode=enrichment.mode)
            log.info(
                "enrichment_applied",
                metric=metric.name,
                source=enrichment.source.name,
                mode=enrichment.mode,
            )

        synthetic = merged.filter(pl.col("source").is_in(list(SYNTHETIC_SOURCES))).height

        quality: QualityTag
        if failed:
            quality = "partial"
        elif terminal_ran:
            quality = "estimated"
        else:
            quality = "success"

        log.info(
            "metric_resolved",
            metric=metric.name,
            rows=len(merged),
            quality=quality,
            tiers=used,
            synthetic_rows=synthetic,
        )
        return Resolution(
            metric=metric.name,
            frame=merged,
            quality=quality,
            tiers_used=used,
            failed_dimensions=failed,
            synthetic_rows=synthetic,
        )
