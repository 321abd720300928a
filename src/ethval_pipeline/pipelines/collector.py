"""
pipelines/collector.py — Run orchestrator: every metric, one at a time.

For each metric in catalog order:
  1. resolve (tiers → terminal → merge → enrichments)
  2. upsert the merged frame in batches
  3. update data_collection_status (success / partial / failed)
  4. append a data_collection_logs entry

Any exception inside one metric is caught at the metric boundary, recorded as
a `failed` status, and the run moves on. Once the run deadline passes or the
run is cancelled, every remaining metric is marked failed without being
attempted.

Usage:
    summary = await run(settings, only=["eth_price"], dry_run=False)
    sys.exit(summary.exit_code)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import date

from ethval_pipeline.loaders.supabase_loader import SupabaseLoader
from ethval_pipeline.pipelines.catalog import build_catalog, select_metrics
from ethval_pipeline.pipelines.resolver import Resolution, TieredResolver
from ethval_pipeline.series import MetricSeries
from ethval_pipeline.sources.http import HttpFetcher
from ethval_pipeline.utils.deadline import Deadline
from ethval_pipeline.utils.logging import get_logger, metric_context, run_context
from ethval_shared.config import Settings
from ethval_shared.constants import RunStatusName
from ethval_shared.db import get_supabase_client
from ethval_shared.models import RunStatus
from ethval_shared.time_utils import HistoryWindow, utc_today

log = get_logger(__name__, pipeline="collector")


@dataclass
class MetricOutcome:
    """Result of one metric within a run."""

    metric: str
    status: RunStatusName
    records: int = 0
    tiers: list[str] = field(default_factory=list)
    warning: str | None = None
    error: str | None = None
    duration_ms: int = 0


@dataclass
class RunSummary:
    """Append-only counters for the end-of-run report."""

    outcomes: list[MetricOutcome] = field(default_factory=list)

    def add(self, outcome: MetricOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: RunStatusName) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def total_records(self) -> int:
        return sum(o.records for o in self.outcomes)

    @property
    def failed(self) -> list[str]:
        return [o.metric for o in self.outcomes if o.status == "failed"]

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


class Collector:
    """Processes metrics sequentially against one store and one window."""

    def __init__(
        self,
        settings: Settings,
        loader: SupabaseLoader,
        *,
        deadline: Deadline | None = None,
        resolver: TieredResolver | None = None,
        dry_run: bool = False,
        today: date | None = None,
    ) -> None:
        self.settings = settings
        self.loader = loader
        self.deadline = deadline or Deadline.never()
        self.resolver = resolver or TieredResolver(deadline=self.deadline)
        self.dry_run = dry_run
        self.window = HistoryWindow.last_days(settings.days_to_fetch, today=today)

    async def collect_metric(self, metric: MetricSeries) -> MetricOutcome:
        """Resolve, write and record status for one metric. Never raises."""
        with metric_context(metric.name, table=metric.table):
            return await self._collect_metric(metric)

    async def _collect_metric(self, metric: MetricSeries) -> MetricOutcome:
        log.info(
            "metric_start",
            start=str(self.window.start),
            end=str(self.window.end),
            tiers=[s.name for s in metric.tiers],
            deadline_remaining_s=self.deadline.remaining(),
        )
        t0 = time.monotonic()
        if not self.dry_run:
            await self.loader.log_event(
                metric.name, "info", f"Starting collection of {metric.name}"
            )

        try:
            resolution = await self.resolver.resolve(metric, self.window)
            records = await self._store(metric, resolution)
        except Exception as exc:
            duration_ms = int((time.monotonic() - t0) * 1000)
            message = f"{type(exc).__name__}: {exc}"
            log.error("metric_failed", error=message, duration_ms=duration_ms)
            if not self.dry_run:
                await self.loader.fail_status(metric.name, message)
                await self.loader.log_event(
                    metric.name, "error", message, {"error_type": type(exc).__name__}
                )
            return MetricOutcome(
                metric=metric.name, status="failed", error=message, duration_ms=duration_ms
            )

        status: RunStatusName = "partial" if resolution.quality == "partial" else "success"
        duration_ms = int((time.monotonic() - t0) * 1000)
        log.info(
            "metric_complete",
            status=status,
            quality=resolution.quality,
            records=records,
            duration_ms=duration_ms,
        )
        return MetricOutcome(
            metric=metric.name,
            status=status,
            records=records,
            tiers=resolution.tiers_used,
            warning=resolution.warning,
            duration_ms=duration_ms,
        )

    async def _store(self, metric: MetricSeries, resolution: Resolution) -> int:
        df = resolution.frame
        if self.dry_run:
            log.info("dry_run_skip_write", rows=len(df))
            return len(df)

        result = await self.loader.write(
            metric.table, df, metric.key_columns, deadline=self.deadline
        )
        dates = df["date"]
        status = RunStatus(
            dataset_name=metric.name,
            status="partial" if resolution.quality == "partial" else "success",
            record_count=result.records_loaded,
            date_from=dates.min() if len(df) else None,
            date_to=dates.max() if len(df) else None,
            last_warning=resolution.warning,
        )
        await self.loader.update_status(status)
        await self.loader.log_event(
            metric.name,
            "warning" if resolution.warning else "info",
            resolution.warning or f"Stored {result.records_loaded} records",
            {
                "records": result.records_loaded,
                "quality": resolution.quality,
                "tiers": resolution.tiers_used,
            },
        )
        return result.records_loaded

    async def _skip(self, metric: MetricSeries, reason: str) -> MetricOutcome:
        log.warning("metric_skipped", reason=reason)
        if not self.dry_run:
            await self.loader.fail_status(metric.name, f"skipped: {reason}")
        return MetricOutcome(metric=metric.name, status="failed", error=f"skipped: {reason}")

    async def run(self, metrics: list[MetricSeries]) -> RunSummary:
        with run_context(dry_run=self.dry_run):
            return await self._run(metrics)

    async def _run(self, metrics: list[MetricSeries]) -> RunSummary:
        summary = RunSummary()
        t0 = time.monotonic()
        log.info(
            "run_start",
            metrics=len(metrics),
            start=str(self.window.start),
            end=str(self.window.end),
        )

        for idx, metric in enumerate(metrics):
            if self.deadline.expired:
                reason = "run cancelled" if self.deadline.cancelled else "run deadline exceeded"
                with metric_context(metric.name, table=metric.table):
                    summary.add(await self._skip(metric, reason))
                continue

            summary.add(await self.collect_metric(metric))

            if idx < len(metrics) - 1 and self.settings.inter_metric_delay > 0:
                await asyncio.sleep(self.settings.inter_metric_delay)

        log.info(
            "run_complete",
            succeeded=summary.count("success"),
            partial=summary.count("partial"),
            failed=summary.count("failed"),
            records=summary.total_records,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return summary


async def run(
    settings: Settings,
    *,
    only: list[str] | None = None,
    dry_run: bool = False,
    deadline: Deadline | None = None,
    today: date | None = None,
) -> RunSummary:
    """
    Build the store client, HTTP client and catalog, then run every metric.

    Raises:
        ValueError: `only` names a metric the catalog does not declare.
    """
    today = today or utc_today()
    loader = SupabaseLoader(get_supabase_client(settings), batch_size=settings.batch_size)
    async with HttpFetcher.open(settings) as http:
        metrics = select_metrics(build_catalog(settings, http, loader, today=today), only)
        collector = Collector(
            settings, loader, deadline=deadline, dry_run=dry_run, today=today
        )
        return await collector.run(metrics)
