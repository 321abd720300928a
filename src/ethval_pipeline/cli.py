"""
cli.py — Click CLI entrypoint for the ethval collector.

Usage:
    ethval-collect                              # run all 28 metrics
    ethval-collect --only eth_price,gas_burn    # run a subset
    ethval-collect --dry-run --log-level DEBUG  # resolve only, no writes
    ethval-collect --deadline-seconds 1800
    ethval-collect status
    ethval-collect list
    ethval-collect backfill gas_burn avg_gas_price_gwei

Exit code is 1 if any metric failed.
"""

from __future__ import annotations

import asyncio
import signal

import click
import structlog

from ethval_pipeline.loaders.supabase_loader import SupabaseLoader
from ethval_pipeline.pipelines.backfill import BackfillResult, backfill_field
from ethval_pipeline.pipelines.catalog import build_catalog, select_metrics
from ethval_pipeline.pipelines.collector import RunSummary, run as run_collector
from ethval_pipeline.sources.http import HttpFetcher
from ethval_pipeline.utils.deadline import Deadline
from ethval_pipeline.utils.logging import configure_logging
from ethval_shared.config import Settings, load_settings
from ethval_shared.db import get_supabase_client
from ethval_shared.time_utils import utc_today

log = structlog.get_logger(__name__)

_STATUS_MARKS = {"success": "✓", "failed": "✗", "partial": "⚠", "pending": "·"}


def parse_names(value: str | None) -> list[str] | None:
    if not value:
        return None
    names = [n.strip() for n in value.split(",") if n.strip()]
    return names or None


def install_signal_handlers(deadline: Deadline) -> None:
    """SIGINT / SIGTERM cancel the run; the current metric is failed cleanly."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, deadline.cancel)
        except (NotImplementedError, RuntimeError):
            # Windows event loops and non-main threads have no signal handlers
            log.debug("signal_handler_unavailable", signal=sig.name)


async def _collect(
    settings: Settings,
    *,
    only: list[str] | None,
    dry_run: bool,
    deadline_seconds: float | None,
) -> RunSummary:
    seconds = deadline_seconds if deadline_seconds is not None else settings.run_deadline_seconds
    deadline = Deadline.after(seconds)
    install_signal_handlers(deadline)
    return await run_collector(settings, only=only, dry_run=dry_run, deadline=deadline)


def _echo_summary(summary: RunSummary) -> None:
    click.echo("Collection summary:")
    for outcome in summary.outcomes:
        mark = _STATUS_MARKS.get(outcome.status, "?")
        detail = outcome.error or outcome.warning or ""
        click.echo(
            f"  {mark} {outcome.metric:24s} {outcome.status:8s} "
            f"{outcome.records:6d} rows  {detail}"
        )
    click.echo(
        f"  {summary.count('success')} succeeded, {summary.count('partial')} partial, "
        f"{summary.count('failed')} failed, {summary.total_records} records"
    )


@click.group(invoke_without_command=True)
@click.option("--only", default=None, help="Comma-separated metric names to run (default: all)")
@click.option("--dry-run", is_flag=True, default=False, help="Resolve metrics but skip all store writes")
@click.option(
    "--deadline-seconds",
    type=float,
    default=None,
    help="Abort the run after this many seconds (default: RUN_DEADLINE_SECONDS)",
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (default: LOG_LEVEL)",
)
@click.pass_context
def main(
    ctx: click.Context,
    only: str | None,
    dry_run: bool,
    deadline_seconds: float | None,
    log_level: str | None,
) -> None:
    """ethval historical metrics collector."""
    if ctx.obj is None:
        ctx.obj = load_settings()
    settings: Settings = ctx.obj
    configure_logging(settings, log_level=log_level)

    if ctx.invoked_subcommand is not None:
        return

    try:
        summary = asyncio.run(
            _collect(
                settings,
                only=parse_names(only),
                dry_run=dry_run,
                deadline_seconds=deadline_seconds,
            )
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--only") from exc
    except RuntimeError as exc:
        raise click.ClickException(str(exc)) from exc

    _echo_summary(summary)
    ctx.exit(summary.exit_code)


@main.command()
@click.pass_obj
def status(settings: Settings) -> None:
    """Show the last run status of each metric."""
    click.echo("Metric status:")
    try:
        loader = SupabaseLoader(get_supabase_client(settings))
        statuses = asyncio.run(loader.fetch_statuses())
    except Exception as exc:
        raise click.ClickException(f"Error fetching status: {exc}") from exc

    if not statuses:
        click.echo("  No status rows found. Has sql/schema.sql been applied?")
        return
    for row in statuses:
        mark = _STATUS_MARKS.get(row.status, "?")
        span = f"{row.date_from or '?'} → {row.date_to or '?'}"
        click.echo(
            f"  {mark} {row.dataset_name:24s} {row.status:8s} "
            f"{row.record_count if row.record_count is not None else '?':>6} rows  "
            f"{span:26s} {row.last_run_at.isoformat()[:19] if row.last_run_at else 'never run'}"
        )
        if row.last_error and row.status == "failed":
            click.echo(f"      error: {row.last_error[:200]}")
        elif row.last_warning:
            click.echo(f"      warning: {row.last_warning[:200]}")


@main.command(name="list")
@click.pass_obj
def list_metrics(settings: Settings) -> None:
    """List every metric with its table, natural key and tiers."""

    async def _catalog():
        async with HttpFetcher.open(settings) as http:
            return build_catalog(settings, http, None, today=utc_today())

    for metric in asyncio.run(_catalog()):
        tiers = " → ".join(s.name for s in metric.tiers) or "-"
        terminal = metric.terminal.name if metric.terminal else "-"
        click.echo(f"{metric.name:24s} {metric.table:34s} key={metric.conflict_key}")
        click.echo(f"    tiers: {tiers}   terminal: {terminal}")
        for enrichment in metric.enrichments:
            click.echo(f"    enrich ({enrichment.mode}): {enrichment.source.name}")


@main.command()
@click.argument("metric")
@click.argument("field")
@click.pass_obj
def backfill(settings: Settings, metric: str, field: str) -> None:
    """Fill null FIELD values of METRIC from its first live tier."""

    async def _backfill() -> BackfillResult:
        loader = SupabaseLoader(get_supabase_client(settings), batch_size=settings.batch_size)
        async with HttpFetcher.open(settings) as http:
            catalog = build_catalog(settings, http, loader, today=utc_today())
            (series,) = select_metrics(catalog, [metric])
            return await backfill_field(series, field, loader=loader)

    try:
        result = asyncio.run(_backfill())
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    except RuntimeError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(
        f"{result.metric}.{result.field}: {result.null_records} null records, "
        f"{result.updated} updated, {result.not_found} not found, {result.failed} failed"
    )
    if result.failed:
        raise click.exceptions.Exit(1)


if __name__ == "__main__":
    main()
