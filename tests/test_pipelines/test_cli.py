"""
tests/test_pipelines/test_cli.py — Click entrypoint, with the pipeline patched out.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from ethval_pipeline import cli
from ethval_pipeline.pipelines.backfill import BackfillResult
from ethval_pipeline.pipelines.collector import MetricOutcome, RunSummary


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def _keep_default_logging():
    # cached loggers would otherwise hold on to CliRunner's closed stdout
    with patch.object(cli, "configure_logging"):
        yield


def _summary(*outcomes: MetricOutcome) -> RunSummary:
    return RunSummary(outcomes=list(outcomes))


class TestParseNames:
    def test_parse(self):
        assert cli.parse_names(" eth_price, gas_burn ,,") == ["eth_price", "gas_burn"]
        assert cli.parse_names("") is None
        assert cli.parse_names(" , ") is None


class TestCollectCommand:
    def test_success_exits_zero(self, runner, settings):
        summary = _summary(MetricOutcome(metric="eth_price", status="success", records=30))
        with patch.object(cli, "run_collector", new=AsyncMock(return_value=summary)) as run:
            result = runner.invoke(cli.main, ["--only", "eth_price", "--dry-run"], obj=settings)

        assert result.exit_code == 0, result.output
        assert "Collection summary:" in result.output
        assert "1 succeeded, 0 partial, 0 failed, 30 records" in result.output
        kwargs = run.await_args.kwargs
        assert kwargs["only"] == ["eth_price"]
        assert kwargs["dry_run"] is True

    def test_any_failure_exits_one(self, runner, settings):
        summary = _summary(
            MetricOutcome(metric="eth_price", status="success", records=30),
            MetricOutcome(metric="gas_price", status="failed", error="AllTiersExhausted: x"),
        )
        with patch.object(cli, "run_collector", new=AsyncMock(return_value=summary)):
            result = runner.invoke(cli.main, [], obj=settings)
        assert result.exit_code == 1
        assert "AllTiersExhausted: x" in result.output

    def test_unknown_metric_is_usage_error(self, runner, settings):
        run = AsyncMock(side_effect=ValueError("unknown metric(s): nope"))
        with patch.object(cli, "run_collector", new=run):
            result = runner.invoke(cli.main, ["--only", "nope"], obj=settings)
        assert result.exit_code == 2
        assert "unknown metric(s): nope" in result.output

    def test_missing_store_credentials(self, runner, settings):
        run = AsyncMock(side_effect=RuntimeError("SUPABASE_SERVICE_KEY is not set."))
        with patch.object(cli, "run_collector", new=run):
            result = runner.invoke(cli.main, [], obj=settings)
        assert result.exit_code == 1
        assert "SUPABASE_SERVICE_KEY" in result.output

    def test_deadline_option_overrides_settings(self, runner, settings):
        with (
            patch.object(cli, "run_collector", new=AsyncMock(return_value=_summary())) as run,
            patch.object(cli.Deadline, "after", wraps=cli.Deadline.after) as after,
        ):
            result = runner.invoke(cli.main, ["--deadline-seconds", "90"], obj=settings)
        assert result.exit_code == 0, result.output
        after.assert_called_once_with(90.0)
        assert run.await_args.kwargs["deadline"] is not None


class TestStatusCommand:
    def test_lists_status_rows(self, runner, settings, fake_supabase):
        fake_supabase.seed_statuses(["eth_price", "gas_price"])
        with patch.object(cli, "get_supabase_client", return_value=fake_supabase):
            result = runner.invoke(cli.main, ["status"], obj=settings)
        assert result.exit_code == 0, result.output
        assert "eth_price" in result.output
        assert "gas_price" in result.output
        assert "never run" in result.output

    def test_empty_status_table(self, runner, settings, fake_supabase):
        with patch.object(cli, "get_supabase_client", return_value=fake_supabase):
            result = runner.invoke(cli.main, ["status"], obj=settings)
        assert result.exit_code == 0
        assert "No status rows found" in result.output

    def test_store_error(self, runner, settings):
        with patch.object(cli, "get_supabase_client", side_effect=RuntimeError("no key")):
            result = runner.invoke(cli.main, ["status"], obj=settings)
        assert result.exit_code == 1
        assert "Error fetching status: no key" in result.output


class TestListCommand:
    def test_lists_every_metric(self, runner, settings):
        result = runner.invoke(cli.main, ["list"], obj=settings)
        assert result.exit_code == 0, result.output
        assert "l2_tvl" in result.output
        assert "key=date,chain" in result.output
        assert "terminal: estimated" in result.output
        assert "enrich (fill): ultrasound" in result.output


class TestBackfillCommand:
    def test_reports_counts(self, runner, settings, fake_supabase):
        outcome = BackfillResult(
            metric="gas_burn", field="avg_gas_price_gwei", null_records=4, updated=3, not_found=1
        )
        with (
            patch.object(cli, "get_supabase_client", return_value=fake_supabase),
            patch.object(cli, "backfill_field", new=AsyncMock(return_value=outcome)) as backfill,
        ):
            result = runner.invoke(
                cli.main, ["backfill", "gas_burn", "avg_gas_price_gwei"], obj=settings
            )
        assert result.exit_code == 0, result.output
        assert "gas_burn.avg_gas_price_gwei: 4 null records, 3 updated" in result.output
        series, field = backfill.await_args.args
        assert series.name == "gas_burn"
        assert field == "avg_gas_price_gwei"

    def test_failed_updates_exit_one(self, runner, settings, fake_supabase):
        outcome = BackfillResult(metric="gas_burn", field="avg_gas_price_gwei", failed=2)
        with (
            patch.object(cli, "get_supabase_client", return_value=fake_supabase),
            patch.object(cli, "backfill_field", new=AsyncMock(return_value=outcome)),
        ):
            result = runner.invoke(
                cli.main, ["backfill", "gas_burn", "avg_gas_price_gwei"], obj=settings
            )
        assert result.exit_code == 1

    def test_unknown_metric(self, runner, settings, fake_supabase):
        with patch.object(cli, "get_supabase_client", return_value=fake_supabase):
            result = runner.invoke(cli.main, ["backfill", "nope", "x"], obj=settings)
        assert result.exit_code == 2
        assert "unknown metric(s): nope" in result.output
