"""
loaders/supabase_loader.py — Idempotent batch writer and bookkeeping for Supabase.

Every metric funnels its merged DataFrame through this module. The loader:
  - Converts polars DataFrames to list[dict] (JSON-serialisable)
  - Batches rows (settings.batch_size, default 500) and issues one upsert
    per batch (INSERT … ON CONFLICT (natural key) DO UPDATE)
  - Sends batches sequentially; the first failed batch aborts the rest and
    raises WriteFailure
  - Updates the metric's data_collection_status row
  - Appends to data_collection_logs as a best-effort side channel

Usage:
    from ethval_pipeline.loaders.supabase_loader import SupabaseLoader

    loader = SupabaseLoader(get_supabase_client(settings), batch_size=settings.batch_size)

    result = await loader.write(
        table="historical_l2_tvl",
        df=df,
        conflict_columns=["date", "chain"],
    )
    await loader.update_status(RunStatus(dataset_name="l2_tvl", status="success",
                                         record_count=result.records_loaded))
"""

from __future__ import annotations

import math
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import polars as pl
import structlog
from supabase import Client

from ethval_pipeline.errors import WriteFailure
from ethval_pipeline.utils.deadline import Deadline
from ethval_shared.constants import LOG_TABLE, STATUS_TABLE, LogType
from ethval_shared.models import CollectionLogEntry, RunStatus

log = structlog.get_logger(__name__)

BATCH_SIZE = 500     # rows per Supabase request
PAGE_SIZE = 1000     # PostgREST default max rows per select

Filter = tuple[str, str, Any]   # (column, operator, value), e.g. ("date", "gte", "2024-01-01")


@dataclass
class LoadResult:
    """Summary of one write() call."""

    table: str
    records_loaded: int = 0
    batches_total: int = 0
    batches_loaded: int = 0
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.batches_loaded == self.batches_total


class SupabaseLoader:
    """
    Handles all reads and writes against Supabase for the collector.

    The client is injected (service role, so RLS is bypassed for writes).
    """

    def __init__(self, client: Client, *, batch_size: int = BATCH_SIZE) -> None:
        self._client = client
        self._batch_size = batch_size

    # ------------------------------------------------------------------
    # Core upsert
    # ------------------------------------------------------------------

    async def write(
        self,
        table: str,
        df: pl.DataFrame,
        conflict_columns: list[str],
        *,
        deadline: Deadline | None = None,
    ) -> LoadResult:
        """
        Upsert all rows of a DataFrame, batch by batch, in order.

        Upsert semantics: a row whose natural key exists overwrites that
        row's non-key columns; otherwise it is inserted. Writing the same
        frame twice leaves the table unchanged.

        Args:
            table:            Target table name.
            df:               Merged metric DataFrame.
            conflict_columns: Natural key, matching the table's UNIQUE constraint.
            deadline:         Checked before every batch.

        Returns:
            LoadResult with counts.

        Raises:
            WriteFailure: a batch failed; later batches were not sent.
            RunCancelled: the deadline passed between batches.
        """
        result = LoadResult(table=table)
        t0 = time.monotonic()

        if df.is_empty():
            log.warning("write_empty_dataframe", table=table)
            return result

        loader_log = log.bind(table=table, total_rows=len(df))
        loader_log.info("write_start")

        rows = self._to_dicts(df)
        n_batches = math.ceil(len(rows) / self._batch_size)
        result.batches_total = n_batches
        on_conflict = ",".join(conflict_columns)

        for batch_idx in range(n_batches):
            if deadline is not None:
                deadline.check(f"{table} batch {batch_idx + 1}/{n_batches}")

            start = batch_idx * self._batch_size
            batch = rows[start : start + self._batch_size]

            try:
                self._client.table(table).upsert(batch, on_conflict=on_conflict).execute()
            except Exception as exc:
                loader_log.error(
                    "batch_failed",
                    batch=batch_idx + 1,
                    n_batches=n_batches,
                    records_written=result.records_loaded,
                    error=str(exc),
                )
                raise WriteFailure(
                    f"{table}: batch {batch_idx + 1}/{n_batches} failed: {exc}",
                    table=table,
                    batch=batch_idx + 1,
                    records_written=result.records_loaded,
                ) from exc

            result.records_loaded += len(batch)
            result.batches_loaded += 1
            loader_log.debug(
                "batch_loaded",
                batch=batch_idx + 1,
                n_batches=n_batches,
                batch_size=len(batch),
            )

        result.duration_ms = int((time.monotonic() - t0) * 1000)
        loader_log.info(
            "write_complete",
            records_loaded=result.records_loaded,
            batches=n_batches,
            duration_ms=result.duration_ms,
        )
        return result

    async def update_where(
        self,
        table: str,
        values: dict[str, Any],
        match: dict[str, Any],
    ) -> None:
        """PATCH the row(s) matching every column in match."""
        query = self._client.table(table).update(values)
        for column, value in match.items():
            query = query.eq(column, value)
        query.execute()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query(
        self,
        table: str,
        columns: str = "*",
        *,
        filters: Sequence[Filter] = (),
        order: str | None = None,
        page_size: int = PAGE_SIZE,
    ) -> list[dict[str, Any]]:
        """
        Select rows, paging with .range() until a short page comes back.

        filters use PostgREST operators by name: ("date", "gte", "2024-01-01"),
        ("avg_gas_price_gwei", "is_", "null").
        """
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            builder = self._client.table(table).select(columns)
            for column, op, value in filters:
                builder = getattr(builder, op)(column, value)
            if order:
                builder = builder.order(order)
            page = builder.range(offset, offset + page_size - 1).execute().data or []
            rows.extend(page)
            if len(page) < page_size:
                break
            offset += page_size
        log.debug("query_complete", table=table, rows=len(rows))
        return rows

    async def fetch_statuses(self) -> list[RunStatus]:
        rows = await self.query(STATUS_TABLE, order="dataset_name")
        return [RunStatus.from_db_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Run bookkeeping
    # ------------------------------------------------------------------

    async def update_status(self, status: RunStatus) -> None:
        """
        Update the metric's data_collection_status row.

        The row is pre-seeded by sql/schema.sql; this never inserts.
        """
        self._client.table(STATUS_TABLE).update(status.to_update_dict()).eq(
            "dataset_name", status.dataset_name
        ).execute()
        log.info(
            "status_updated",
            dataset=status.dataset_name,
            status=status.status,
            record_count=status.record_count,
        )

    async def fail_status(self, dataset_name: str, error_message: str) -> None:
        """
        Mark a metric failed. Errors from the store are logged, not raised,
        so a broken store cannot hide the original failure.
        """
        try:
            await self.update_status(
                RunStatus(dataset_name=dataset_name, status="failed", last_error=error_message)
            )
        except Exception as exc:
            log.error(
                "status_update_failed",
                dataset=dataset_name,
                error=str(exc),
                original_error=error_message[:200],
            )

    async def log_event(
        self,
        dataset_name: str,
        log_type: LogType,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Append a row to data_collection_logs.

        Best-effort: errors writing the log are never surfaced to the
        caller. They are reported locally at WARNING and dropped.
        """
        entry = CollectionLogEntry(
            dataset_name=dataset_name, log_type=log_type, message=message, details=details
        )
        try:
            self._client.table(LOG_TABLE).insert(entry.to_insert_dict()).execute()
        except Exception as exc:
            log.warning("collection_log_write_failed", dataset=dataset_name, error=str(exc))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_dicts(df: pl.DataFrame) -> list[dict[str, Any]]:
        """
        Convert a polars DataFrame to a JSON-serialisable list of dicts.

        - Date and datetime values → ISO string
        - Nulls are kept so every row in a batch has the same keys and a
          re-run overwrites stale values
        """
        cast_exprs = []
        for col_name in df.columns:
            dtype = df[col_name].dtype
            if dtype == pl.Date:
                cast_exprs.append(pl.col(col_name).cast(pl.String).alias(col_name))
            elif dtype == pl.Datetime:
                cast_exprs.append(
                    pl.col(col_name).dt.strftime("%Y-%m-%dT%H:%M:%SZ").alias(col_name)
                )
        if cast_exprs:
            df = df.with_columns(cast_exprs)
        return df.to_dicts()
