"""
sources/base.py — Abstract base class for all source adapters.

Each concrete source must implement:
  extract()      — fetch raw rows for a window (list of dicts)

and may override:
  get_metadata() — dict describing the source for `ethval-collect list`

The fetch() method orchestrates extract → normalize → clip and handles
timing, logging and error classification. The resolver calls fetch() rather
than the individual methods.

Every failure leaving fetch() is a FetchError:
  SourceUnavailable  network / HTTP status / redirect failures
  SchemaMismatch     payload parsed but the expected shape is missing
  EmptyResult        zero usable rows
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import httpx
import polars as pl
import structlog

from ethval_pipeline.errors import (
    EmptyResult,
    FetchError,
    SchemaMismatch,
    SourceUnavailable,
)
from ethval_pipeline.series import MetricSeries
from ethval_pipeline.transforms.normalize import RecordNormalizer
from ethval_pipeline.transforms.time_series import clip_to_window
from ethval_shared.time_utils import HistoryWindow, parse_chain_date

log = structlog.get_logger(__name__)

RawRow = dict[str, Any]


class BaseSource(ABC):
    """Abstract base for every tier: live API, CSV export, store or generator."""

    # Override in subclass or pass to __init__; written to the `source` column
    name: str = "unknown"
    description: str = ""

    def __init__(self, name: str | None = None) -> None:
        if name is not None:
            self.name = name
        self._log = log.bind(source_name=self.name)

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abstractmethod
    async def extract(
        self,
        window: HistoryWindow,
        *,
        dimension: str | None = None,
    ) -> list[RawRow]:
        """
        Fetch raw rows from the external source.

        Rows are dicts with a "date" value in any format parse_chain_date
        accepts plus the metric's field names. Values may be strings.

        Args:
            window:    Days the run asks for; sources may return more.
            dimension: Dimension value (chain, protocol) for composite metrics.
        """
        ...

    def get_metadata(self) -> dict[str, Any]:
        return {"source_name": self.name, "type": type(self).__name__, "description": self.description}

    # ------------------------------------------------------------------
    # Orchestration: the resolver calls these
    # ------------------------------------------------------------------

    async def fetch_raw(
        self,
        window: HistoryWindow,
        *,
        dimension: str | None = None,
    ) -> list[RawRow]:
        """extract() with provider errors mapped onto the FetchError taxonomy."""
        try:
            return await self.extract(window, dimension=dimension)
        except FetchError as exc:
            exc.source = exc.source or self.name
            raise
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"{self.name}: {exc}", source=self.name) from exc
        except pl.exceptions.PolarsError as exc:
            raise SchemaMismatch(f"{self.name}: {exc}", source=self.name) from exc
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as exc:
            raise SchemaMismatch(
                f"{self.name}: unexpected payload shape ({type(exc).__name__}: {exc})",
                source=self.name,
            ) from exc

    def transform(
        self,
        raw: list[RawRow],
        metric: MetricSeries,
        *,
        dimension: str | None = None,
    ) -> pl.DataFrame:
        """Normalize raw rows into the metric's schema, tagged with this source."""
        return RecordNormalizer(metric).normalize(
            raw, source_tag=self.name, dimension=dimension
        )

    async def fetch(
        self,
        metric: MetricSeries,
        window: HistoryWindow,
        *,
        dimension: str | None = None,
    ) -> pl.DataFrame:
        """
        Extract + normalize + clip to window, with timing and structured logging.

        Returns:
            Non-empty normalized DataFrame, sorted by the natural key.

        Raises:
            FetchError subclasses only.
        """
        run_log = self._log.bind(metric=metric.name, dimension=dimension)
        run_log.debug("source_fetch_start", start=str(window.start), end=str(window.end))

        t0 = time.monotonic()
        try:
            raw = await self.fetch_raw(window, dimension=dimension)
            if not raw:
                raise EmptyResult(f"{self.name}: no rows returned", source=self.name)

            result = clip_to_window(
                self.transform(raw, metric, dimension=dimension), window
            ).sort(metric.key_columns, maintain_order=True)
            if result.is_empty():
                if any(parse_chain_date(row.get("date")) in window for row in raw):
                    raise SchemaMismatch(
                        f"{self.name}: {len(raw)} rows but none carried {sorted(metric.fields)}",
                        source=self.name,
                    )
                raise EmptyResult(f"{self.name}: no rows inside the window", source=self.name)

        except FetchError as exc:
            run_log.warning(
                "source_fetch_failed",
                error_type=type(exc).__name__,
                error=str(exc),
                duration_ms=int((time.monotonic() - t0) * 1000),
            )
            raise

        run_log.info(
            "source_fetch_complete",
            raw_rows=len(raw),
            output_rows=len(result),
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return result


class JoinedSource(BaseSource):
    """
    Several endpoints that each supply some fields of the same record.

    The first part defines which days exist; later parts only fill fields on
    those days. A failure of the first part fails the tier; a failure of a
    later part is logged and its fields stay null.
    """

    def __init__(self, parts: Sequence[BaseSource], name: str | None = None) -> None:
        if not parts:
            raise ValueError("JoinedSource needs at least one part")
        self._parts = list(parts)
        super().__init__(name or parts[0].name)

    async def extract(
        self,
        window: HistoryWindow,
        *,
        dimension: str | None = None,
    ) -> list[RawRow]:
        first, *rest = self._parts
        rows = await first.fetch_raw(window, dimension=dimension)

        by_date: dict[Any, RawRow] = {}
        for row in rows:
            d = parse_chain_date(row.get("date"))
            if d is not None:
                by_date.setdefault(d, row)

        for part in rest:
            try:
                extra = await part.fetch_raw(window, dimension=dimension)
            except FetchError as exc:
                self._log.warning(
                    "joined_part_failed",
                    part=part.name,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                continue
            for row in extra:
                target = by_date.get(parse_chain_date(row.get("date")))
                if target is None:
                    continue
                for key, value in row.items():
                    if key != "date" and value is not None and target.get(key) is None:
                        target[key] = value
        return rows

    def get_metadata(self) -> dict[str, Any]:
        meta = super().get_metadata()
        meta["parts"] = [p.name for p in self._parts]
        return meta
