"""
series.py — Declarative description of one tracked metric.

A MetricSeries is the unit of work for the collector: which table it lands
in, which typed fields a record carries, how it is keyed, and which sources
to try in what order. The resolver, normalizer and loader are generic and
read everything they need from here.

Usage:
    gas_price = MetricSeries(
        name="gas_price",
        table="historical_gas_price",
        fields={"avg_gas_price_gwei": FieldSpec(precision=4, rescale_above=1e6, rescale_divisor=1e9)},
        tiers=[etherscan_api, etherscan_csv],
        terminal=RegimeSource(...),
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

import polars as pl

if TYPE_CHECKING:
    from ethval_pipeline.sources.base import BaseSource

FieldKind = Literal["float", "int", "text"]
EnrichmentMode = Literal["replace", "fill", "overlay"]

_DTYPES: dict[str, type[pl.DataType]] = {
    "float": pl.Float64,
    "int": pl.Int64,
    "text": pl.String,
}


@dataclass(frozen=True)
class FieldSpec:
    """
    Type and storage rules for one value column.

    precision:        decimals kept for float fields (None = unrounded).
    rescale_above:    magnitude heuristic; a raw value whose absolute value
                      exceeds this is assumed to be in the smallest subunit
                      and is divided by rescale_divisor.
    valid_range:      exclusive sanity bounds used when backfilling.
    """

    kind: FieldKind = "float"
    precision: int | None = 2
    rescale_above: float | None = None
    rescale_divisor: float = 1.0
    valid_range: tuple[float, float] | None = None

    @property
    def dtype(self) -> type[pl.DataType]:
        return _DTYPES[self.kind]


@dataclass(frozen=True)
class Enrichment:
    """A live snapshot overlaid on today's record after the merge."""

    source: BaseSource
    mode: EnrichmentMode = "replace"


@dataclass
class MetricSeries:
    """One metric: table, record shape, natural key and ordered source tiers."""

    name: str
    table: str
    fields: dict[str, FieldSpec]
    tiers: list[BaseSource] = field(default_factory=list)
    terminal: BaseSource | None = None
    enrichments: list[Enrichment] = field(default_factory=list)
    dimension: str | None = None
    dimensions: list[str] = field(default_factory=list)
    min_rows: int = 100
    has_timestamp: bool = True
    description: str = ""

    def __post_init__(self) -> None:
        if not self.fields:
            raise ValueError(f"{self.name}: at least one value field is required")
        if self.dimension and not self.dimensions:
            raise ValueError(f"{self.name}: dimension '{self.dimension}' has no values")
        if not self.tiers and self.terminal is None:
            raise ValueError(f"{self.name}: no source tiers declared")

    @property
    def key_columns(self) -> list[str]:
        if self.dimension:
            return ["date", self.dimension]
        return ["date"]

    @property
    def conflict_key(self) -> str:
        return ",".join(self.key_columns)

    @property
    def schema(self) -> dict[str, type[pl.DataType]]:
        """Column → polars dtype, in canonical column order."""
        schema: dict[str, type[pl.DataType]] = {"date": pl.Date}
        if self.has_timestamp:
            schema["timestamp"] = pl.Int64
        if self.dimension:
            schema[self.dimension] = pl.String
        for name, spec in self.fields.items():
            schema[name] = spec.dtype
        schema["source"] = pl.String
        return schema

    @property
    def columns(self) -> list[str]:
        return list(self.schema)

    def empty_frame(self) -> pl.DataFrame:
        return pl.DataFrame(schema=self.schema)

    @property
    def sources(self) -> list[BaseSource]:
        """Every source this metric may call, in the order the resolver would."""
        out = list(self.tiers)
        if self.terminal is not None:
            out.append(self.terminal)
        out.extend(e.source for e in self.enrichments)
        return out
