"""
ethval_pipeline.sources — source adapters, one tier each.

Generic adapters:
  RestJsonSource     — JSON endpoint, field paths, optional backward cursor
  CsvHttpSource      — CSV download with bounded manual redirects
  JoinedSource       — several endpoints supplying fields of one record
  AnchorSource       — interpolation between milestones ("interpolated")
  RegimeSource       — bounded seeded estimates per era ("estimated")
  StoredSeriesSource — rows already written to the store
  VolatilitySource   — rolling volatility derived from a price tier

Provider modules: cryptocompare, coingecko, defillama, etherscan, snapshots.
"""

from ethval_pipeline.sources.base import BaseSource, JoinedSource
from ethval_pipeline.sources.csv_http import CsvHttpSource
from ethval_pipeline.sources.derived import StoredSeriesSource, VolatilitySource
from ethval_pipeline.sources.http import HttpFetcher
from ethval_pipeline.sources.rest_json import BackwardCursor, RestJsonSource
from ethval_pipeline.sources.synthetic import AnchorSource, RegimeSource

__all__ = [
    "BaseSource",
    "JoinedSource",
    "HttpFetcher",
    "RestJsonSource",
    "BackwardCursor",
    "CsvHttpSource",
    "AnchorSource",
    "RegimeSource",
    "StoredSeriesSource",
    "VolatilitySource",
]
