"""
errors.py — Exception hierarchy for the collector.

Scope of each error decides who handles it:
  FetchError (SourceUnavailable, SchemaMismatch, EmptyResult)
      tier-local; the resolver moves on to the next tier.
  RowError (UnparseableDate, UnparseableNumber)
      row-local; the normalizer drops the row.
  AllTiersExhausted, WriteFailure, RunCancelled
      metric-local; the orchestrator marks the metric failed and continues.
"""

from __future__ import annotations


class EthvalError(Exception):
    """Base exception for all collector errors."""


# ---------------------------------------------------------------------------
# Tier-local
# ---------------------------------------------------------------------------


class FetchError(EthvalError):
    """A source could not produce rows for this run."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class SourceUnavailable(FetchError):
    """Network failure, HTTP error status, or too many redirects."""


class SchemaMismatch(FetchError):
    """The response parsed but an expected field is missing or malformed."""


class EmptyResult(FetchError):
    """The source answered with zero usable rows."""


# ---------------------------------------------------------------------------
# Row-local
# ---------------------------------------------------------------------------


class RowError(EthvalError, ValueError):
    """A single raw row could not be normalized."""


class UnparseableDate(RowError):
    pass


class UnparseableNumber(RowError):
    pass


# ---------------------------------------------------------------------------
# Metric-local
# ---------------------------------------------------------------------------


class AllTiersExhausted(EthvalError):
    """No tier, including the terminal generator, produced any rows."""


class WriteFailure(EthvalError):
    """A batch upsert failed; remaining batches for the metric were skipped."""

    def __init__(self, message: str, *, table: str, batch: int, records_written: int) -> None:
        super().__init__(message)
        self.table = table
        self.batch = batch
        self.records_written = records_written


class RunCancelled(EthvalError):
    """The run deadline passed or a cancellation signal was received."""
