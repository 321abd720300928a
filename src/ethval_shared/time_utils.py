"""
time_utils.py — Date parsing and daily window utilities.

Third-party sources encode days in several ways:
- ISO: "2024-03-09", "2024-03-09T00:00:00Z"
- US chart exports: "3/9/2024" (M/D/YYYY, Etherscan CSV)
- Unix seconds: 1709942400 or "1709942400" (DefiLlama, alternative.me)
- Unix milliseconds: 1709942400000 (CoinGecko)

All of them canonicalize to a UTC calendar day; no local-time arithmetic.

Usage:
    from ethval_shared.time_utils import parse_chain_date, to_unix_seconds

    d = parse_chain_date("3/9/2024")        # date(2024, 3, 9)
    d = parse_chain_date(1709942400)        # date(2024, 3, 9)
    ts = to_unix_seconds(d)                 # 1709942400
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from dateutil.relativedelta import relativedelta

# Epoch values at or above this are milliseconds (year ~5138 in seconds).
MILLISECONDS_THRESHOLD = 100_000_000_000

_ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_US_DATE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")
_NUMERIC = re.compile(r"\d+(\.\d+)?")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def from_unix(value: float) -> date | None:
    """Convert Unix seconds (or milliseconds, by magnitude) to a UTC date."""
    if value < 0:
        return None
    if value >= MILLISECONDS_THRESHOLD:
        value = value / 1000.0
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc).date()
    except (OverflowError, OSError, ValueError):
        return None


def parse_chain_date(raw: Any) -> date | None:
    """
    Parse a raw date value into a UTC calendar day.

    Returns None if the value cannot be parsed.

    Args:
        raw: str, int/float epoch, date or datetime.

    Returns:
        datetime.date or None.
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, datetime):
        if raw.tzinfo is not None:
            raw = raw.astimezone(timezone.utc)
        return raw.date()

    if isinstance(raw, date):
        return raw

    if isinstance(raw, (int, float)):
        return from_unix(float(raw))

    if not isinstance(raw, str):
        return None

    s = raw.strip()
    if not s:
        return None

    # Epoch as a string
    if _NUMERIC.fullmatch(s):
        return from_unix(float(s))

    # ISO full date: YYYY-MM-DD
    m = _ISO_DATE.fullmatch(s)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return None

    # M/D/YYYY
    m = _US_DATE.fullmatch(s)
    if m:
        try:
            return date(int(m.group(3)), int(m.group(1)), int(m.group(2)))
        except ValueError:
            return None

    # ISO datetime, with or without offset
    if _ISO_DATE.match(s):
        try:
            dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is not None:
            dt = dt.astimezone(timezone.utc)
        return dt.date()

    return None


def to_unix_seconds(d: date) -> int:
    """Midnight UTC of *d* as Unix seconds."""
    return int(datetime(d.year, d.month, d.day, tzinfo=timezone.utc).timestamp())


def date_range(start: date, end: date) -> list[date]:
    """Every calendar day from start to end, both inclusive."""
    dates = []
    current = start
    step = relativedelta(days=1)
    while current <= end:
        dates.append(current)
        current = current + step
    return dates


@dataclass(frozen=True)
class HistoryWindow:
    """Inclusive range of calendar days a run asks every source for."""

    start: date
    end: date

    @classmethod
    def last_days(cls, days: int, *, today: date | None = None) -> "HistoryWindow":
        end = today or utc_today()
        return cls(start=end - relativedelta(days=days - 1), end=end)

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def dates(self) -> list[date]:
        return date_range(self.start, self.end)

    def __contains__(self, d: object) -> bool:
        return isinstance(d, date) and self.start <= d <= self.end
