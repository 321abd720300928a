"""
transforms/interpolate.py — Synthetic daily values for gap filling.

Two generators, both deterministic so a re-run writes identical rows:

  interpolate_anchors   linear interpolation between dated milestone values
                        (staking totals, ETH supply)
  sample_regimes        bounded random draws per calendar era, seeded by
                        (seed, date) (gas price, transaction counts)

Both return raw row dicts ({"date": date, field: value}) already rounded per
field, ready for RecordNormalizer.

Usage:
    rows = interpolate_anchors(
        [Anchor(date(2024, 1, 1), {"total_staked_eth": 29_000_000}),
         Anchor(date(2024, 7, 1), {"total_staked_eth": 33_000_000})],
        {"total_staked_eth": FieldSpec(kind="int")},
    )
"""

from __future__ import annotations

import random
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from dateutil.relativedelta import relativedelta

from ethval_pipeline.series import FieldSpec
from ethval_pipeline.transforms.normalize import round_value


@dataclass(frozen=True)
class Anchor:
    """A known value for one or more fields on a given day."""

    date: date
    values: Mapping[str, float]


@dataclass(frozen=True)
class Regime:
    """
    Plausible bounds per field for an era.

    start is inclusive, end is exclusive; None leaves that side open.
    """

    start: date | None
    end: date | None
    bounds: Mapping[str, tuple[float, float]] = field(default_factory=dict)

    def covers(self, d: date) -> bool:
        if self.start is not None and d < self.start:
            return False
        if self.end is not None and d >= self.end:
            return False
        return True


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(max(value, lo), hi)


def interpolate_anchors(
    anchors: Iterable[Anchor],
    fields: Mapping[str, FieldSpec],
) -> list[dict[str, Any]]:
    """
    One row per calendar day from the first anchor to the last.

    For consecutive anchors (d0, v0), (d1, v1) every day d in [d0, d1) gets
    v0 + (v1 - v0) * (d - d0) / (d1 - d0), rounded per field and kept within
    [min(v0, v1), max(v0, v1)]. The final anchor is emitted once with its
    exact value. Intervals with d1 <= d0 contribute nothing.
    """
    ordered = sorted(anchors, key=lambda a: a.date)
    if not ordered:
        return []

    rows: dict[date, dict[str, Any]] = {}
    for a0, a1 in zip(ordered, ordered[1:]):
        span = (a1.date - a0.date).days
        if span <= 0:
            continue
        for offset in range(span):
            d = a0.date + relativedelta(days=offset)
            if d in rows:
                continue
            row: dict[str, Any] = {"date": d}
            for name, spec in fields.items():
                v0, v1 = a0.values.get(name), a1.values.get(name)
                if v0 is None or v1 is None:
                    row[name] = None
                    continue
                raw = v0 + (v1 - v0) * offset / span
                row[name] = _clamp(round_value(raw, spec), min(v0, v1), max(v0, v1))
            rows[d] = row

    last = ordered[-1]
    if last.date not in rows:
        rows[last.date] = {
            "date": last.date,
            **{
                name: (round_value(last.values[name], spec) if name in last.values else None)
                for name, spec in fields.items()
            },
        }
    return [rows[d] for d in sorted(rows)]


def sample_regimes(
    regimes: Sequence[Regime],
    dates: Iterable[date],
    fields: Mapping[str, FieldSpec],
    *,
    seed: str,
) -> list[dict[str, Any]]:
    """
    One row per date covered by a regime, values drawn uniformly in bounds.

    The generator for each day is seeded by f"{seed}:{iso date}", so the same
    day always yields the same values. Dates no regime covers are skipped.
    """
    rows: list[dict[str, Any]] = []
    for d in dates:
        regime = next((r for r in regimes if r.covers(d)), None)
        if regime is None:
            continue
        rng = random.Random(f"{seed}:{d.isoformat()}")
        row: dict[str, Any] = {"date": d}
        for name, spec in fields.items():
            bounds = regime.bounds.get(name)
            if bounds is None:
                row[name] = None
                continue
            lo, hi = bounds
            row[name] = _clamp(round_value(rng.uniform(lo, hi), spec), lo, hi)
        rows.append(row)
    return rows
