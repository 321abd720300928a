"""
sources/synthetic.py — Terminal tiers that never touch the network.

AnchorSource   linear interpolation between dated milestones; rows tagged
               "interpolated"
RegimeSource   bounded, date-seeded random values per era; rows tagged
               "estimated"

Both are deterministic and always produce rows for the requested window, so
a metric that declares one of them as its terminal tier never ends empty.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from ethval_pipeline.series import FieldSpec
from ethval_pipeline.sources.base import BaseSource, RawRow
from ethval_pipeline.transforms.interpolate import (
    Anchor,
    Regime,
    interpolate_anchors,
    sample_regimes,
)
from ethval_shared.constants import SOURCE_ESTIMATED, SOURCE_INTERPOLATED
from ethval_shared.time_utils import HistoryWindow


class AnchorSource(BaseSource):
    """Interpolate between known milestone values."""

    name = SOURCE_INTERPOLATED

    def __init__(
        self,
        anchors: Sequence[Anchor],
        fields: Mapping[str, FieldSpec],
        *,
        derived: Mapping[str, Callable[[dict[str, Any]], Any]] | None = None,
        description: str = "",
    ) -> None:
        super().__init__()
        self._anchors = list(anchors)
        self._fields = dict(fields)
        self._derived = dict(derived or {})
        self.description = description or f"{len(self._anchors)} milestone anchors"

    async def extract(
        self,
        window: HistoryWindow,
        *,
        dimension: str | None = None,
    ) -> list[RawRow]:
        rows = interpolate_anchors(self._anchors, self._fields)
        for row in rows:
            for name, fn in self._derived.items():
                row[name] = fn(row)
        return [row for row in rows if row["date"] in window]


class RegimeSource(BaseSource):
    """Draw plausible values from per-era bounds."""

    name = SOURCE_ESTIMATED

    def __init__(
        self,
        regimes: Sequence[Regime],
        fields: Mapping[str, FieldSpec],
        *,
        seed: str,
        description: str = "",
    ) -> None:
        super().__init__()
        self._regimes = list(regimes)
        self._fields = dict(fields)
        self._seed = seed
        self.description = description or f"{len(self._regimes)} value regimes"

    async def extract(
        self,
        window: HistoryWindow,
        *,
        dimension: str | None = None,
    ) -> list[RawRow]:
        seed = f"{self._seed}:{dimension}" if dimension else self._seed
        return sample_regimes(self._regimes, window.dates(), self._fields, seed=seed)
