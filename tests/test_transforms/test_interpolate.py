"""
tests/test_transforms/test_interpolate.py — Unit tests for the synthetic generators.
"""

from __future__ import annotations

from datetime import date

from ethval_pipeline.series import FieldSpec
from ethval_pipeline.transforms.interpolate import (
    Anchor,
    Regime,
    interpolate_anchors,
    sample_regimes,
)
from ethval_shared.time_utils import date_range

STAKED = {"staked": FieldSpec(precision=2)}


class TestInterpolateAnchors:
    def test_boundary_values_are_exact(self):
        rows = interpolate_anchors(
            [
                Anchor(date(2020, 12, 1), {"staked": 524_288}),
                Anchor(date(2020, 12, 11), {"staked": 1_524_288}),
            ],
            STAKED,
        )
        assert rows[0] == {"date": date(2020, 12, 1), "staked": 524_288}
        assert rows[-1] == {"date": date(2020, 12, 11), "staked": 1_524_288}
        assert len(rows) == 11

    def test_linear_midpoint(self):
        rows = interpolate_anchors(
            [Anchor(date(2024, 1, 1), {"staked": 0}), Anchor(date(2024, 1, 5), {"staked": 100})],
            STAKED,
        )
        assert [r["staked"] for r in rows] == [0, 25, 50, 75, 100]

    def test_values_stay_within_anchor_bounds(self):
        anchors = [
            Anchor(date(2024, 1, 1), {"staked": 10.0}),
            Anchor(date(2024, 2, 1), {"staked": 3.0}),
            Anchor(date(2024, 3, 1), {"staked": 7.5}),
        ]
        rows = interpolate_anchors(anchors, STAKED)
        for row in rows:
            if row["date"] < date(2024, 2, 1):
                assert 3.0 <= row["staked"] <= 10.0
            else:
                assert 3.0 <= row["staked"] <= 7.5

    def test_one_row_per_day_without_gaps(self):
        anchors = [
            Anchor(date(2024, 1, 1), {"staked": 1}),
            Anchor(date(2024, 1, 20), {"staked": 2}),
            Anchor(date(2024, 2, 3), {"staked": 3}),
        ]
        rows = interpolate_anchors(anchors, STAKED)
        assert [r["date"] for r in rows] == date_range(date(2024, 1, 1), date(2024, 2, 3))

    def test_zero_length_interval_contributes_nothing(self):
        anchors = [
            Anchor(date(2024, 1, 1), {"staked": 1}),
            Anchor(date(2024, 1, 1), {"staked": 5}),
            Anchor(date(2024, 1, 3), {"staked": 3}),
        ]
        rows = interpolate_anchors(anchors, STAKED)
        assert len(rows) == 3
        assert rows[0]["date"] == date(2024, 1, 1)

    def test_missing_field_in_anchor_is_null(self):
        rows = interpolate_anchors(
            [Anchor(date(2024, 1, 1), {"staked": 1}), Anchor(date(2024, 1, 2), {"staked": 2})],
            {**STAKED, "apr": FieldSpec(precision=4)},
        )
        assert rows[0]["apr"] is None

    def test_no_anchors(self):
        assert interpolate_anchors([], STAKED) == []


class TestSampleRegimes:
    REGIMES = [
        Regime(None, date(2024, 1, 1), {"gwei": (20.0, 40.0)}),
        Regime(date(2024, 1, 1), None, {"gwei": (5.0, 10.0)}),
    ]
    FIELDS = {"gwei": FieldSpec(precision=4)}

    def test_values_within_regime_bounds(self):
        dates = date_range(date(2023, 12, 20), date(2024, 1, 10))
        rows = sample_regimes(self.REGIMES, dates, self.FIELDS, seed="gas")
        assert len(rows) == len(dates)
        for row in rows:
            lo, hi = (20.0, 40.0) if row["date"] < date(2024, 1, 1) else (5.0, 10.0)
            assert lo <= row["gwei"] <= hi

    def test_deterministic_for_seed_and_date(self):
        dates = date_range(date(2024, 1, 1), date(2024, 1, 5))
        first = sample_regimes(self.REGIMES, dates, self.FIELDS, seed="gas")
        second = sample_regimes(self.REGIMES, list(reversed(dates)), self.FIELDS, seed="gas")
        assert first == sorted(second, key=lambda r: r["date"])

    def test_seed_changes_values(self):
        dates = date_range(date(2024, 1, 1), date(2024, 1, 5))
        a = sample_regimes(self.REGIMES, dates, self.FIELDS, seed="gas")
        b = sample_regimes(self.REGIMES, dates, self.FIELDS, seed="other")
        assert a != b

    def test_uncovered_dates_are_skipped(self):
        regimes = [Regime(date(2024, 1, 2), date(2024, 1, 3), {"gwei": (1.0, 2.0)})]
        dates = date_range(date(2024, 1, 1), date(2024, 1, 3))
        rows = sample_regimes(regimes, dates, self.FIELDS, seed="x")
        assert [r["date"] for r in rows] == [date(2024, 1, 2)]

    def test_int_fields_are_whole_numbers(self):
        regimes = [Regime(None, None, {"tx": (1_000_000, 1_300_000)})]
        rows = sample_regimes(
            regimes, [date(2024, 1, 1)], {"tx": FieldSpec(kind="int")}, seed="tx"
        )
        assert isinstance(rows[0]["tx"], int)
        assert 1_000_000 <= rows[0]["tx"] <= 1_300_000
