"""Tests for flow/temperature sweep sequencing and blob feed rate."""

from __future__ import annotations

import pytest

from flowcal.calibration.sweep import column_start, feed_rate, iter_sweep, sweep_point
from flowcal.configs.settings import resolve_settings


class TestFillMode:
    def test_flow_ramps_over_whole_sweep(self) -> None:
        s = resolve_settings({"startFlow": 8, "offset": 2, "steps": 20})
        flows = [p.flow for p in iter_sweep(s)]
        assert flows == [8 + k * 2 for k in range(20)]

    def test_ramp_ignores_column_boundaries(self) -> None:
        s = resolve_settings({"startFlow": 1, "offset": 1, "steps": 3, "tempSteps": 2,
                              "sweepMode": "fill"})
        points = list(iter_sweep(s))
        assert [p.flow for p in points] == [1, 2, 3, 4, 5, 6]
        assert [p.column for p in points] == [1, 1, 1, 2, 2, 2]


class TestMatrixMode:
    @pytest.fixture()
    def points(self):
        s = resolve_settings({
            "startFlow": 5, "offset": 1, "steps": 4, "tempSteps": 3,
            "startTemp": 200, "tempOffset": 10,
        })
        return list(iter_sweep(s))

    def test_flow_resets_each_column(self, points) -> None:
        assert [p.flow for p in points] == [5, 6, 7, 8] * 3

    def test_temperature_per_column(self, points) -> None:
        assert [p.temperature for p in points[::4]] == [200, 210, 220]

    def test_rows_and_columns(self, points) -> None:
        assert (points[5].column, points[5].row) == (2, 2)
        assert (points[11].column, points[11].row) == (3, 4)


class TestSweepPoint:
    def test_single_column_by_default(self) -> None:
        s = resolve_settings({"steps": 20, "startTemp": 210})
        assert all(p.column == 1 for p in iter_sweep(s))
        assert sweep_point(s, 19).row == 20
        assert sweep_point(s, 19).temperature == 210

    @pytest.mark.parametrize("index", [-1, 20])
    def test_out_of_range(self, index: int) -> None:
        s = resolve_settings({"steps": 20})
        with pytest.raises(IndexError):
            sweep_point(s, index)

    def test_zero_steps_yields_nothing(self) -> None:
        assert list(iter_sweep(resolve_settings({"steps": 0}))) == []

    def test_column_start(self) -> None:
        s = resolve_settings({"steps": 4, "tempSteps": 3})
        assert [column_start(s, c) for c in (1, 2, 3)] == [0, 4, 8]


class TestFeedRate:
    def test_formula(self) -> None:
        s = resolve_settings({"blobHeight": 5, "extrusionAmount": 50, "filamentDiameter": 1.75})
        expected = round(5 * (8 / s.filament_area) / 50 * 60, 2)
        assert feed_rate(s, 8) == pytest.approx(expected)
        assert feed_rate(s, 8) == pytest.approx(19.96)

    def test_floored_at_one(self) -> None:
        s = resolve_settings()
        assert feed_rate(s, 0) == 1.0
        assert feed_rate(s, -5) == 1.0

    @pytest.mark.parametrize("raw", [{"extrusionAmount": 0}, {"filamentDiameter": 0}])
    def test_non_finite_floored(self, raw) -> None:
        assert feed_rate(resolve_settings(raw), 8) == 1.0
