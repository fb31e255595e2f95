"""Plate grid layout and flow/temperature sweep sequencing."""

from flowcal.calibration.layout import (
    CandidatePosition,
    GridSize,
    candidate_positions,
    grid_size,
)
from flowcal.calibration.sweep import SweepPoint, feed_rate, iter_sweep, sweep_point

__all__ = [
    "CandidatePosition",
    "GridSize",
    "SweepPoint",
    "candidate_positions",
    "feed_rate",
    "grid_size",
    "iter_sweep",
    "sweep_point",
]
