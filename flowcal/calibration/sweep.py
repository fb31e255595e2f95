"""Flow/temperature sweep sequencing.

The sweep is an ordered list of ``flow_steps * temp_steps`` test points.
Point ``k`` belongs to sweep column ``k // flow_steps + 1`` (one column per
temperature) and sweep row ``k % flow_steps + 1``.

Two flow policies:

fill
    ``flow = start_flow + k * flow_offset`` -- one continuous ramp that
    ignores column boundaries.
matrix
    ``flow = start_flow + (row - 1) * flow_offset`` -- the ramp restarts at
    every column, giving a temperature-by-flow matrix.

Which policy applies is decided by :attr:`CalibrationSettings.fill_mode`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator

from flowcal.configs.settings import CalibrationSettings


@dataclass(frozen=True)
class SweepPoint:
    """One test of the sweep.

    Attributes
    ----------
    index : int
        0-based global position in the sweep.
    column : int
        1-based sweep column (temperature group).
    row : int
        1-based sweep row within the column.
    temperature : float
        Nozzle temperature for the column (°C).
    flow : float
        Target volumetric flow (mm³/s).
    """

    index: int
    column: int
    row: int
    temperature: float
    flow: float


def column_start(settings: CalibrationSettings, column: int) -> int:
    """Global index of the first row of the 1-based sweep *column*."""
    return (column - 1) * settings.flow_steps


def sweep_point(settings: CalibrationSettings, index: int) -> SweepPoint:
    """Resolve the global sweep *index* into column, row, temperature and flow.

    Raises
    ------
    IndexError
        If *index* is outside ``[0, settings.total_steps)``.
    """
    if not 0 <= index < settings.total_steps:
        raise IndexError(f"Sweep index {index} outside [0, {settings.total_steps})")

    column = index // settings.flow_steps + 1
    row = index % settings.flow_steps + 1
    temperature = settings.start_temp + (column - 1) * settings.temp_offset
    if settings.fill_mode:
        flow = settings.start_flow + index * settings.flow_offset
    else:
        flow = settings.start_flow + (row - 1) * settings.flow_offset
    return SweepPoint(index=index, column=column, row=row, temperature=temperature, flow=flow)


def iter_sweep(settings: CalibrationSettings) -> Iterator[SweepPoint]:
    """Yield every sweep point in order."""
    for index in range(settings.total_steps):
        yield sweep_point(settings, index)


def feed_rate(settings: CalibrationSettings, flow: float) -> float:
    """Vertical feed (mm/min) that deposits ``extrusion_amount`` at *flow*.

    ``blob_height * (flow / filament_area) / extrusion_amount * 60``,
    rounded to 2 decimals and floored at 1.  Anything non-finite (zero
    extrusion amount or filament diameter) also yields the floor.
    """
    try:
        raw = settings.blob_height * (flow / settings.filament_area) / settings.extrusion_amount * 60
    except ZeroDivisionError:
        return 1.0
    if not math.isfinite(raw):
        return 1.0
    return max(1.0, round(raw, 2))
