"""Plate grid layout -- where test sites may go on one build plate.

The grid is laid out column-major: columns advance along +X by the site
pitch (prime + wipe + x spacing), rows advance away from the back margin by
the y spacing.  ``direction == 1`` mirrors the row coordinate about zero for
printers whose home corner is at the front.

Cells whose point falls inside any excluded area (closed rectangle) are
dropped.  The surviving order is the placement order and never depends on
anything but the inputs.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable

from flowcal.configs.loader import ExcludedArea
from flowcal.configs.settings import CalibrationSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridSize:
    """Physical grid bounds for one plate (both always >= 1)."""

    columns: int
    rows: int

    @property
    def cells(self) -> int:
        return self.columns * self.rows


@dataclass(frozen=True)
class CandidatePosition:
    """One grid cell: 1-based column/row and its bed X/Y (mm)."""

    column: int
    row: int
    x: float
    y: float


def _fit(span: float, pitch: float) -> int:
    """How many *pitch*-wide cells fit in *span*, at least one."""
    if not math.isfinite(pitch) or pitch <= 0:
        return 1
    count = span / pitch
    if not math.isfinite(count):
        return 1
    return max(1, math.floor(count))


def column_pitch(settings: CalibrationSettings) -> float:
    """Distance between neighbouring columns: prime + wipe + gap."""
    return settings.prime_length + settings.wipe_length + settings.x_spacing


def grid_size(settings: CalibrationSettings) -> GridSize:
    """Compute how many columns and rows fit on one plate.

    Parameters
    ----------
    settings : CalibrationSettings
        Resolved settings (bed size, margins, site pitch).

    Returns
    -------
    GridSize
        Column and row counts, each at least 1.
    """
    mx, my = settings.margins
    columns = _fit(settings.bed_width - 2 * abs(mx), column_pitch(settings))
    rows = _fit(settings.bed_length - 2 * abs(my), settings.y_spacing)
    return GridSize(columns=columns, rows=rows)


def cell_position(settings: CalibrationSettings, column: int, row: int) -> tuple[float, float]:
    """Bed X/Y of the 1-based grid cell ``(column, row)``."""
    mx, my = settings.margins
    if settings.direction == 1:
        length, margin, pitch = 0.0, -my, -settings.y_spacing
    else:
        length, margin, pitch = settings.bed_length, my, settings.y_spacing
    x = abs(mx) + (column - 1) * column_pitch(settings)
    y = length - margin - (row - 1) * pitch
    return x, y


def is_excluded(x: float, y: float, areas: Iterable[ExcludedArea]) -> bool:
    """True when ``(x, y)`` lies in the closed box of any area."""
    return any(area.contains(x, y) for area in areas)


def candidate_positions(
    settings: CalibrationSettings,
    excluded_areas: Iterable[ExcludedArea] = (),
) -> list[CandidatePosition]:
    """Enumerate usable grid cells in placement order.

    Parameters
    ----------
    settings : CalibrationSettings
        Resolved settings.
    excluded_areas : Iterable[ExcludedArea]
        Bed rectangles where no site may be placed.

    Returns
    -------
    list[CandidatePosition]
        Column-major (column outer, row inner) list of surviving cells.
        May be empty when every cell is excluded.
    """
    areas = tuple(excluded_areas)
    grid = grid_size(settings)
    positions: list[CandidatePosition] = []

    for column in range(1, grid.columns + 1):
        for row in range(1, grid.rows + 1):
            x, y = cell_position(settings, column, row)
            if is_excluded(x, y, areas):
                logger.debug("Cell c%d r%d at (%.3f, %.3f) is excluded", column, row, x, y)
                continue
            positions.append(CandidatePosition(column=column, row=row, x=x, y=y))

    return positions
