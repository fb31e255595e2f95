"""SVG scene renderer for calibration programs.

Two replays of the same program through :func:`flowcal.preview.vm.replay`:

1. :class:`ExtentSink` finds the bounding box of every visited XY point
   (the origin included).  A program without motion falls back to the
   nominal bed rectangle.
2. :class:`DrawSink` turns each move into a travel line, an extrusion line
   or a blob circle, and places status-message labels.

Scene layering, bottom to top: bed and grid, travel, extrusion, blobs,
labels.

Coordinate transform::

    svg_x = x + (margin - min_x)
    svg_y = margin + (max_y - y)      # machine +Y renders upward

Usage::

    from flowcal.preview.svg import PreviewOptions, render
    svg_text = render(plate.program, PreviewOptions(bed_width=256, bed_length=256))
"""

from __future__ import annotations

import html
import logging
import math
import re
from dataclasses import dataclass
from typing import List, Optional

from flowcal.configs.settings import CalibrationSettings
from flowcal.preview.vm import MachineState, Move, ReplaySink, replay
from flowcal.utils.numbers import format_number

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"
BED_FILL = "#3f3f46"
GRID_STROKE = "#4b4b53"
GRID_STROKE_WIDTH = 0.3
LABEL_FILL = "#FFF"

# Move thresholds (mm)
XY_EPSILON = 1e-6
EXTENT_EPSILON = 1e-9
E_EPSILON = 1e-6

_FLOW_RE = re.compile(r'([0-9]+(?:\.[0-9]+)?)\s*mm3/s', re.IGNORECASE)
_FEED_RE = re.compile(r'F\s*([0-9]+(?:\.[0-9]+)?)\s*mm/min', re.IGNORECASE)


@dataclass(frozen=True)
class PreviewOptions:
    """View options for :func:`render`.

    Blob detection: a move is a blob when its extrusion delta is at least
    ``blob_min_e`` and its XY displacement at most ``blob_max_xy`` (both
    bounds inclusive).
    """

    bed_width: float = 220.0
    bed_length: float = 220.0
    margin: float = 5.0
    grid_step: float = 20.0
    filament_diameter: float = 1.75
    blob_min_e: float = 20.0
    blob_max_xy: float = 0.1
    blob_scale: float = 0.06
    stroke_travel: str = "#F00"
    stroke_extrude: str = "#0b79d0"
    stroke_blob: str = "#cc3300"
    stroke_width_travel: float = 0.6
    stroke_width_extrude: float = 2.0
    stroke_width_blob: float = 3.0
    font_family: str = "Arial, sans-serif"
    font_size: float = 4.0

    @property
    def filament_area(self) -> float:
        return math.pi * (self.filament_diameter / 2.0) ** 2


def preview_options_for(settings: CalibrationSettings, **overrides) -> PreviewOptions:
    """Options matching the bed and filament of resolved *settings*.

    The single preview margin is the larger of the two axis margins.
    """
    mx, my = settings.margins
    values = dict(
        bed_width=settings.bed_width,
        bed_length=settings.bed_length,
        margin=max(mx, my),
        filament_diameter=settings.filament_diameter,
    )
    values.update(overrides)
    return PreviewOptions(**values)


def flow_label(message: str) -> Optional[str]:
    """Label for a status message, e.g. ``"F 8 - FR 9.98"``, or None."""
    parts = []
    flow = _FLOW_RE.search(message)
    if flow:
        parts.append(f"F {flow.group(1)}")
    feed = _FEED_RE.search(message)
    if feed:
        parts.append(f"FR {feed.group(1)}")
    return " - ".join(parts) or None


def _n(value: float) -> str:
    return format_number(value)


# ============================================================================
# SINKS
# ============================================================================

class ExtentSink(ReplaySink):
    """Bounding box of every XY point the program visits.

    The starting origin is always part of the box, but only counts as a
    visit once the program moves or sets a position.
    """

    def __init__(self) -> None:
        self.min_x = self.min_y = 0.0
        self.max_x = self.max_y = 0.0
        self.visited = 0

    def _mark(self, x: float, y: float) -> None:
        if not (math.isfinite(x) and math.isfinite(y)):
            return
        self.min_x = min(self.min_x, x)
        self.min_y = min(self.min_y, y)
        self.max_x = max(self.max_x, x)
        self.max_y = max(self.max_y, y)
        self.visited += 1

    def position_set(self, state: MachineState) -> None:
        self._mark(state.x, state.y)

    def motion(self, state: MachineState, move: Move) -> None:
        if move.xy_distance > EXTENT_EPSILON:
            self._mark(move.x0, move.y0)
            self._mark(move.x1, move.y1)

    @property
    def empty(self) -> bool:
        """True when nothing but the starting origin was seen."""
        return self.visited == 0


class DrawSink(ReplaySink):
    """Collects scene elements per layer for one render."""

    def __init__(self, options: PreviewOptions, min_x: float, max_y: float) -> None:
        self.options = options
        self._offset_x = options.margin - min_x
        self._max_y = max_y
        self.travel: List[str] = []
        self.extrude: List[str] = []
        self.blobs: List[str] = []
        self.labels: List[str] = []
        self._pending_label: Optional[str] = None

    def to_svg(self, x: float, y: float) -> tuple[float, float]:
        return x + self._offset_x, self.options.margin + (self._max_y - y)

    def status(self, message: str) -> None:
        label = flow_label(message)
        if label:
            self._pending_label = label

    def motion(self, state: MachineState, move: Move) -> None:
        opts = self.options
        xy = move.xy_distance

        if xy > XY_EPSILON:
            self._line(move, extruding=move.de > E_EPSILON)
            if self._pending_label:
                self._label(move.x1, move.y1, self._pending_label)
                self._pending_label = None

        if move.de >= opts.blob_min_e and xy <= opts.blob_max_xy:
            self._blob(move.x0, move.y0, move.de)

    def _line(self, move: Move, extruding: bool) -> None:
        opts = self.options
        sx0, sy0 = self.to_svg(move.x0, move.y0)
        sx1, sy1 = self.to_svg(move.x1, move.y1)
        stroke = opts.stroke_extrude if extruding else opts.stroke_travel
        width = opts.stroke_width_extrude if extruding else opts.stroke_width_travel
        element = (
            f'<line stroke-dasharray="2 1" x1="{_n(sx0)}" y1="{_n(sy0)}" '
            f'x2="{_n(sx1)}" y2="{_n(sy1)}" stroke="{stroke}" '
            f'stroke-width="{_n(width)}" stroke-linecap="round"/>'
        )
        (self.extrude if extruding else self.travel).append(element)

    def _blob(self, x: float, y: float, de: float) -> None:
        opts = self.options
        volume = opts.filament_area * de
        if not math.isfinite(volume):
            volume = 0.0
        radius = math.sqrt(max(volume, 0.0)) * opts.blob_scale
        if not math.isfinite(radius):
            radius = 0.0
        cx, cy = self.to_svg(x, y)
        self.blobs.append(
            f'<circle cx="{_n(cx)}" cy="{_n(cy)}" r="{radius:.3f}" fill="none" '
            f'stroke="{opts.stroke_blob}" stroke-width="{_n(opts.stroke_width_blob)}"/>'
        )

    def _label(self, x: float, y: float, text: str) -> None:
        opts = self.options
        sx, sy = self.to_svg(x, y)
        self.labels.append(
            f'<text x="{_n(sx + 2)}" y="{_n(sy + 10)}" '
            f'font-family="{html.escape(opts.font_family)}" font-size="{_n(opts.font_size)}" '
            f'fill="{LABEL_FILL}">{html.escape(text)}</text>'
        )


# ============================================================================
# RENDER
# ============================================================================

def _bed_elements(options: PreviewOptions) -> List[str]:
    m = options.margin
    w, h = options.bed_width, options.bed_length
    elements = [
        f'<rect x="{_n(m)}" y="{_n(m)}" width="{_n(w)}" height="{_n(h)}" fill="{BED_FILL}"/>',
        # Front tab marks the bed's front edge
        f'<rect x="{_n(m)}" y="{_n(m + h)}" width="{_n(w / 2)}" height="{_n(h / 25)}" '
        f'fill="{BED_FILL}"/>',
    ]

    step = options.grid_step
    if step > 0 and math.isfinite(step):
        columns = (w + 0.001) / step
        rows = (h + 0.001) / step
    else:
        columns = rows = math.nan
    # A non-finite bed or step draws no grid
    if math.isfinite(columns) and math.isfinite(rows):
        grid = f'stroke="{GRID_STROKE}" stroke-width="{_n(GRID_STROKE_WIDTH)}"'
        for i in range(int(math.floor(columns)) + 1):
            x = m + i * step
            elements.append(
                f'<line x1="{_n(x)}" y1="{_n(m)}" x2="{_n(x)}" y2="{_n(m + h)}" {grid}/>'
            )
        for i in range(int(math.floor(rows)) + 1):
            y = m + i * step
            elements.append(
                f'<line x1="{_n(m)}" y1="{_n(y)}" x2="{_n(m + w)}" y2="{_n(y)}" {grid}/>'
            )
    return elements


def render(program_text: str, options: Optional[PreviewOptions] = None) -> str:
    """Render *program_text* as a self-contained SVG document.

    Parameters
    ----------
    program_text : str
        Line-oriented G-code; malformed content never raises.
    options : PreviewOptions, optional
        View options; defaults when omitted.

    Returns
    -------
    str
        SVG markup whose viewBox covers the larger of the bed and the path
        extents, plus ``options.margin`` on every side.
    """
    opts = options or PreviewOptions()

    extent = ExtentSink()
    replay(program_text, extent)
    if extent.empty:
        min_x, min_y, max_x, max_y = 0.0, 0.0, opts.bed_width, opts.bed_length
    else:
        min_x, min_y, max_x, max_y = extent.min_x, extent.min_y, extent.max_x, extent.max_y

    width = max(opts.bed_width, max_x - min_x) + 2 * opts.margin
    height = max(opts.bed_length, max_y - min_y) + 2 * opts.margin

    draw = DrawSink(opts, min_x, max_y)
    replay(program_text, draw)
    logger.debug(
        "Scene %sx%s: %d travel, %d extrusion, %d blob(s), %d label(s)",
        _n(width), _n(height), len(draw.travel), len(draw.extrude),
        len(draw.blobs), len(draw.labels),
    )

    elements = _bed_elements(opts)
    elements += draw.travel
    elements += draw.extrude
    elements += draw.blobs
    elements += draw.labels

    return (
        f'<svg xmlns="{SVG_NS}" width="600px" viewBox="0 0 {_n(width)} {_n(height)}">\n'
        + "\n".join(elements)
        + "\n</svg>"
    )
