"""Calibration program generator -- settings + printer profile to plates.

Each plate is a self-contained program: header with the resolved settings,
heat-up boilerplate, one block per test site, park-and-cool footer.

Sites are taken from the candidate list (see
:mod:`flowcal.calibration.layout`) in order; sweep point ``k`` lands on
plate ``k // sites_per_plate`` at slot ``k % sites_per_plate``.

Feed rate convention:
    Settings store speeds in **mm/s**.  This module converts to the
    G-code ``F`` parameter (mm/min) at the generation boundary::

        F_value = speed_mm_s * 60

    The blob extrusion feed is already in mm/min
    (:func:`flowcal.calibration.sweep.feed_rate`).

Heights:
    Priming happens at Z0.3, the wipe lifts to Z0.5, the blob is extruded
    while rising ``blob_height`` from there, and travel happens 5 mm above
    the top of the blob.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from io import StringIO
from typing import Any, Mapping, Sequence

from flowcal.calibration.layout import CandidatePosition, candidate_positions, grid_size
from flowcal.calibration.sweep import SweepPoint, feed_rate, sweep_point
from flowcal.configs.loader import PrinterProfile, get_profile
from flowcal.configs.settings import CalibrationSettings, resolve_settings
from flowcal.utils.fs import slugify
from flowcal.utils.numbers import format_number

logger = logging.getLogger(__name__)

PRIME_Z = 0.3
WIPE_Z = 0.5
TRAVEL_CLEARANCE = 5.0

NO_SITES_COMMENT = "; No available placement slots on this printer - check excludedAreas"


# ---------------------------------------------------------------------------
# Output type
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Plate:
    """One build plate: 1-based index, program text, sites placed."""

    index: int
    program: str
    steps: int

    def filename(self, model: str) -> str:
        """Download name, e.g. ``flow-test-A1-Mini-plate-1.gcode``."""
        return f"flow-test-{slugify(model)}-plate-{self.index}.gcode"


def archive_name(model: str) -> str:
    """Name of the zip bundling every plate for *model*."""
    return f"flow-test-{slugify(model)}.zip"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _n(value: float) -> str:
    """Program-safe number: rounded, no trailing zeros, ``.`` decimal."""
    return format_number(value)


def _f(speed_mm_s: float) -> str:
    """Convert mm/s to the ``F`` parameter (mm/min)."""
    return f"F{_n(speed_mm_s * 60)}"


def _echo_value(value: Any) -> str:
    if value is None:
        return "unset"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return _n(value)
    return str(getattr(value, "value", value))


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class PlateGenerator:
    """Lay out the sweep over plates and emit one program per plate.

    Parameters
    ----------
    settings : CalibrationSettings
        Resolved calibration settings.
    profile : PrinterProfile
        Target printer; only its model name and excluded areas are used.
        Bed size and margins come from *settings* (see
        :func:`flowcal.configs.loader.apply_profile`).
    """

    def __init__(self, settings: CalibrationSettings, profile: PrinterProfile) -> None:
        self._s = settings
        self._profile = profile
        self._candidates: list[CandidatePosition] = candidate_positions(
            settings, profile.excluded_areas
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def candidates(self) -> list[CandidatePosition]:
        return list(self._candidates)

    @property
    def sites_per_plate(self) -> int:
        return len(self._candidates)

    @property
    def plate_count(self) -> int:
        if self.sites_per_plate == 0:
            return 1
        return max(1, math.ceil(self._s.total_steps / self.sites_per_plate))

    def generate(self) -> list[Plate]:
        """Generate every plate in order.

        Returns
        -------
        list[Plate]
            At least one plate.  When no grid cell survives exclusion the
            single plate carries only the preamble, an explanatory comment
            and zero steps.
        """
        grid = grid_size(self._s)
        logger.info(
            "Grid %dx%d, %d sites per plate, %d sweep points, %d plate(s) for %s",
            grid.columns,
            grid.rows,
            self.sites_per_plate,
            self._s.total_steps,
            self.plate_count,
            self._profile.model,
        )

        if self.sites_per_plate == 0:
            logger.warning(
                "No placement slots left on %s after excluded areas", self._profile.model
            )
            buf = StringIO()
            self._write_header(buf, 0)
            buf.write("\n")
            buf.write(NO_SITES_COMMENT + "\n")
            return [Plate(index=1, program=buf.getvalue(), steps=0)]

        return [self._generate_plate(i) for i in range(self.plate_count)]

    # ------------------------------------------------------------------
    # Internal: one plate
    # ------------------------------------------------------------------

    def _generate_plate(self, plate_index: int) -> Plate:
        buf = StringIO()
        self._write_header(buf, plate_index)

        steps = 0
        for local_index, pos in enumerate(self._candidates):
            global_index = plate_index * self.sites_per_plate + local_index
            if global_index >= self._s.total_steps:
                break
            point = sweep_point(self._s, global_index)
            # Heat up where a sweep column begins
            if point.row == 1:
                self._write_temperature_block(buf, point.temperature)
            self._write_site(buf, pos, point)
            steps += 1

        self._write_footer(buf)
        logger.debug("Plate %d: %d site(s)", plate_index + 1, steps)
        return Plate(index=plate_index + 1, program=buf.getvalue(), steps=steps)

    # ------------------------------------------------------------------
    # Header / footer
    # ------------------------------------------------------------------

    def _write_header(self, buf: StringIO, plate_index: int) -> None:
        s = self._s
        buf.write("; *** Flow calibration pattern generated by flowcal\n")
        buf.write(f"; Profile: {self._profile.model}\n")
        buf.write(f"; Plate {plate_index + 1} of {self.plate_count}\n")
        buf.write(";####### Settings\n")

        echo = s.model_dump()
        echo["bed_margin_x"], echo["bed_margin_y"] = s.margins
        for name, value in echo.items():
            buf.write(f"; {name} = {_echo_value(value)}\n")
        buf.write("\n")

        buf.write(f"M104 S{_n(s.start_temp)} ; Set Nozzle Temperature\n")
        buf.write(f"M140 S{_n(s.bed_temp)} ; Set Bed Temperature\n")
        buf.write("G90\n")
        buf.write("G28 ; Home all axes\n")
        buf.write("G0 Z10 ; Lift nozzle\n")
        buf.write("G21 ; Units in mm\n")
        buf.write("G92 E0 ; Reset extruder\n")
        buf.write("M83 ; Relative extrusion\n")
        buf.write(f"M190 S{_n(s.bed_temp)} ; Wait for bed\n")
        buf.write(f"M106 S{_n(round(s.fan_speed * 255 / 100))} ; Fan\n")

    def _write_footer(self, buf: StringIO) -> None:
        s = self._s
        mx, my = s.margins
        buf.write("\n")
        buf.write(";####### End G-Code\n")
        buf.write(f"G0 X{_n(s.bed_width - abs(mx))} Y{_n(s.bed_length - abs(my))}\n")
        buf.write("M104 S0 T0\n")
        buf.write("M140 S0\n")
        buf.write("M84\n")

    # ------------------------------------------------------------------
    # Per-site blocks
    # ------------------------------------------------------------------

    def _write_temperature_block(self, buf: StringIO, temperature: float) -> None:
        t = _n(temperature)
        buf.write("\n")
        buf.write(f";####### {t}C\n")
        buf.write("G4 S0 ; Dwell\n")
        buf.write(f"M109 R{t}\n")

    def _write_site(self, buf: StringIO, pos: CandidatePosition, point: SweepPoint) -> None:
        s = self._s
        flow = _n(point.flow)
        feed = _n(feed_rate(s, point.flow))
        x, y = _n(pos.x), _n(pos.y)
        blob_top = WIPE_Z + s.blob_height
        safe_z = _n(blob_top + TRAVEL_CLEARANCE)
        travel = _f(s.movement_speed)
        retract = _f(s.retraction_speed)

        buf.write("\n")
        buf.write(f";####### {flow}mm3/s\n")
        buf.write(f"M117 {_n(point.temperature)}°C // {flow}mm3/s; F{feed}mm/min\n")
        buf.write(f"G0 X{x} Y{y} Z{safe_z} {travel}\n")
        buf.write(f"G4 S{_n(s.stabilization_time)} ; Stabilize\n")
        buf.write(f"G0 Z{_n(PRIME_Z)}\n")
        buf.write(
            f"G1 X{_n(pos.x + s.prime_length)} E{_n(s.prime_amount)} "
            f"{_f(s.prime_speed)} ; Prime\n"
        )
        buf.write(f"G1 E{_n(-s.retraction_distance)} {retract} ; Retract\n")
        buf.write(f"G0 X{_n(pos.x + s.prime_length + s.wipe_length)} {travel} ; Wipe\n")
        buf.write(f"G0 Z{_n(WIPE_Z)}\n")
        buf.write(f"G1 E{_n(s.retraction_distance)} {retract} ; De-Retract\n")
        buf.write(
            f"G1 Z{_n(blob_top)} E{_n(s.extrusion_amount)} F{feed} "
            f"; Extrude F{feed}mm/min\n"
        )
        buf.write(f"G1 E{_n(-s.retraction_distance)} {retract} ; Retract\n")
        buf.write(f"G0 Z{safe_z} ; Lift\n")
        buf.write(f"G0 X{x} Y{y} {travel}\n")
        buf.write("G92 E0\n")


# ---------------------------------------------------------------------------
# Functional entry point
# ---------------------------------------------------------------------------


def generate(
    printer_index: int,
    settings: Mapping[str, Any] | CalibrationSettings | None = None,
    profiles: Sequence[PrinterProfile] | None = None,
) -> list[Plate]:
    """Generate the calibration plates for one printer.

    Parameters
    ----------
    printer_index : int
        Index into the printer catalog.  An unreachable index selects an
        empty profile (no excluded areas, model ``undefined``).
    settings : Mapping | CalibrationSettings | None
        Raw or resolved settings; raw input is resolved leniently.
    profiles : Sequence[PrinterProfile] | None
        Catalog to select from; ``None`` uses the shipped catalog.

    Returns
    -------
    list[Plate]
        Plates in order, never empty.
    """
    resolved = resolve_settings(settings)
    profile = get_profile(printer_index, profiles)
    return PlateGenerator(resolved, profile).generate()
