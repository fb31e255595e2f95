"""Calibration settings -- one lenient resolution step, then a typed record.

Raw settings arrive as an untyped key/value mapping (form fields, CLI
``key=value`` pairs, a YAML file).  Different producers use different names
for the same value, and any value may be empty or non-numeric.

Resolution happens exactly once, in :class:`CalibrationSettings`'s
``before`` validator, driven by two explicit tables:

``SETTING_KEYS``
    For each field, the accepted input keys in precedence order.  The first
    key holding a usable value wins.

``CalibrationSettings`` field defaults
    Applied when no key holds a usable value.

Resolution never raises: a missing, empty, non-numeric or non-finite value
falls through to the next key and finally to the default.

Usage::

    from flowcal.configs.settings import resolve_settings
    s = resolve_settings({"startFlow": "8", "offset": 2, "steps": 20})
    s.flow_offset   # 2.0
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator

from flowcal.utils.numbers import parse_number

logger = logging.getLogger(__name__)


class SweepMode(str, Enum):
    """How flow values advance across the sweep.

    ``auto`` picks ``fill`` when the per-column temperature offset is zero
    and ``matrix`` otherwise.
    """

    AUTO = "auto"
    FILL = "fill"
    MATRIX = "matrix"


# ---------------------------------------------------------------------------
# Precedence table: field -> accepted input keys, highest priority first
# ---------------------------------------------------------------------------

SETTING_KEYS: dict[str, tuple[str, ...]] = {
    "bed_width": ("bed_width", "bedWidth"),
    "bed_length": ("bed_length", "bedLength"),
    "bed_margin": ("bed_margin", "bedMargin"),
    "bed_margin_x": ("bed_margin_x", "bedMarginX"),
    "bed_margin_y": ("bed_margin_y", "bedMarginY"),
    "filament_diameter": ("filament_diameter", "filamentDiameter"),
    "movement_speed": ("movement_speed", "movementSpeed", "travelSpeed"),
    "stabilization_time": ("stabilization_time", "stabilizationTime"),
    "bed_temp": ("bed_temp", "bedTemp", "bedTemperature"),
    "start_temp": ("start_temp", "startTemp", "startTemperature"),
    "temp_offset": ("temp_offset", "tempOffset", "temperatureSpacing"),
    "temp_steps": ("temp_steps", "tempSteps"),
    "fan_speed": ("fan_speed", "fanSpeed"),
    "prime_length": ("prime_length", "primeLength"),
    "prime_amount": ("prime_amount", "primeAmount"),
    "prime_speed": ("prime_speed", "primeSpeed"),
    "wipe_length": ("wipe_length", "wipeLength"),
    "retraction_distance": ("retraction_distance", "retractionDistance"),
    "retraction_speed": ("retraction_speed", "retractionSpeed"),
    "blob_height": ("blob_height", "blobHeight"),
    "extrusion_amount": ("extrusion_amount", "extrusionAmount"),
    "x_spacing": ("x_spacing", "xSpacing"),
    "y_spacing": ("y_spacing", "ySpacing"),
    "direction": ("direction",),
    "start_flow": ("start_flow", "startFlow"),
    # The form's short names win over the generator's long names
    "flow_offset": ("offset", "flow_offset", "flowOffset"),
    "flow_steps": ("steps", "flow_steps", "flowSteps"),
    "end_flow": ("end_flow", "endFlow"),
    "sweep_mode": ("sweep_mode", "sweepMode"),
}

_INT_FIELDS = frozenset({"temp_steps", "direction", "flow_steps"})
_SWEEP_MODES = frozenset(mode.value for mode in SweepMode)

DEFAULT_FLOW_OFFSET = 2.0


def _lookup(raw: Mapping[str, Any], field: str) -> Any:
    """Return the first usable raw value for *field*, or ``None``."""
    for key in SETTING_KEYS[field]:
        if key not in raw:
            continue
        value = raw[key]
        if field == "sweep_mode":
            if isinstance(value, SweepMode):
                return value
            text = str(value).strip().lower() if value is not None else ""
            if text in _SWEEP_MODES:
                return SweepMode(text)
            continue
        number = parse_number(value)
        if number is None:
            continue
        if field in _INT_FIELDS:
            return int(number)
        return number
    return None


class CalibrationSettings(BaseModel):
    """Fully-typed, fully-defaulted calibration parameters.

    Units: lengths in mm, speeds in mm/s, times in s, temperatures in °C,
    fan in percent, flow in mm³/s.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    # -- bed geometry --------------------------------------------------------
    bed_width: float = Field(180.0, description="Bed width (mm)")
    bed_length: float = Field(180.0, description="Bed length (mm)")
    bed_margin: float = Field(20.0, description="Legacy symmetric margin (mm)")
    bed_margin_x: float | None = Field(None, description="X margin override (mm)")
    bed_margin_y: float | None = Field(None, description="Y margin override (mm)")

    # -- filament / motion ---------------------------------------------------
    filament_diameter: float = Field(1.75, description="Filament diameter (mm)")
    movement_speed: float = Field(60.0, description="Travel speed (mm/s)")
    stabilization_time: float = Field(3.0, description="Dwell before each test (s)")

    # -- thermal / fan -------------------------------------------------------
    bed_temp: float = Field(60.0, description="Bed temperature (°C)")
    start_temp: float = Field(200.0, description="First column nozzle temperature (°C)")
    temp_offset: float = Field(0.0, description="Temperature change per column (°C)")
    temp_steps: int = Field(1, ge=1, description="Number of temperature columns")
    fan_speed: float = Field(0.0, description="Part fan (%)")

    # -- prime / wipe / retract ----------------------------------------------
    prime_length: float = Field(10.0, description="Prime line length along X (mm)")
    prime_amount: float = Field(3.0, description="Filament pushed while priming (mm)")
    prime_speed: float = Field(5.0, description="Prime speed (mm/s)")
    wipe_length: float = Field(10.0, description="Wipe move length along X (mm)")
    retraction_distance: float = Field(1.0, description="Retraction (mm)")
    retraction_speed: float = Field(30.0, description="Retraction speed (mm/s)")

    # -- blob ----------------------------------------------------------------
    blob_height: float = Field(5.0, description="Vertical travel while extruding (mm)")
    extrusion_amount: float = Field(50.0, description="Filament per blob (mm)")

    # -- layout --------------------------------------------------------------
    x_spacing: float = Field(25.0, description="Gap between columns (mm)")
    y_spacing: float = Field(25.0, description="Row pitch (mm)")
    direction: int = Field(0, description="0 = rows from back margin, 1 = mirrored")

    # -- flow sweep ----------------------------------------------------------
    start_flow: float = Field(2.0, description="First flow value (mm³/s)")
    flow_offset: float = Field(DEFAULT_FLOW_OFFSET, description="Flow step (mm³/s)")
    flow_steps: int = Field(20, ge=0, description="Flow values per column")
    end_flow: float | None = Field(None, description="Explicit last flow (mm³/s)")
    sweep_mode: SweepMode = Field(SweepMode.AUTO, description="Flow sequencing policy")

    @model_validator(mode="before")
    @classmethod
    def _resolve_raw(cls, data: Any) -> Any:
        if isinstance(data, CalibrationSettings):
            return data.model_dump()
        if not isinstance(data, Mapping):
            logger.warning(
                "Settings input of type %s ignored, using defaults",
                type(data).__name__,
            )
            return {}

        resolved: dict[str, Any] = {}
        for field in SETTING_KEYS:
            value = _lookup(data, field)
            if value is not None:
                resolved[field] = value

        if "temp_steps" in resolved:
            resolved["temp_steps"] = max(1, resolved["temp_steps"])
        if "flow_steps" in resolved:
            resolved["flow_steps"] = max(0, resolved["flow_steps"])

        # Derive the flow step from an explicit end flow when it is missing
        if "flow_offset" not in resolved and "end_flow" in resolved:
            steps = resolved.get("flow_steps", cls.model_fields["flow_steps"].default)
            start = resolved.get("start_flow", cls.model_fields["start_flow"].default)
            offset = (resolved["end_flow"] - start) / (steps - 1) if steps > 1 else 0.0
            if math.isfinite(offset):
                resolved["flow_offset"] = offset
        return resolved

    # -- derived values ------------------------------------------------------

    @property
    def margins(self) -> tuple[float, float]:
        """Effective ``(x, y)`` margins: per-axis, else legacy, else zero."""
        legacy = self.bed_margin if math.isfinite(self.bed_margin) else 0.0
        mx = self.bed_margin_x if self.bed_margin_x is not None else legacy
        my = self.bed_margin_y if self.bed_margin_y is not None else legacy
        return mx, my

    @property
    def total_steps(self) -> int:
        """Number of sites in the whole sweep."""
        return self.flow_steps * self.temp_steps

    @property
    def fill_mode(self) -> bool:
        """True when flow ramps continuously over the whole sweep."""
        if self.sweep_mode is SweepMode.AUTO:
            return self.temp_offset == 0
        return self.sweep_mode is SweepMode.FILL

    @property
    def filament_area(self) -> float:
        """Filament cross-section (mm²)."""
        return math.pi * (self.filament_diameter / 2.0) ** 2


def resolve_settings(raw: Mapping[str, Any] | CalibrationSettings | None = None) -> CalibrationSettings:
    """Resolve a raw mapping (or pass through a resolved record).

    Parameters
    ----------
    raw : Mapping | CalibrationSettings | None
        Untyped key/value pairs.  ``None`` yields all defaults.

    Returns
    -------
    CalibrationSettings
        Frozen, fully-defaulted settings.
    """
    if isinstance(raw, CalibrationSettings):
        return raw
    return CalibrationSettings.model_validate(raw or {})


def merge_raw(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Return *base* updated with *overrides*, alias-aware.

    An override replaces every alias of the same field in *base*, so it wins
    regardless of where its key sits in the precedence table.  Unknown keys
    are copied through unchanged.  Neither input is modified.
    """
    merged = dict(base)
    for key, value in overrides.items():
        for aliases in SETTING_KEYS.values():
            if key in aliases:
                for alias in aliases:
                    merged.pop(alias, None)
                break
        merged[key] = value
    return merged
