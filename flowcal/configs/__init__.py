"""Calibration settings resolution and printer profile catalog."""

from flowcal.configs.loader import (
    ConfigError,
    ExcludedArea,
    PrinterProfile,
    apply_profile,
    get_profile,
    load_catalog,
)
from flowcal.configs.settings import (
    CalibrationSettings,
    SweepMode,
    merge_raw,
    resolve_settings,
)

__all__ = [
    "CalibrationSettings",
    "ConfigError",
    "ExcludedArea",
    "PrinterProfile",
    "SweepMode",
    "apply_profile",
    "get_profile",
    "load_catalog",
    "merge_raw",
    "resolve_settings",
]
