"""Printer profile catalog loader.

Loads ``printers.yaml`` into typed, frozen dataclasses.  The catalog is the
only place where printer descriptions vary in shape; this module normalises
every variant so the layout code sees exactly one profile type.

Accepted build-volume shapes::

    buildVolume: {width, depth, height}
    build_volume_mm: {width, depth, height}
    buildVolume: {single_nozzle: {width, depth, height}, bedMargin: 5}

A missing width falls back to the depth and vice versa.

Usage::

    from flowcal.configs.loader import get_profile, load_catalog
    profiles = load_catalog()                      # shipped catalog
    profiles = load_catalog("/custom/printers.yaml")
    profile = get_profile(2)                       # "X1/P1"
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

from flowcal.configs.settings import merge_raw
from flowcal.utils.fs import load_yaml, slugify

logger = logging.getLogger(__name__)

DEFAULT_CATALOG = Path(__file__).parent / "printers.yaml"

# Spacing applied on profile selection when the profile gives no hint
DEFAULT_SPACING_MM = 20.0


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when the printer catalog is malformed."""

    pass


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExcludedArea:
    """Axis-aligned bed rectangle where no test site may be placed (mm)."""

    x: float
    y: float
    width: float
    depth: float

    def contains(self, px: float, py: float) -> bool:
        """True when ``(px, py)`` lies in the closed rectangle."""
        return (
            self.x <= px <= self.x + self.width
            and self.y <= py <= self.y + self.depth
        )


@dataclass(frozen=True)
class PrinterProfile:
    """Normalised printer description.

    ``margin_x``/``margin_y`` and the spacing hints are ``None`` when the
    catalog entry does not override them.
    """

    model: str
    width: float
    depth: float
    height: float
    margin_x: float | None = None
    margin_y: float | None = None
    x_spacing: float | None = None
    y_spacing: float | None = None
    excluded_areas: tuple[ExcludedArea, ...] = ()

    @classmethod
    def empty(cls) -> "PrinterProfile":
        """Placeholder for an unreachable catalog index."""
        return cls(model="undefined", width=0.0, depth=0.0, height=0.0)

    @property
    def slug(self) -> str:
        """Model name reduced to ``[A-Za-z0-9_-]`` for file names."""
        return slugify(self.model)


# ---------------------------------------------------------------------------
# Internal parsing helpers
# ---------------------------------------------------------------------------


def _optional_float(data: Mapping[str, Any], key: str) -> float | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    return float(value)


def _parse_volume(model: str, data: Mapping[str, Any]) -> tuple[Mapping[str, Any], Mapping[str, Any]]:
    """Return ``(outer, effective)`` build-volume mappings."""
    outer = data.get("buildVolume", data.get("build_volume_mm"))
    if not isinstance(outer, Mapping):
        raise ConfigError(f"Printer '{model}' has no build volume")
    inner = outer.get("single_nozzle")
    return outer, inner if isinstance(inner, Mapping) else outer


def _parse_excluded_area(model: str, data: Any) -> ExcludedArea:
    if not isinstance(data, Mapping):
        raise ConfigError(f"Printer '{model}' excluded area must be a mapping, got {data!r}")
    try:
        return ExcludedArea(
            x=float(data["x"]),
            y=float(data["y"]),
            width=float(data["width"]),
            depth=float(data["depth"]),
        )
    except KeyError as exc:
        raise ConfigError(f"Printer '{model}' excluded area missing key {exc}") from exc


def _parse_profile(data: Any) -> PrinterProfile:
    """Parse one catalog entry into a :class:`PrinterProfile`."""
    if not isinstance(data, Mapping):
        raise ConfigError(f"Printer entry must be a mapping, got {data!r}")
    model = str(data.get("model") or "").strip()
    if not model:
        raise ConfigError(f"Printer entry without a model name: {dict(data)!r}")

    outer, volume = _parse_volume(model, data)
    width = _optional_float(volume, "width")
    depth = _optional_float(volume, "depth")
    if width is None and depth is None:
        raise ConfigError(f"Printer '{model}' build volume needs a width or depth")
    width = width if width is not None else depth
    depth = depth if depth is not None else width
    height = _optional_float(volume, "height") or 0.0

    margin_x = _optional_float(data, "bedMarginX")
    margin_y = _optional_float(data, "bedMarginY")
    # A symmetric margin wins over the per-axis ones, nearest to the profile first
    for source in (data, outer, volume):
        symmetric = _optional_float(source, "bedMargin")
        if symmetric is not None:
            margin_x = margin_y = symmetric
            break

    areas = tuple(
        _parse_excluded_area(model, area)
        for area in data.get("excludedAreas") or ()
    )

    return PrinterProfile(
        model=model,
        width=width,
        depth=depth,
        height=height,
        margin_x=margin_x,
        margin_y=margin_y,
        x_spacing=_optional_float(data, "xSpacing"),
        y_spacing=_optional_float(data, "ySpacing"),
        excluded_areas=areas,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_catalog(path: str | Path | None = None) -> tuple[PrinterProfile, ...]:
    """Load and normalise a printer catalog from YAML.

    Parameters
    ----------
    path : str | Path | None
        Catalog file.  ``None`` loads the catalog shipped with the package
        (cached after the first call).

    Returns
    -------
    tuple[PrinterProfile, ...]
        Profiles in file order.

    Raises
    ------
    ConfigError
        If the file is empty or any entry is malformed.
    FileNotFoundError
        If *path* does not exist.
    """
    if path is None:
        return _shipped_catalog()
    return _load_catalog_file(Path(path))


@functools.lru_cache(maxsize=1)
def _shipped_catalog() -> tuple[PrinterProfile, ...]:
    return _load_catalog_file(DEFAULT_CATALOG)


def _load_catalog_file(path: Path) -> tuple[PrinterProfile, ...]:
    logger.info("Loading printer catalog from %s", path)
    data = load_yaml(path)
    if not data:
        raise ConfigError(f"Empty printer catalog: {path}")

    entries = data.get("printers") if isinstance(data, Mapping) else data
    if not isinstance(entries, list):
        raise ConfigError(f"Printer catalog {path} must contain a 'printers' list")

    try:
        profiles = tuple(_parse_profile(entry) for entry in entries)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid printer catalog value in {path}: {exc}") from exc

    logger.info("Loaded %d printer profiles", len(profiles))
    return profiles


def get_profile(
    index: int,
    profiles: Sequence[PrinterProfile] | None = None,
) -> PrinterProfile:
    """Select a profile by index; unreachable indices yield an empty profile.

    Negative indices are unreachable, not counted from the end.
    """
    if profiles is None:
        profiles = load_catalog()
    if 0 <= index < len(profiles):
        return profiles[index]
    logger.debug("Printer index %s outside catalog of %d", index, len(profiles))
    return PrinterProfile.empty()


def apply_profile(raw: Mapping[str, Any], profile: PrinterProfile) -> dict[str, Any]:
    """Return a new raw settings mapping with *profile*'s values applied.

    Bed size comes from the build volume; margins only when the profile
    overrides them; spacing from the profile hints, else
    ``DEFAULT_SPACING_MM``.  *raw* is not modified.
    """
    overrides: dict[str, Any] = {
        "bed_width": profile.width,
        "bed_length": profile.depth,
        "x_spacing": profile.x_spacing if profile.x_spacing is not None else DEFAULT_SPACING_MM,
        "y_spacing": profile.y_spacing if profile.y_spacing is not None else DEFAULT_SPACING_MM,
    }
    if profile.margin_x is not None:
        overrides["bed_margin_x"] = profile.margin_x
    if profile.margin_y is not None:
        overrides["bed_margin_y"] = profile.margin_y
    return merge_raw(raw, overrides)
