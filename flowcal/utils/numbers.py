"""Lenient number parsing and decimal-point-safe formatting.

Both the settings resolver and the program interpreter accept loosely typed
input (form strings, hand-written programs).  Neither may fail on it, and
nothing they produce may carry ``NaN`` or ``inf`` into generated text.

Parsing follows the common "leading numeric prefix" rule: ``"12.5mm"``
parses as ``12.5``, ``"abc"`` does not parse at all.

Usage:
    from flowcal.utils.numbers import parse_number, format_number

    parse_number(" 8 ")          # -> 8.0
    parse_number("x", 2.0)       # -> 2.0
    format_number(0.1 + 0.2)     # -> "0.3"
"""

from __future__ import annotations

import math
import re
from typing import Any

# Optional sign, digits.digits OR .digits OR digits, optional exponent
_NUMBER_RE = re.compile(r'\s*([-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)')


def parse_number(raw: Any, default: float | None = None) -> float | None:
    """Parse *raw* into a finite float, or return *default*.

    Parameters
    ----------
    raw : Any
        Number, numeric string, or anything else.
    default : float | None
        Returned when *raw* is missing, empty, non-numeric or non-finite.

    Returns
    -------
    float | None
        Parsed finite value, else *default*.
    """
    if raw is None or isinstance(raw, bool):
        return default
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else default
    if not isinstance(raw, str):
        return default
    match = _NUMBER_RE.match(raw)
    if match is None:
        return default
    try:
        value = float(match.group(1))
    except ValueError:
        return default
    return value if math.isfinite(value) else default


def format_number(value: float, digits: int = 4) -> str:
    """Format *value* for program text: rounded, no trailing zeros, ``.`` decimal.

    Integral values print without a fractional part (``8.0`` -> ``"8"``).
    Non-finite input prints as ``"0"``.
    """
    if not math.isfinite(value):
        return "0"
    rounded = round(value, digits)
    if rounded == 0:
        return "0"
    if rounded == int(rounded):
        return str(int(rounded))
    text = f"{rounded:.{digits}f}".rstrip("0").rstrip(".")
    return text.replace(",", ".")


__all__ = ["parse_number", "format_number"]
