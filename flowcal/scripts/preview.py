#!/usr/bin/env python3
"""
Preview a G-code Program.

Render any G-code file as an SVG plate preview: travel moves, extrusion
moves, blobs and flow labels over the bed grid.

Usage:
    flowcal-preview plate-1.gcode
    flowcal-preview plate-1.gcode -o plate-1.svg --bed-width 256 --bed-length 256
"""

from __future__ import annotations

import argparse
import logging
import math
import sys
from pathlib import Path
from typing import List, Optional

from flowcal.preview.svg import PreviewOptions, render
from flowcal.utils import fs
from flowcal.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

_DEFAULTS = PreviewOptions()


def _finite_float(text: str) -> float:
    """argparse type for a finite number."""
    try:
        value = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got {text!r}")
    if not math.isfinite(value):
        raise argparse.ArgumentTypeError(f"expected a finite number, got {text!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowcal-preview",
        description="Render a G-code program as an SVG preview",
    )
    parser.add_argument("gcode", type=str, help="Input G-code file")
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output SVG path (default: input path with .svg suffix)",
    )
    parser.add_argument("--bed-width", type=_finite_float, default=_DEFAULTS.bed_width, help="Bed width (mm)")
    parser.add_argument("--bed-length", type=_finite_float, default=_DEFAULTS.bed_length, help="Bed length (mm)")
    parser.add_argument("--margin", type=_finite_float, default=_DEFAULTS.margin, help="Border around the scene (mm)")
    parser.add_argument("--grid-step", type=_finite_float, default=_DEFAULTS.grid_step, help="Grid spacing (mm), 0 to hide")
    parser.add_argument(
        "--filament-diameter",
        type=_finite_float,
        default=_DEFAULTS.filament_diameter,
        help="Filament diameter used for blob sizing (mm)",
    )
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--log-file", type=str, help="Also log to this file")
    parser.add_argument("--log-json", action="store_true", help="Write the log file as JSON lines")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        setup_logging(
            args.log_level,
            args.log_file,
            json_file=args.log_json,
            context={"app": "preview"},
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    src = Path(args.gcode)
    if not src.exists():
        logger.error("G-code file not found: %s", src)
        return 1

    program = src.read_text(encoding="utf-8", errors="replace")
    options = PreviewOptions(
        bed_width=args.bed_width,
        bed_length=args.bed_length,
        margin=args.margin,
        grid_step=args.grid_step,
        filament_diameter=args.filament_diameter,
    )

    dst = Path(args.output) if args.output else src.with_suffix(".svg")
    try:
        fs.atomic_write_text(dst, render(program, options))
    except RuntimeError as e:
        logger.error("Write failed: %s", e)
        return 1

    logger.info("Preview written to %s", dst)
    return 0


if __name__ == "__main__":
    sys.exit(main())
