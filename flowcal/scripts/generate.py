#!/usr/bin/env python3
"""
Generate Calibration Plates.

Resolve settings for a printer, lay the flow/temperature sweep out over as
many plates as needed and write one G-code file per plate.

Usage:
    flowcal-generate --list-printers
    flowcal-generate -p 0 --set startFlow=8 --set steps=20 -o out/
    flowcal-generate -p 2 --settings my_settings.yaml --zip --preview

Settings precedence (lowest first):
    built-in defaults < --settings file < printer profile < --set pairs
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from flowcal.configs.loader import ConfigError, PrinterProfile, apply_profile, get_profile, load_catalog
from flowcal.configs.settings import merge_raw, resolve_settings
from flowcal.gcode.generator import archive_name, generate
from flowcal.preview.svg import preview_options_for, render
from flowcal.utils import fs
from flowcal.utils.logging_config import push_context, setup_logging

logger = logging.getLogger(__name__)


def _assignment(text: str) -> tuple[str, str]:
    """argparse type for ``key=value``."""
    key, sep, value = text.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected key=value, got {text!r}")
    return key.strip(), value.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowcal-generate",
        description="Generate flow/temperature calibration G-code plates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--printer",
        "-p",
        type=int,
        default=0,
        help="Printer catalog index (default: 0)",
    )
    parser.add_argument(
        "--list-printers",
        action="store_true",
        help="List the printer catalog and exit",
    )
    parser.add_argument(
        "--catalog",
        type=str,
        help="Printer catalog YAML (default: shipped catalog)",
    )
    parser.add_argument(
        "--settings",
        type=str,
        help="YAML file with raw settings (key: value)",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        type=_assignment,
        default=[],
        metavar="KEY=VALUE",
        help="Raw setting override, repeatable (e.g. --set startFlow=8)",
    )
    parser.add_argument(
        "--output-dir",
        "-o",
        type=str,
        default=".",
        help="Directory for the generated files (default: current directory)",
    )
    parser.add_argument(
        "--zip",
        action="store_true",
        help="Also bundle all plates into one zip archive",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Also render an SVG preview next to each plate",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--log-file", type=str, help="Also log to this file")
    parser.add_argument("--log-json", action="store_true", help="Write the log file as JSON lines")
    return parser


def _load_settings_file(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    data = fs.load_yaml(path)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    return data


def _list_printers(profiles: Sequence[PrinterProfile]) -> None:
    for index, profile in enumerate(profiles):
        areas = len(profile.excluded_areas)
        suffix = f", {areas} excluded area(s)" if areas else ""
        print(
            f"{index:3d}  {profile.model:<12s} "
            f"{profile.width:g} x {profile.depth:g} x {profile.height:g} mm{suffix}"
        )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        setup_logging(
            args.log_level,
            args.log_file,
            json_file=args.log_json,
            context={"app": "generate"},
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        profiles = load_catalog(args.catalog)
        if args.list_printers:
            _list_printers(profiles)
            return 0

        raw = _load_settings_file(args.settings)
    except (ConfigError, FileNotFoundError, yaml.YAMLError) as e:
        logger.error("Configuration error: %s", e)
        return 1

    profile = get_profile(args.printer, profiles)
    push_context(printer=profile.model)
    if 0 <= args.printer < len(profiles):
        raw = apply_profile(raw, profile)
    else:
        logger.warning("Printer index %d not in catalog, using settings as given", args.printer)
    raw = merge_raw(raw, dict(args.overrides))

    settings = resolve_settings(raw)
    plates = generate(args.printer, settings, profiles)

    out_dir = fs.ensure_dir(args.output_dir)
    try:
        for plate in plates:
            path = out_dir / plate.filename(profile.model)
            fs.atomic_write_text(path, plate.program)
            logger.info("Plate %d: %d site(s) -> %s", plate.index, plate.steps, path)
            if args.preview:
                svg_path = path.with_suffix(".svg")
                fs.atomic_write_text(svg_path, render(plate.program, preview_options_for(settings)))
                logger.info("Preview -> %s", svg_path)

        if args.zip:
            entries = [(p.filename(profile.model), p.program.encode("utf-8")) for p in plates]
            archive = fs.bundle_archive(entries, out_dir / archive_name(profile.model))
            logger.info("Archive -> %s", archive)
    except RuntimeError as e:
        logger.error("Write failed: %s", e)
        return 1

    total = sum(p.steps for p in plates)
    print(f"{len(plates)} plate(s), {total} of {settings.total_steps} test(s) placed in {Path(out_dir)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
