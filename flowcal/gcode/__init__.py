"""
G-code generation module.

Lays the calibration sweep out over one or more plates and emits one
program per plate.
"""

from flowcal.gcode.generator import Plate, PlateGenerator, archive_name, generate

__all__ = ["Plate", "PlateGenerator", "archive_name", "generate"]
