"""
Flow Calibration Package.

Generates flow/temperature calibration programs for fused-filament printers
and renders schematic previews of any such program.

Subpackages:
    configs: Calibration settings resolution and printer profile catalog
    calibration: Plate grid layout and flow/temperature sweep sequencing
    gcode: Per-plate program generation
    preview: Program interpreter and SVG scene renderer
    utils: File output, number handling, logging setup
    scripts: Command-line entry points
"""

__all__ = ["configs", "calibration", "gcode", "preview", "utils", "scripts"]
