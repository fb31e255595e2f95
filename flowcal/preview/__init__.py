"""
Program preview module.

Replays G-code through a small interpreter and renders the plate layout,
toolpath and blobs as SVG.
"""

from flowcal.preview.svg import PreviewOptions, preview_options_for, render
from flowcal.preview.vm import MachineState, Move, ReplaySink, replay

__all__ = [
    "MachineState",
    "Move",
    "PreviewOptions",
    "ReplaySink",
    "preview_options_for",
    "render",
    "replay",
]
