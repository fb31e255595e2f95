"""Cross-cutting utilities (lowest dependency layer).

    - fs: atomic output, YAML loading, zip bundling, file-name slugs
    - numbers: lenient number parsing and program-safe formatting
    - logging_config: logging setup for the entry points

Nothing in utils/ imports from configs, calibration, gcode or preview.
"""

from . import fs
from . import logging_config
from . import numbers

from .logging_config import pop_context, push_context, setup_logging

__all__ = [
    'fs',
    'logging_config',
    'numbers',
    'setup_logging',
    'pop_context',
    'push_context',
]
