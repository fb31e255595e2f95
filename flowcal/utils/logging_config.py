"""Logging setup shared by the command-line entry points.

Library modules only ever do ``logger = logging.getLogger(__name__)``; the
entry points call :func:`setup_logging` once to attach handlers to the root
logger.

Features:
    - Console handler on stderr, colored when attached to a TTY
    - Optional log file, human-readable or one JSON object per line
    - Contextual fields (app, printer) appended to every record

Public API:
    setup_logging("INFO", context={"app": "generate"})
    push_context(printer="A1 Mini")
    pop_context(["printer"])

Format examples:
    Human: 2026-03-02T09:15:04.120Z | INFO     | app=generate printer=A1 | Plate 1: 16 site(s)
    JSON:  {"t": "2026-03-02T09:15:04.120Z", "lvl": "INFO", "name": "...", "msg": "...", "app": "generate"}

Calling setup_logging() again replaces the handlers it installed earlier.
"""

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


_context_var: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    'flowcal_logging_context', default={}
)

# Handlers installed by the last setup_logging() call
_installed: List[logging.Handler] = []

_LEVEL_COLORS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
_RESET = '\033[0m'


class ContextFormatter(logging.Formatter):
    """Formatter that appends the current context fields.

    Parameters
    ----------
    fmt_mode : str
        ``"human"`` or ``"json"``.
    use_color : bool
        Color the level name (human mode, TTY streams only).
    """

    def __init__(self, fmt_mode: str = "human", use_color: bool = False):
        super().__init__()
        if fmt_mode not in ("human", "json"):
            raise ValueError(f"Unknown log format: {fmt_mode}")
        self.fmt_mode = fmt_mode
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        stamp = ts.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'
        context = _context_var.get()

        if self.fmt_mode == "json":
            payload = {'t': stamp, 'lvl': record.levelname, 'name': record.name,
                       'msg': record.getMessage()}
            payload.update(context)
            if record.exc_info:
                payload['exc'] = self.formatException(record.exc_info)
            return json.dumps(payload, default=str)

        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{_LEVEL_COLORS.get(record.levelname, '')}{level}{_RESET}"
        parts = [stamp, level]
        if context:
            parts.append(' '.join(f"{k}={v}" for k, v in context.items()))
        parts.append(record.getMessage())
        line = ' | '.join(parts)
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json_file: bool = False,
    color: bool = True,
    context: Optional[Dict[str, Any]] = None,
) -> List[logging.Handler]:
    """Configure the root logger.

    Parameters
    ----------
    log_level : str
        Level name: "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL".
    log_file : str, optional
        Also log to this file (parent directories are created).
    json_file : bool
        Write the file log as JSON lines, default False.
    color : bool
        Color level names on the console when stderr is a TTY.
    context : dict, optional
        Initial contextual fields, e.g. ``{"app": "generate"}``.

    Returns
    -------
    list[logging.Handler]
        The handlers now attached to the root logger.

    Raises
    ------
    ValueError
        If *log_level* is not a known level name.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    root = logging.getLogger()
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()
    root.setLevel(level)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(ContextFormatter("human", use_color=color and sys.stderr.isatty()))
    _installed.append(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(ContextFormatter("json" if json_file else "human"))
        _installed.append(file_handler)

    for handler in _installed:
        root.addHandler(handler)

    if context:
        push_context(**context)
    logging.captureWarnings(True)
    return list(_installed)


def push_context(**kwargs: Any) -> None:
    """Add contextual fields to all subsequent log records.

    Examples
    --------
    >>> push_context(app="generate", printer="A1")
    >>> logger.info("Started")  # → "... | app=generate printer=A1 | Started"
    """
    _context_var.set({**_context_var.get(), **kwargs})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Remove contextual fields; all of them when *keys* is None."""
    if keys is None:
        _context_var.set({})
        return
    current = dict(_context_var.get())
    for key in keys:
        current.pop(key, None)
    _context_var.set(current)
