"""Minimal G-code interpreter for previews.

Replays a program line by line through a small coordinate/extrusion state
machine and reports what happens to a *sink*.  The extent pass and the
drawing pass of the renderer are two sinks over this one replay function,
so the transition rules exist exactly once.

Recognised commands:
    - ``G90`` / ``G91``: absolute / relative X, Y, Z
    - ``M82`` / ``M83``: absolute / relative E
    - ``G92``: set the logical position of the given axes without moving
    - ``G0`` / ``G1``: linear move (identical for preview purposes)
    - ``M117``: status message, payload passed to the sink verbatim

Everything else (temperatures, fan, dwell, homing) is ignored.

Parsing is lenient: a parameter whose value does not parse counts as
``0``; text from ``;`` to end of line is a comment; blank lines are
skipped.  Nothing in here raises on program input.

Usage::

    from flowcal.preview.vm import ReplaySink, replay

    class Counter(ReplaySink):
        moves = 0
        def motion(self, state, move):
            self.moves += 1

    sink = Counter()
    replay(program_text, sink)
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, List

from flowcal.utils.numbers import parse_number

logger = logging.getLogger(__name__)

_COMMENT_RE = re.compile(r';.*$')
_LINE_SPLIT_RE = re.compile(r'\r?\n')


# ============================================================================
# STATE
# ============================================================================

@dataclass
class MachineState:
    """Interpreter state.  One instance per replay, never shared.

    Attributes
    ----------
    x, y, z : float
        Logical position (mm).
    e : float
        Cumulative extruder position (mm of filament).
    absolute_positioning : bool
        ``G90`` (True) / ``G91`` (False) for X, Y, Z.
    absolute_extrusion : bool
        ``M82`` (True) / ``M83`` (False) for E.
    """

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    e: float = 0.0
    absolute_positioning: bool = True
    absolute_extrusion: bool = True


@dataclass(frozen=True)
class Move:
    """One ``G0``/``G1`` transition, start point plus deltas."""

    x0: float
    y0: float
    dx: float
    dy: float
    dz: float
    de: float

    @property
    def x1(self) -> float:
        return self.x0 + self.dx

    @property
    def y1(self) -> float:
        return self.y0 + self.dy

    @property
    def xy_distance(self) -> float:
        return math.hypot(self.dx, self.dy)


# ============================================================================
# SINK
# ============================================================================

class ReplaySink:
    """Receiver of replay events.  Subclasses override what they need.

    Each hook is called *before* the state reflects the event, except
    :meth:`position_set`, which sees the updated state.
    """

    def position_set(self, state: MachineState) -> None:
        """``G92`` changed the logical position."""

    def motion(self, state: MachineState, move: Move) -> None:
        """A ``G0``/``G1`` line is about to be applied."""

    def status(self, message: str) -> None:
        """An ``M117`` line with its raw payload (comments included)."""


# ============================================================================
# PARSING
# ============================================================================

def split_lines(program_text: str) -> List[str]:
    """Split on ``\\n`` or ``\\r\\n``."""
    return _LINE_SPLIT_RE.split(program_text)


def strip_comment(line: str) -> str:
    """Drop everything from the first ``;`` and surrounding whitespace."""
    return _COMMENT_RE.sub('', line).strip()


def parse_words(tokens: List[str]) -> Dict[str, float]:
    """Map axis letters to values; unparseable values count as 0.

    A repeated letter keeps its last value.
    """
    words: Dict[str, float] = {}
    for token in tokens:
        words[token[0].upper()] = parse_number(token[1:], 0.0)
    return words


def status_payload(raw_line: str) -> str:
    """Message text after the mnemonic, whitespace runs collapsed."""
    return ' '.join(raw_line.split()[1:])


# ============================================================================
# REPLAY
# ============================================================================

def _finite_or(value: float, current: float) -> float:
    """*value* when finite, else *current*: state never leaves the reals."""
    return value if math.isfinite(value) else current


def _apply_position_reset(state: MachineState, words: Dict[str, float]) -> None:
    state.x = _finite_or(words.get('X', state.x), state.x)
    state.y = _finite_or(words.get('Y', state.y), state.y)
    state.z = _finite_or(words.get('Z', state.z), state.z)
    state.e = _finite_or(words.get('E', state.e), state.e)


def _resolve_move(state: MachineState, words: Dict[str, float]) -> Move:
    def target(axis: str, current: float, absolute: bool) -> float:
        if axis not in words:
            return current
        value = words[axis]
        resolved = value if absolute else current + value
        # The delta must stay finite too, or current + delta overflows
        if not math.isfinite(resolved - current):
            return current
        return resolved

    pos_abs = state.absolute_positioning
    tx = target('X', state.x, pos_abs)
    ty = target('Y', state.y, pos_abs)
    tz = target('Z', state.z, pos_abs)
    te = target('E', state.e, state.absolute_extrusion)
    return Move(
        x0=state.x,
        y0=state.y,
        dx=tx - state.x,
        dy=ty - state.y,
        dz=tz - state.z,
        de=te - state.e,
    )


def replay(program_text: str, sink: ReplaySink) -> MachineState:
    """Replay *program_text* from a fresh state, reporting to *sink*.

    Parameters
    ----------
    program_text : str
        Line-oriented G-code.
    sink : ReplaySink
        Event receiver.

    Returns
    -------
    MachineState
        State after the last line.
    """
    state = MachineState()
    lines = 0
    moves = 0

    for raw in split_lines(program_text):
        line = strip_comment(raw)
        if not line:
            continue
        lines += 1

        tokens = line.split()
        cmd = tokens[0].upper()

        if cmd == 'G90':
            state.absolute_positioning = True
        elif cmd == 'G91':
            state.absolute_positioning = False
        elif cmd == 'M82':
            state.absolute_extrusion = True
        elif cmd == 'M83':
            state.absolute_extrusion = False
        elif cmd == 'M117':
            # Payload from the raw line: the message itself may contain ';'
            sink.status(status_payload(raw))
        elif cmd == 'G92':
            _apply_position_reset(state, parse_words(tokens[1:]))
            sink.position_set(state)
        elif cmd in ('G0', 'G1'):
            move = _resolve_move(state, parse_words(tokens[1:]))
            sink.motion(state, move)
            state.x += move.dx
            state.y += move.dy
            state.z += move.dz
            state.e += move.de
            moves += 1

    logger.debug("Replayed %d command lines, %d moves", lines, moves)
    return state
