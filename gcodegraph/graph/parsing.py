"""
G-code parsing — turn raw G-code text into labelled motion records and
build the initial ``Parsed`` graph from them.

The parser walks the file line by line and keeps a small machine state
(position, absolute/relative modes, tool, current object).  Every G0/G1,
G2/G3 and G28 becomes one motion record, as does any other G word that
names an axis (labelled as a mystery move).  Other commands only update
the state or are ignored.

Slicers mark the start of the actual print and the printed objects with
comments or host macros:

    ;LAYER_CHANGE                     PrusaSlicer / SuperSlicer / Orca
    ;LAYER:0                          Cura
    ; printing object cube.stl id:0   PrusaSlicer
    EXCLUDE_OBJECT_START NAME=cube    Klipper
    ;MESH:cube.stl                    Cura

Moves before the first layer marker are pre-print moves (purge lines,
probing, homing travel).  A file without layer markers has no pre-print
section.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from gcodegraph.geometry import Pos

from .models import Label, Vertex, ParserConfig, ParseError, ParseErrorKind
from .parsed import Parsed

log = logging.getLogger("gcodegraph.graph.parsing")

MM_PER_INCH = 25.4

_COMMAND_RE = re.compile(r"^([GMT])(\d+)(?:\.\d+)?$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)$")
# A new word starts at a letter that follows a number (G1X20E2)
_WORD_SPLIT_RE = re.compile(r"(?<=[\d.])(?=[A-Za-z])")
_CHECKSUM_RE = re.compile(r"\*\d+\s*$")

_LAYER_MARKER_RE = re.compile(r"^;\s*(?:LAYER_CHANGE\b|LAYER:\s*-?\d+)", re.IGNORECASE)

_OBJECT_END_RES = (
    re.compile(r"^;\s*stop printing object\b", re.IGNORECASE),
    re.compile(r"^EXCLUDE_OBJECT_END\b", re.IGNORECASE),
    re.compile(r"^;MESH:NONMESH\s*$"),
)
_OBJECT_START_RES = (
    re.compile(r"^;\s*printing object\s+(?P<name>.+?)\s*$", re.IGNORECASE),
    re.compile(r"^EXCLUDE_OBJECT_START\s+NAME=(?P<name>\S+)", re.IGNORECASE),
    re.compile(r"^;MESH:(?P<name>.+?)\s*$"),
)

PREPRINT_HEAD = ("preprint",)


# ── Records & machine state ────────────────────────────────────────


@dataclass
class Move:
    """One motion record, before it is given an id and a chain position."""

    to: Pos
    label: Label
    head: tuple                     # head state: which chain this extends
    line_no: int
    feedrate: float | None = None
    homed_axes: str | None = None


@dataclass
class MachineState:
    """Modal printer state tracked while reading G-code."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    e_axis: float = 0.0             # logical extruder axis (for absolute E)
    absolute_xyz: bool = True
    absolute_e: bool = True
    units: float = 1.0              # mm per G-code unit (G20 / G21)
    feedrate: float | None = None
    tool: int = 0
    obj: str | None = None
    printing: bool = True

    @property
    def head(self) -> tuple:
        if not self.printing:
            return PREPRINT_HEAD
        return (self.tool, self.obj)

    @classmethod
    def at(cls, p: Pos) -> MachineState:
        """A printing-state machine parked at *p* (absolute modes)."""
        return cls(x=p.x, y=p.y, z=p.z, printing=True)


# ── Line tokenizing ────────────────────────────────────────────────


def _strip_line(line: str) -> str:
    code = line.split(";", 1)[0]
    code = _CHECKSUM_RE.sub("", code)
    return code.strip()


def _parse_params(
    tokens: list[str],
    line_no: int,
    line: str,
) -> dict[str, float | None]:
    """Parse ``X10.5 Y-3 E`` style words.  A bare letter maps to None."""
    params: dict[str, float | None] = {}
    for tok in tokens:
        letter = tok[0].upper()
        raw = tok[1:]
        if not letter.isalpha():
            raise ParseError(
                ParseErrorKind.MALFORMED_NUMBER,
                f"Parameter word {tok!r} does not start with a letter",
                line_no, line,
            )
        if raw == "":
            params[letter] = None
            continue
        if not _NUMBER_RE.match(raw):
            raise ParseError(
                ParseErrorKind.MALFORMED_NUMBER,
                f"Malformed numeric value in {tok!r}",
                line_no, line,
            )
        value = float(raw)
        if not math.isfinite(value):
            raise ParseError(
                ParseErrorKind.MALFORMED_NUMBER,
                f"Non-finite numeric value in {tok!r}",
                line_no, line,
            )
        params[letter] = value
    return params


# ── Classification ─────────────────────────────────────────────────


def classify(
    dx: float, dy: float, dz: float, de: float,
    *,
    printing: bool = True,
    epsilon: float = 1e-6,
) -> Label:
    """Label a linear move from its XYZ and extrusion deltas."""
    if not printing:
        return Label.PRE_PRINT_MOVE

    xy = abs(dx) > epsilon or abs(dy) > epsilon
    z = abs(dz) > epsilon
    extruding = de > epsilon
    retracting = de < -epsilon

    if not (xy or z or extruding or retracting):
        return Label.FEEDRATE_CHANGE_ONLY
    if xy:
        if extruding:
            return Label.NON_PLANAR_EXTRUSION if z else Label.PLANAR_EXTRUSION
        if retracting:
            return Label.WIPE
        return Label.TRAVEL_MOVE
    if z:
        if extruding or retracting:
            return Label.MYSTERY_MOVE
        return Label.LIFT_Z if dz > 0 else Label.LOWER_Z
    return Label.RETRACTION if retracting else Label.DE_RETRACTION


# ── Command handlers ───────────────────────────────────────────────


def _target(state: MachineState, params: dict[str, float | None]) -> tuple[float, float, float, float]:
    """Resolve the XYZ end point and extrusion delta of a move."""
    pos = {"X": state.x, "Y": state.y, "Z": state.z}
    for axis in pos:
        value = params.get(axis)
        if value is None:
            continue
        value *= state.units
        pos[axis] = value if state.absolute_xyz else pos[axis] + value

    de = 0.0
    e = params.get("E")
    if e is not None:
        e *= state.units
        de = e - state.e_axis if state.absolute_e else e
    return pos["X"], pos["Y"], pos["Z"], de


def _motion(
    state: MachineState,
    cmd: str,
    params: dict[str, float | None],
    line_no: int,
    config: ParserConfig,
) -> Move:
    if params.get("F") is not None:
        state.feedrate = params["F"] * state.units

    if cmd == "G28":
        named = [a for a in ("X", "Y", "Z") if a in params] or ["X", "Y", "Z"]
        for axis in named:
            setattr(state, axis.lower(), 0.0)
        return Move(
            to=Pos(state.x, state.y, state.z, 0.0),
            label=Label.HOME,
            head=state.head,
            line_no=line_no,
            feedrate=state.feedrate,
            homed_axes="".join(named),
        )

    x, y, z, de = _target(state, params)
    if cmd not in ("G0", "G1"):
        label = Label.MYSTERY_MOVE if state.printing else Label.PRE_PRINT_MOVE
    else:
        label = classify(
            x - state.x, y - state.y, z - state.z, de,
            printing=state.printing, epsilon=config.epsilon,
        )

    state.x, state.y, state.z = x, y, z
    state.e_axis += de
    return Move(
        to=Pos(x, y, z, de),
        label=label,
        head=state.head,
        line_no=line_no,
        feedrate=state.feedrate,
    )


def _set_position(state: MachineState, params: dict[str, float | None]) -> None:
    """G92 — redefine the logical position without moving."""
    if not params:
        params = {"X": 0.0, "Y": 0.0, "Z": 0.0, "E": 0.0}
    for axis, attr in (("X", "x"), ("Y", "y"), ("Z", "z"), ("E", "e_axis")):
        if axis in params:
            value = params[axis] or 0.0
            setattr(state, attr, value * state.units)


def _handle_marker(state: MachineState, stripped: str) -> bool:
    """Update printing / object state from comment markers and host macros."""
    if _LAYER_MARKER_RE.match(stripped):
        state.printing = True
        return True
    for rx in _OBJECT_END_RES:
        if rx.match(stripped):
            state.obj = None
            return True
    for rx in _OBJECT_START_RES:
        m = rx.match(stripped)
        if m:
            state.obj = m.group("name")
            return True
    return False


# ── Public API ─────────────────────────────────────────────────────


def has_layer_markers(lines: Iterable[str]) -> bool:
    return any(_LAYER_MARKER_RE.match(line.strip()) for line in lines)


def parse_moves(
    lines: list[str],
    state: MachineState | None = None,
    config: ParserConfig | None = None,
) -> list[Move]:
    """Parse G-code lines into motion records, mutating *state* as it goes.

    Raises ``ParseError`` on malformed numeric parameters.  Lines that are
    not command words (host macros, stray text) are skipped.
    """
    config = config or ParserConfig()
    if state is None:
        state = MachineState(printing=not has_layer_markers(lines))

    moves: list[Move] = []
    for line_no, line in enumerate(lines, start=1):
        stripped = line.strip()
        if not stripped:
            continue
        if _handle_marker(state, stripped):
            continue

        code = _strip_line(line)
        if not code:
            continue
        tokens = [w for tok in code.split() for w in _WORD_SPLIT_RE.split(tok)]
        if tokens[0][:1] in ("N", "n") and len(tokens) > 1:
            tokens = tokens[1:]     # line number word

        m = _COMMAND_RE.match(tokens[0])
        if m is None:
            log.debug("Skipping non-command line %d: %r", line_no, stripped)
            continue
        cmd = f"{m.group(1).upper()}{int(m.group(2))}"

        if cmd.startswith("T"):
            state.tool = int(m.group(2))
        elif cmd in ("G0", "G1", "G2", "G3", "G28"):
            params = _parse_params(tokens[1:], line_no, line)
            moves.append(_motion(state, cmd, params, line_no, config))
        elif cmd == "G92":
            _set_position(state, _parse_params(tokens[1:], line_no, line))
        elif cmd == "G90":
            state.absolute_xyz = state.absolute_e = True
        elif cmd == "G91":
            state.absolute_xyz = state.absolute_e = False
        elif cmd == "M82":
            state.absolute_e = True
        elif cmd == "M83":
            state.absolute_e = False
        elif cmd == "G20":
            state.units = MM_PER_INCH
        elif cmd == "G21":
            state.units = 1.0
        elif cmd.startswith("G") and any(t[0].upper() in "XYZ" for t in tokens[1:]):
            # unknown motion (G5 spline, G38 probe, ...): endpoint only
            params = _parse_params(tokens[1:], line_no, line)
            moves.append(_motion(state, cmd, params, line_no, config))
        # every other G/M word is accepted and has no effect on the model
    return moves


def build_graph(moves: list[Move], config: ParserConfig | None = None) -> Parsed:
    """Assign ids, counts and per-head ``prev`` links to parsed moves."""
    graph = Parsed(config=config)
    last_by_head: dict[tuple, int] = {}
    for count, move in enumerate(moves):
        vid = graph.mint_id()
        graph.vertices[vid] = Vertex(
            id=vid,
            to=move.to,
            prev=last_by_head.get(move.head),
            label=move.label,
            count=count,
            feedrate=move.feedrate,
            homed_axes=move.homed_axes,
        )
        last_by_head[move.head] = vid
    return graph


def parse_gcode(text: str, config: ParserConfig | None = None) -> Parsed:
    """Parse a whole G-code program into a ``Parsed`` graph."""
    lines = text.splitlines()
    moves = parse_moves(lines, config=config)
    if not moves:
        raise ParseError(
            ParseErrorKind.EMPTY_INPUT,
            "No motion commands found in G-code input",
        )
    graph = build_graph(moves, config=config)
    log.info(
        "Parsed %d lines → %d vertices, %d chains, %d layers",
        len(lines), len(graph), len(graph.heads()), len(graph.layers),
    )
    return graph


def read_gcode(path: str | Path, config: ParserConfig | None = None) -> Parsed:
    """Read and parse a G-code file from disk."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise ParseError(
            ParseErrorKind.UNREADABLE_FILE,
            f"Cannot read G-code file {p}: {e.strerror or e}",
        ) from e
    log.info("Reading %s", p)
    return parse_gcode(text, config=config)
