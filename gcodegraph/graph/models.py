"""Graph dataclasses, motion labels, error types and parser configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from gcodegraph.config import settings
from gcodegraph.geometry import Pos


Id = int    # opaque vertex identifier, minted monotonically, never reused


class Label(str, Enum):
    """Motion-type classification of a vertex."""

    PRE_PRINT_MOVE = "preprint"
    PLANAR_EXTRUSION = "planar_extrusion"
    NON_PLANAR_EXTRUSION = "nonplanar_extrusion"
    RETRACTION = "retraction"
    DE_RETRACTION = "deretraction"
    WIPE = "wipe"
    LIFT_Z = "lift_z"
    LOWER_Z = "lower_z"
    TRAVEL_MOVE = "travel"
    FEEDRATE_CHANGE_ONLY = "feedrate_only"
    HOME = "home"
    MYSTERY_MOVE = "mystery"

    @property
    def is_extrusion(self) -> bool:
        return self in (Label.PLANAR_EXTRUSION, Label.NON_PLANAR_EXTRUSION)


# ── Graph entities ─────────────────────────────────────────────────


@dataclass
class Vertex:
    """One endpoint of a printer motion command."""

    id: Id
    to: Pos
    prev: Id | None
    label: Label
    # Ordinal in parse order (playback).  Vertices minted by an edit take
    # the count of the vertex they precede, so along an edited chain count
    # is non-decreasing rather than strictly increasing.
    count: int
    feedrate: float | None = None       # modal F (mm/min), export only
    homed_axes: str | None = None       # HOME only: axes homed, e.g. "XYZ" or "Z"


@dataclass
class EditResult:
    """What a structural edit did to the graph."""

    operation: str
    removed: list[Id] = field(default_factory=list)
    created: list[Id] = field(default_factory=list)
    relinked: list[Id] = field(default_factory=list)
    moved: list[Id] = field(default_factory=list)
    message: str = ""

    @property
    def changed(self) -> bool:
        return bool(self.removed or self.created or self.relinked or self.moved)


# ── Errors ─────────────────────────────────────────────────────────


class GraphError(Exception):
    """Base class for every error raised by the G-code graph core."""


class ParseErrorKind(str, Enum):
    EMPTY_INPUT = "empty_input"
    MALFORMED_NUMBER = "malformed_number"
    UNSUPPORTED_COMMAND = "unsupported_command"
    UNREADABLE_FILE = "unreadable_file"


class ParseError(GraphError):
    """Raised when G-code text cannot be turned into motion records."""

    def __init__(
        self,
        kind: ParseErrorKind,
        message: str,
        line_no: int | None = None,
        line: str | None = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.line_no = line_no
        self.line = line
        where = f" (line {line_no}: {line.strip()!r})" if line_no is not None and line is not None else ""
        super().__init__(f"{message}{where}")


class EditError(GraphError):
    """Raised when an edit is rejected before any mutation happens."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation}: {reason}")


class VertexNotFound(GraphError, LookupError):
    """Raised by strict lookups of an id that is not (or no longer) in the graph."""

    def __init__(self, vertex_id: Id) -> None:
        self.vertex_id = vertex_id
        super().__init__(f"No vertex with id {vertex_id}")


class HistoryError(GraphError):
    """Nothing to undo / redo.  A benign signal, not a failure."""

    def __init__(self, direction: str) -> None:
        self.direction = direction
        super().__init__(f"nothing to {direction}")


# ── Parser configuration ───────────────────────────────────────────


@dataclass(frozen=True)
class ParserConfig:
    """Parser tunables.  Defaults are read from the editor settings file."""

    layer_band_mm: float = field(default_factory=lambda: settings.layer_band_mm)
    """Two extrusion vertices whose Z differ by at most this share a layer."""

    epsilon: float = field(default_factory=lambda: settings.epsilon)
    """Deltas smaller than this count as "no motion" / "no extrusion"."""


class Scope(str, Enum):
    """How far a selection reaches when an edit expands it."""

    VERTEX = "vertex"
    SHAPE = "shape"
    LAYER = "layer"
