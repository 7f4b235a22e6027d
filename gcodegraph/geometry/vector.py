"""
Pure-Python 3-D position utilities.

All coordinates in mm.  ``e`` is the filament length (mm) extruded by the
move that *ends* at this position, not the cumulative extruder axis.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class Pos:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    e: float = 0.0

    def __add__(self, other: Pos) -> Pos:
        return Pos(self.x + other.x, self.y + other.y,
                   self.z + other.z, self.e + other.e)

    def __sub__(self, other: Pos) -> Pos:
        return Pos(self.x - other.x, self.y - other.y,
                   self.z - other.z, self.e - other.e)

    def scale(self, k: float) -> Pos:
        return Pos(self.x * k, self.y * k, self.z * k, self.e * k)

    def with_e(self, e: float) -> Pos:
        return Pos(self.x, self.y, self.z, e)

    @property
    def xyz(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


ORIGIN = Pos()


# ── core primitives ─────────────────────────────────────────────────


def distance(a: Pos, b: Pos) -> float:
    """Euclidean XYZ distance (extrusion is ignored)."""
    return math.sqrt((b.x - a.x) ** 2 + (b.y - a.y) ** 2 + (b.z - a.z) ** 2)


def lerp(a: Pos, b: Pos, t: float) -> Pos:
    """Point at fraction *t* along a → b, extrusion interpolated too."""
    return Pos(
        a.x + (b.x - a.x) * t,
        a.y + (b.y - a.y) * t,
        a.z + (b.z - a.z) * t,
        a.e + (b.e - a.e) * t,
    )


def offset(p: Pos, dx: float, dy: float, dz: float) -> Pos:
    """Translate a position in space, keeping its extrusion."""
    return Pos(p.x + dx, p.y + dy, p.z + dz, p.e)
