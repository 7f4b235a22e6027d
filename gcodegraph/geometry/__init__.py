from .vector import (
    Pos,
    ORIGIN,
    distance,
    lerp,
    offset,
)
