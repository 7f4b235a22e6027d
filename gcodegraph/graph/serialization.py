"""Graph serialization — JSON-safe dicts and G-code text export."""

from __future__ import annotations

from .models import Vertex, Label, ParserConfig
from .parsed import Parsed
from gcodegraph.geometry import Pos


def vertex_to_dict(v: Vertex) -> dict:
    """Serialize one vertex to a JSON-safe dict."""
    return {
        "id": v.id,
        "x": v.to.x,
        "y": v.to.y,
        "z": v.to.z,
        "e": v.to.e,
        "prev": v.prev,
        "label": v.label.value,
        "count": v.count,
        **({"feedrate": v.feedrate} if v.feedrate is not None else {}),
        **({"homed_axes": v.homed_axes} if v.homed_axes is not None else {}),
    }


def graph_to_dict(graph: Parsed) -> dict:
    """Serialize a whole graph (vertices in playback order plus layers)."""
    return {
        "version": graph.version,
        "vertices": [vertex_to_dict(v) for v in graph.iter_ordered()],
        "layers": [list(members) for members in graph.layers],
    }


def parse_graph(data: dict, config: ParserConfig | None = None) -> Parsed:
    """Rebuild a graph from ``graph_to_dict`` output.  Layers are re-derived."""
    vertices = [
        Vertex(
            id=int(d["id"]),
            to=Pos(float(d["x"]), float(d["y"]), float(d["z"]), float(d.get("e", 0.0))),
            prev=d.get("prev"),
            label=Label(d["label"]),
            count=int(d["count"]),
            feedrate=d.get("feedrate"),
            homed_axes=d.get("homed_axes"),
        )
        for d in data["vertices"]
    ]
    return Parsed(vertices, config=config)


# ── G-code export ──────────────────────────────────────────────────

_RAPID_LABELS = {Label.TRAVEL_MOVE, Label.LIFT_Z, Label.LOWER_Z}


def _home_command(v: Vertex) -> str:
    """``G28`` for a full home, ``G28 X Y`` when only some axes were homed."""
    axes = v.homed_axes or "XYZ"
    if set(axes) >= {"X", "Y", "Z"}:
        return "G28"
    return "G28 " + " ".join(axes)


def to_gcode(graph: Parsed) -> str:
    """Emit the graph as G-code, one move per vertex in playback order.

    Output uses absolute XYZ and relative extrusion (``M83``), matching the
    per-move ``e`` stored on each vertex.  ``;LAYER_CHANGE`` markers are
    written where the print starts and wherever an extrusion enters a new
    layer, so the export parses back into the same labels and layers.
    """
    lines = [
        "; generated by gcodegraph",
        "G21",
        "G90",
        "M83",
    ]
    started = False
    current_layer: int | None = None
    last_f: float | None = None

    for v in graph.iter_ordered():
        if v.label not in (Label.PRE_PRINT_MOVE, Label.HOME) and not started:
            started = True
            lines.append(";LAYER_CHANGE")
        if v.label.is_extrusion:
            layer = graph.layer_index(v.id)
            if layer is not None and layer != current_layer:
                if current_layer is not None:
                    lines.append(";LAYER_CHANGE")
                lines.append(f";Z:{graph.layer_z(layer):.3f}")
                current_layer = layer

        if v.label is Label.HOME:
            lines.append(_home_command(v))
            continue

        words = ["G0" if v.label in _RAPID_LABELS else "G1"]
        words.append(f"X{v.to.x:.3f}")
        words.append(f"Y{v.to.y:.3f}")
        words.append(f"Z{v.to.z:.3f}")
        if abs(v.to.e) > 0:
            words.append(f"E{v.to.e:.5f}")
        if v.feedrate is not None and v.feedrate != last_f:
            words.append(f"F{v.feedrate:.0f}")
            last_f = v.feedrate
        lines.append(" ".join(words))

    return "\n".join(lines) + "\n"
