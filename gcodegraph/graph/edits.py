"""Structural edits over a ``Parsed`` graph.

Every operation takes a scope of vertex ids, validates it (and its
parameters) completely, and only then mutates the graph in place.  A
rejected edit raises ``EditError`` (or ``ParseError`` for insert-before)
and leaves the graph untouched.  The deletes are the exception: with
nothing to delete they return an unchanged result.  Ids in the scope
that are no longer in the graph are dropped with a warning; selections
routinely outlive the vertices they name.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Sequence

from gcodegraph.geometry import distance, lerp, offset as offset_pos

from .models import (
    Id, Vertex, Label, Scope, EditResult, EditError, ParseError, ParseErrorKind,
)
from .parsed import Parsed
from .parsing import MachineState, Move, parse_moves

log = logging.getLogger("gcodegraph.graph.edits")

# Guards ceil() against lengths that are an exact multiple of the step
_STEP_SLACK = 1e-9


def _live_ids(graph: Parsed, ids: set[Id], operation: str) -> list[Id]:
    """Ids of *ids* still in the graph, in playback order."""
    live = [vid for vid in ids if vid in graph.vertices]
    if len(live) < len(ids):
        log.warning(
            "%s: ignoring %d selected id(s) not in the graph",
            operation, len(ids) - len(live),
        )
    return sorted(live, key=lambda vid: (graph.vertices[vid].count, vid))


def _resolve_scope(graph: Parsed, scope: Iterable[Id], operation: str) -> list[Id]:
    """Live ids of *scope*, in playback order.  Raises if none remain."""
    ids = set(scope)
    if not ids:
        raise EditError(operation, "empty selection")
    live = _live_ids(graph, ids, operation)
    if not live:
        raise EditError(operation, "no selected vertex exists in the graph")
    return live


# ── Scope expansion ────────────────────────────────────────────────


def expand_scope(graph: Parsed, ids: Iterable[Id], scope: Scope) -> set[Id]:
    """Grow a selection to whole shapes or layers.  Unknown ids vanish."""
    scope = Scope(scope)
    out: set[Id] = set()
    for vid in ids:
        if vid not in graph.vertices:
            continue
        if scope is Scope.VERTEX:
            out.add(vid)
        elif scope is Scope.SHAPE:
            out |= graph.get_shape(vid)
        else:
            out |= graph.get_layer(vid)
    return out


# ── Deletion ───────────────────────────────────────────────────────


def merge_delete(graph: Parsed, scope: Iterable[Id]) -> EditResult:
    """Delete vertices and merge the chain across the gap.

    A survivor whose ``prev`` was deleted is relinked to its nearest
    surviving ancestor on the original chain, or becomes a head if the
    whole prefix was deleted.  An empty (or entirely stale) scope is a
    no-op: the result reports nothing changed.
    """
    doomed = set(_live_ids(graph, set(scope), "merge_delete"))
    if not doomed:
        return EditResult(operation="merge_delete", message="Nothing to delete")

    relink: dict[Id, Id | None] = {}
    for v in graph.vertices.values():
        if v.id in doomed or v.prev not in doomed:
            continue
        anc = v.prev
        while anc is not None and anc in doomed:
            anc = graph.vertices[anc].prev
        relink[v.id] = anc

    for vid, anc in relink.items():
        graph.vertices[vid].prev = anc
    for vid in doomed:
        del graph.vertices[vid]
    graph.touch()

    log.info("merge_delete: removed %d vertices, relinked %d", len(doomed), len(relink))
    return EditResult(
        operation="merge_delete",
        removed=sorted(doomed),
        relinked=sorted(relink),
        message=f"Deleted {len(doomed)} vertices",
    )


def hole_delete(graph: Parsed, scope: Iterable[Id]) -> EditResult:
    """Delete vertices and leave a hole: survivors of the gap become heads.

    Unlike ``merge_delete`` this splits a chain into separate shapes.
    Its behaviour is not yet stable and may change.
    """
    doomed = set(_live_ids(graph, set(scope), "hole_delete"))
    if not doomed:
        return EditResult(operation="hole_delete", message="Nothing to delete")

    orphans = [
        v.id for v in graph.vertices.values()
        if v.id not in doomed and v.prev in doomed
    ]
    for vid in orphans:
        graph.vertices[vid].prev = None
    for vid in doomed:
        del graph.vertices[vid]
    graph.touch()

    log.info("hole_delete: removed %d vertices, %d new chain heads", len(doomed), len(orphans))
    return EditResult(
        operation="hole_delete",
        removed=sorted(doomed),
        relinked=sorted(orphans),
        message=f"Deleted {len(doomed)} vertices, split into {len(orphans)} new chains",
    )


# ── Subdivision ────────────────────────────────────────────────────


def subdivide(
    graph: Parsed,
    max_distance: float,
    scope: Iterable[Id] | None = None,
) -> EditResult:
    """Split every move longer than *max_distance* into equal pieces.

    A move of length L becomes ``n = ceil(L / max_distance)`` moves.  The
    original vertex stays the last piece (same id, label, count and end
    point); ``n - 1`` new vertices are minted before it.  Extrusion is
    shared evenly between the pieces.  Chain heads have no segment and
    are never split.  Neither are home moves: the printer picks their
    path, so there is no straight line to cut.  ``scope=None`` means the
    whole graph.
    """
    if (
        isinstance(max_distance, bool)
        or not isinstance(max_distance, (int, float))
        or not math.isfinite(max_distance)
        or max_distance <= 0
    ):
        raise EditError("subdivide", f"max distance must be a positive number, got {max_distance!r}")

    if scope is None:
        targets = [v.id for v in graph.iter_ordered()]
    else:
        targets = _resolve_scope(graph, scope, "subdivide")

    plan: list[tuple[Vertex, int]] = []
    for vid in targets:
        v = graph.vertices[vid]
        if v.prev is None or v.prev not in graph.vertices or v.label is Label.HOME:
            continue
        length = distance(graph.vertices[v.prev].to, v.to)
        if length <= max_distance:
            continue
        n = math.ceil(length / max_distance - _STEP_SLACK)
        if n >= 2:
            plan.append((v, n))

    if not plan:
        return EditResult(operation="subdivide", message="No move exceeds the maximum distance")

    # Start points are captured first: splitting a predecessor only
    # changes its extrusion, never its end point.
    starts = {v.id: graph.vertices[v.prev].to for v, _ in plan}
    created: list[Id] = []
    for v, n in plan:
        start = starts[v.id]
        piece_e = v.to.e / n
        prev = v.prev
        for k in range(1, n):
            nid = graph.mint_id()
            graph.vertices[nid] = Vertex(
                id=nid,
                to=lerp(start, v.to, k / n).with_e(piece_e),
                prev=prev,
                label=v.label,
                count=v.count,
                feedrate=v.feedrate,
            )
            created.append(nid)
            prev = nid
        v.to = v.to.with_e(piece_e)
        v.prev = prev
    graph.touch()

    log.info(
        "subdivide(%.3f): split %d moves into %d new vertices",
        max_distance, len(plan), len(created),
    )
    return EditResult(
        operation="subdivide",
        created=created,
        relinked=[v.id for v, _ in plan],
        message=f"Split {len(plan)} moves, {len(created)} vertices added",
    )


# ── Insertion ──────────────────────────────────────────────────────


def insert_before(graph: Parsed, text: str, scope: Iterable[Id]) -> EditResult:
    """Splice the moves of raw G-code *text* in front of every target.

    The text is parsed once per target, starting from the target's
    predecessor position, so relative moves land where they would on the
    printer.  All targets are parsed before anything is changed; a
    ``ParseError`` leaves the graph untouched.
    """
    targets = _resolve_scope(graph, scope, "insert_before")
    lines = text.splitlines()

    plans: list[tuple[Vertex, list[Move]]] = []
    for vid in targets:
        v = graph.vertices[vid]
        state = MachineState.at(graph.prev_pos(v))
        moves = parse_moves(lines, state=state, config=graph.config)
        if not moves:
            raise ParseError(
                ParseErrorKind.UNSUPPORTED_COMMAND,
                f"Inserted text contains no motion command: {text.strip()!r}",
            )
        plans.append((v, moves))

    created: list[Id] = []
    for v, moves in plans:
        prev = v.prev
        for move in moves:
            nid = graph.mint_id()
            graph.vertices[nid] = Vertex(
                id=nid,
                to=move.to,
                prev=prev,
                label=move.label,
                count=v.count,
                feedrate=move.feedrate,
                homed_axes=move.homed_axes,
            )
            created.append(nid)
            prev = nid
        v.prev = prev
    graph.touch()

    log.info("insert_before: %d vertices before %d targets", len(created), len(plans))
    return EditResult(
        operation="insert_before",
        created=created,
        relinked=[v.id for v, _ in plans],
        message=f"Inserted {len(created)} vertices before {len(plans)} targets",
    )


# ── Translation ────────────────────────────────────────────────────


def translate(
    graph: Parsed,
    offset: Sequence[float],
    scope: Iterable[Id],
) -> EditResult:
    """Move every vertex in *scope* by ``(dx, dy, dz)``."""
    if len(offset) != 3:
        raise EditError("translate", f"offset needs 3 components, got {len(offset)}")
    try:
        dx, dy, dz = (float(c) for c in offset)
    except (TypeError, ValueError):
        raise EditError("translate", f"offset must be numeric, got {offset!r}") from None
    if not all(math.isfinite(c) for c in (dx, dy, dz)):
        raise EditError("translate", f"offset must be finite, got {offset!r}")

    targets = _resolve_scope(graph, scope, "translate")
    for vid in targets:
        v = graph.vertices[vid]
        v.to = offset_pos(v.to, dx, dy, dz)
    graph.touch()

    log.info("translate(%.3f, %.3f, %.3f): moved %d vertices", dx, dy, dz, len(targets))
    return EditResult(
        operation="translate",
        moved=targets,
        message=f"Moved {len(targets)} vertices",
    )
