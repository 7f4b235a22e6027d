"""The mutable G-code graph — vertices, chains, shapes and layers.

Vertices are keyed by id.  ``prev`` links form one chain per head state
(pre-print, or tool + printed object).  Shapes and layers are derived:

  shape   every vertex reachable from the same chain head
  layer   extrusion vertices sharing a Z band, ordered by increasing Z

Derived groupings are cached against ``version``.  Every mutation must go
through ``touch()`` so the caches are rebuilt before they are next read.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Iterator

from gcodegraph.geometry import Pos, ORIGIN, distance

from .models import Id, Vertex, Label, ParserConfig, GraphError, VertexNotFound

log = logging.getLogger("gcodegraph.graph")


class Parsed:
    """A parsed G-code file as an editable graph of motion vertices."""

    def __init__(
        self,
        vertices: Iterable[Vertex] = (),
        config: ParserConfig | None = None,
    ) -> None:
        self.config = config or ParserConfig()
        self.vertices: dict[Id, Vertex] = {}
        for v in vertices:
            if v.id in self.vertices:
                raise GraphError(f"Duplicate vertex id {v.id}")
            self.vertices[v.id] = v
        self.version = 0
        self._next_id: Id = max(self.vertices, default=-1) + 1

        # (version, payload) pairs — stale when version differs
        self._layer_cache: tuple[int, list[list[Id]], dict[Id, int]] | None = None
        self._succ_cache: tuple[int, dict[Id, list[Id]]] | None = None

    # ── Identity & mutation bookkeeping ────────────────────────────

    def mint_id(self) -> Id:
        """Return a fresh id.  Ids are never handed out twice."""
        vid = self._next_id
        self._next_id += 1
        return vid

    def touch(self) -> None:
        """Mark the graph as changed; derived groupings are rebuilt lazily."""
        self.version += 1

    # ── Basic access ───────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self.vertices)

    def __contains__(self, vid: object) -> bool:
        return vid in self.vertices

    def vertex(self, vid: Id) -> Vertex:
        try:
            return self.vertices[vid]
        except KeyError:
            raise VertexNotFound(vid) from None

    def iter_ordered(self) -> Iterator[Vertex]:
        """Vertices in playback order.

        Sorted by count.  Vertices minted by an edit share the count of the
        vertex they were placed in front of, so ties are ordered along
        their ``prev`` links rather than by id.
        """
        by_count = sorted(self.vertices.values(), key=lambda v: (v.count, v.id))
        i = 0
        while i < len(by_count):
            j = i + 1
            while j < len(by_count) and by_count[j].count == by_count[i].count:
                j += 1
            if j - i == 1:
                yield by_count[i]
            else:
                yield from _link_order(by_count[i:j])
            i = j

    def prev_pos(self, v: Vertex) -> Pos:
        """Start point of the move ending at *v* (origin for a chain head)."""
        if v.prev is None or v.prev not in self.vertices:
            return ORIGIN
        return self.vertices[v.prev].to

    def segment_length(self, vid: Id) -> float | None:
        """Length of the move ending at *vid*; None for heads and unknown ids."""
        v = self.vertices.get(vid)
        if v is None or v.prev is None or v.prev not in self.vertices:
            return None
        return distance(self.vertices[v.prev].to, v.to)

    @property
    def max_count(self) -> int:
        """One past the highest playback count (0 for an empty graph)."""
        return max((v.count for v in self.vertices.values()), default=-1) + 1

    # ── Chains & shapes ────────────────────────────────────────────

    def _successor_index(self) -> dict[Id, list[Id]]:
        if self._succ_cache is None or self._succ_cache[0] != self.version:
            succ: dict[Id, list[Id]] = {}
            for v in self.iter_ordered():
                if v.prev is not None:
                    succ.setdefault(v.prev, []).append(v.id)
            self._succ_cache = (self.version, succ)
        return self._succ_cache[1]

    def successors(self, vid: Id) -> list[Id]:
        return list(self._successor_index().get(vid, ()))

    def chain_head(self, vid: Id) -> Id | None:
        """Walk ``prev`` links back to the head of *vid*'s chain."""
        if vid not in self.vertices:
            return None
        cur = vid
        for _ in range(len(self.vertices) + 1):
            prev = self.vertices[cur].prev
            if prev is None or prev not in self.vertices:
                return cur
            cur = prev
        raise GraphError(f"Cycle detected in prev chain of vertex {vid}")

    def heads(self) -> list[Id]:
        """All chain heads, in playback order."""
        return [v.id for v in self.iter_ordered() if v.prev is None]

    def chain(self, vid: Id) -> list[Id]:
        """The whole chain containing *vid*, head first, in link order."""
        head = self.chain_head(vid)
        if head is None:
            return []
        succ = self._successor_index()
        out: list[Id] = []
        stack = [head]
        while stack:
            cur = stack.pop()
            out.append(cur)
            # reversed so the earliest successor is visited first
            stack.extend(reversed(succ.get(cur, ())))
        return out

    def get_shape(self, vid: Id) -> set[Id]:
        """Every vertex sharing *vid*'s chain head.  Empty for unknown ids."""
        return set(self.chain(vid))

    # ── Layers ─────────────────────────────────────────────────────

    def _compute_layers(self) -> tuple[list[list[Id]], dict[Id, int]]:
        tol = self.config.layer_band_mm
        bands: list[tuple[float, list[Id]]] = []
        last: tuple[float, list[Id]] | None = None
        for v in self.iter_ordered():
            if not v.label.is_extrusion:
                continue
            z = v.to.z
            # Consecutive moves nearly always stay in the band just used
            if last is not None and abs(z - last[0]) <= tol:
                last[1].append(v.id)
                continue
            for band in bands:
                if abs(z - band[0]) <= tol:
                    band[1].append(v.id)
                    last = band
                    break
            else:
                last = (z, [v.id])
                bands.append(last)

        bands.sort(key=lambda b: b[0])
        layers = [members for _, members in bands]
        index = {vid: i for i, members in enumerate(layers) for vid in members}
        return layers, index

    def _layer_data(self) -> tuple[list[list[Id]], dict[Id, int]]:
        if self._layer_cache is None or self._layer_cache[0] != self.version:
            layers, index = self._compute_layers()
            self._layer_cache = (self.version, layers, index)
        return self._layer_cache[1], self._layer_cache[2]

    @property
    def layers(self) -> list[list[Id]]:
        return self._layer_data()[0]

    def layer_index(self, vid: Id) -> int | None:
        return self._layer_data()[1].get(vid)

    def get_layer(self, vid: Id) -> set[Id]:
        """Members of *vid*'s layer band.  Empty if *vid* is in no band."""
        layers, index = self._layer_data()
        i = index.get(vid)
        if i is None:
            return set()
        return set(layers[i])

    def layer_z(self, i: int) -> float:
        """Z of the first vertex recorded in layer *i*."""
        return self.vertices[self.layers[i][0]].to.z

    # ── Diagnostics ────────────────────────────────────────────────

    def check_integrity(self) -> list[str]:
        """Check graph invariants.  Returns error messages (empty = valid)."""
        errors: list[str] = []
        for v in self.vertices.values():
            if v.prev is not None and v.prev not in self.vertices:
                errors.append(f"Vertex {v.id}: prev {v.prev} does not exist")
            if v.prev == v.id:
                errors.append(f"Vertex {v.id}: prev points at itself")
        if errors:
            return errors

        # Every chain must end at a head within len(vertices) steps
        resolved: set[Id] = set()
        for vid in self.vertices:
            seen: list[Id] = []
            cur: Id | None = vid
            while cur is not None and cur not in resolved:
                if cur in seen:
                    errors.append(f"Vertex {vid}: prev chain contains a cycle")
                    break
                seen.append(cur)
                cur = self.vertices[cur].prev
            resolved.update(seen)

        for i, members in enumerate(self.layers):
            for vid in members:
                if vid not in self.vertices:
                    errors.append(f"Layer {i}: unknown vertex {vid}")
        return errors

    def summary(self) -> dict:
        """Counts for display: vertices, chains, layers and a label histogram."""
        labels = Counter(v.label.value for v in self.vertices.values())
        zs = [v.to.z for v in self.vertices.values()]
        return {
            "vertices": len(self.vertices),
            "chains": len(self.heads()),
            "layers": len(self.layers),
            "max_count": self.max_count,
            "z_range": [min(zs), max(zs)] if zs else None,
            "labels": {label.value: labels.get(label.value, 0) for label in Label},
            "version": self.version,
        }


def _link_order(group: list[Vertex]) -> list[Vertex]:
    """Order vertices so that any ``prev`` inside the group comes first."""
    members = {v.id: v for v in group}
    done: set[Id] = set()
    out: list[Vertex] = []
    for v in group:
        pending: list[Vertex] = []
        seen: set[Id] = set()
        cur = v
        while cur.id not in done:
            pending.append(cur)
            seen.add(cur.id)
            if cur.prev in members and cur.prev not in done and cur.prev not in seen:
                cur = members[cur.prev]
            else:
                break
        for w in reversed(pending):
            if w.id not in done:
                done.add(w.id)
                out.append(w)
    return out
