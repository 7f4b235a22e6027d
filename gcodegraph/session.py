"""
Editor session — the single owner of one loaded G-code graph, its
selection history and the view filters a presentation layer applies.

A presentation layer (the web surface, or any other front end) talks only
to an ``EditorSession``:

  - enumerate vertices and poll ``version`` to know when to redraw
  - set the playback count, the Z window and per-label visibility
  - read / change the selection, undo / redo selection changes
  - request edits on the current selection

Edits never touch the selection history.  Ids of deleted vertices may
still sit in the history (undo can bring them back); ``selection`` only
ever reports ids that exist in the graph.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from gcodegraph.config import settings
from gcodegraph.graph import (
    Id, Label, Vertex, Scope, EditResult, ParserConfig, Parsed, HistoryError, EditError,
    parse_gcode, read_gcode, expand_scope, to_gcode,
    merge_delete, hole_delete, subdivide, insert_before, translate,
)
from gcodegraph.selection import SelectionLog, SelectMode

log = logging.getLogger("gcodegraph.session")


@dataclass
class ViewFilter:
    """What the presentation layer should draw."""

    visible_labels: set[Label] = field(default_factory=set)
    z_min: float | None = None          # open interval; None = unbounded
    z_max: float | None = None
    count_threshold: int | None = None  # None = show every vertex

    @classmethod
    def from_settings(cls) -> ViewFilter:
        return cls(
            visible_labels={Label(name) for name in settings.visible_labels},
            z_min=settings.z_min,
            z_max=settings.z_max,
        )

    def to_dict(self) -> dict:
        return {
            "visible_labels": sorted(label.value for label in self.visible_labels),
            "z_min": self.z_min,
            "z_max": self.z_max,
        }


class EditorSession:
    """One loaded file: graph, selection log and view state."""

    def __init__(
        self,
        graph: Parsed,
        source: Path | None = None,
        view: ViewFilter | None = None,
    ) -> None:
        self.graph = graph
        self.source = source
        self.history = SelectionLog()
        self.view = view or ViewFilter.from_settings()

    @classmethod
    def from_file(cls, path: str | Path, config: ParserConfig | None = None) -> EditorSession:
        p = Path(path)
        return cls(read_gcode(p, config=config), source=p)

    @classmethod
    def from_text(cls, text: str, config: ParserConfig | None = None) -> EditorSession:
        return cls(parse_gcode(text, config=config))

    # ── Graph access ───────────────────────────────────────────────

    @property
    def version(self) -> int:
        """Bumped by every graph edit — redraw when it changes."""
        return self.graph.version

    def vertices(self) -> list[Vertex]:
        return list(self.graph.iter_ordered())

    def summary(self) -> dict:
        return {
            **self.graph.summary(),
            "source": str(self.source) if self.source else None,
            "selected": len(self.selection),
            "can_undo": self.history.can_undo,
            "can_redo": self.history.can_redo,
            "count_threshold": self.count_threshold,
        }

    # ── Playback ───────────────────────────────────────────────────

    @property
    def count_threshold(self) -> int:
        """Vertices with ``count`` below this are shown."""
        limit = self.graph.max_count
        t = self.view.count_threshold
        return limit if t is None else max(0, min(t, limit))

    @count_threshold.setter
    def count_threshold(self, value: int | None) -> None:
        if value is None:
            self.view.count_threshold = None
            return
        value = int(value)
        self.view.count_threshold = None if value >= self.graph.max_count else max(0, value)

    def step_playback(self, delta: int) -> int:
        """Move the playback threshold by *delta* vertices; returns the new value."""
        self.count_threshold = self.count_threshold + int(delta)
        return self.count_threshold

    # ── Z window & label visibility ────────────────────────────────

    def set_z_range(self, z_min: float | None, z_max: float | None) -> None:
        for v in (z_min, z_max):
            if v is not None and not math.isfinite(v):
                raise EditError("z_range", f"bounds must be finite, got {v!r}")
        if z_min is not None and z_max is not None and z_min >= z_max:
            raise EditError("z_range", f"z_min ({z_min}) must be below z_max ({z_max})")
        self.view.z_min = z_min
        self.view.z_max = z_max

    def set_label_visible(self, label: Label | str, visible: bool) -> None:
        label = Label(label)
        if visible:
            self.view.visible_labels.add(label)
        else:
            self.view.visible_labels.discard(label)

    def toggle_label(self, label: Label | str) -> bool:
        """Flip one label's visibility; returns the new state."""
        label = Label(label)
        visible = label not in self.view.visible_labels
        self.set_label_visible(label, visible)
        return visible

    def is_visible(self, vid: Id) -> bool:
        v = self.graph.vertices.get(vid)
        if v is None:
            return False
        view = self.view
        return (
            v.count < self.count_threshold
            and v.label in view.visible_labels
            and (view.z_min is None or v.to.z > view.z_min)
            and (view.z_max is None or v.to.z < view.z_max)
        )

    def visible_ids(self) -> list[Id]:
        return [v.id for v in self.graph.iter_ordered() if self.is_visible(v.id)]

    # ── Selection ──────────────────────────────────────────────────

    @property
    def selection(self) -> set[Id]:
        return {vid for vid in self.history.selection if vid in self.graph.vertices}

    def select(
        self,
        ids: Iterable[Id],
        mode: SelectMode | str = SelectMode.REPLACE,
        scope: Scope | str = Scope.VERTEX,
    ) -> bool:
        """Apply a selection change (e.g. a click), logging it first.

        With a shape / layer *scope* the clicked ids grow to whole shapes or
        layers before the change is applied.  Returns False when nothing
        changed.
        """
        ids = expand_scope(self.graph, ids, Scope(scope))
        action = self.history.select(ids, SelectMode(mode))
        return action is not None

    def clear_selection(self) -> bool:
        return self.history.change(set()) is not None

    def undo(self) -> bool:
        try:
            self.history.undo()
        except HistoryError as e:
            log.debug("Selection %s", e)
            return False
        return True

    def redo(self) -> bool:
        try:
            self.history.redo()
        except HistoryError as e:
            log.debug("Selection %s", e)
            return False
        return True

    # ── Edits on the current selection ─────────────────────────────

    def merge_delete(self) -> EditResult:
        return merge_delete(self.graph, self.selection)

    def hole_delete(self) -> EditResult:
        return hole_delete(self.graph, self.selection)

    def subdivide(
        self,
        max_distance: float | None = None,
        selected_only: bool = False,
    ) -> EditResult:
        """Split long moves — of the whole graph, or only the selected ones."""
        if max_distance is None:
            max_distance = settings.subdivide_max_mm
        scope = self.selection if selected_only else None
        return subdivide(self.graph, max_distance, scope)

    def translate(
        self,
        offset: Sequence[float],
        scope: Scope | str = Scope.VERTEX,
    ) -> EditResult:
        """Move the selection, grown to whole shapes / layers per *scope*."""
        selected = self.selection
        if not selected:
            raise EditError("translate", "empty selection")
        return translate(self.graph, offset, expand_scope(self.graph, selected, Scope(scope)))

    def insert_before(self, text: str) -> EditResult:
        return insert_before(self.graph, text, self.selection)

    def export_gcode(self) -> str:
        return to_gcode(self.graph)
