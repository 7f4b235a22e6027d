"""
FastAPI web server — JSON surface over one editor session.

A front end loads a G-code file, reads the vertices it has to draw,
drives the view filters and the selection, and requests edits.  After
any edit it compares ``version`` with the one it last drew.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, TypeVar

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from gcodegraph.config import settings
from gcodegraph.graph import (
    Label, Scope, EditResult, ParseError, EditError, VertexNotFound, vertex_to_dict,
)
from gcodegraph.selection import SelectMode
from gcodegraph.session import EditorSession

log = logging.getLogger("gcodegraph.server")

T = TypeVar("T")

# ── App ────────────────────────────────────────────────────────────

app = FastAPI(title="gcodegraph")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Session state (persists across requests) ───────────────────────

_session: EditorSession | None = None
_lock = threading.Lock()          # single writer: one request at a time


def set_session(session: EditorSession | None) -> None:
    """Install (or drop) the session served by the API."""
    global _session
    with _lock:
        _session = session


def _with_session(fn: Callable[[EditorSession], T]) -> T:
    with _lock:
        if _session is None:
            raise HTTPException(400, "No G-code loaded — POST /api/load first.")
        try:
            return fn(_session)
        except ParseError as e:
            raise HTTPException(422, {
                "kind": e.kind.value,
                "message": e.message,
                "line_no": e.line_no,
                "line": e.line,
            })
        except VertexNotFound as e:
            raise HTTPException(404, str(e))
        except EditError as e:
            raise HTTPException(400, str(e))


def _edit_response(s: EditorSession, result: EditResult) -> dict:
    return {
        "operation": result.operation,
        "changed": result.changed,
        "removed": result.removed,
        "created": result.created,
        "relinked": result.relinked,
        "moved": result.moved,
        "message": result.message,
        "version": s.version,
    }


# ── Models ─────────────────────────────────────────────────────────


class LoadRequest(BaseModel):
    path: str | None = None
    text: str | None = None


class ViewUpdateRequest(BaseModel):
    count_threshold: int | None = None
    z_min: float | None = None
    z_max: float | None = None
    visible_labels: list[Label] | None = None


class SelectionRequest(BaseModel):
    ids: list[int] = Field(default_factory=list)
    mode: SelectMode = SelectMode.REPLACE
    scope: Scope = Scope.VERTEX


class SubdivideRequest(BaseModel):
    max_distance: float | None = None
    selected_only: bool = False


class TranslateRequest(BaseModel):
    offset: list[float]
    scope: Scope = Scope.VERTEX


class InsertRequest(BaseModel):
    text: str


# ── Routes: loading ────────────────────────────────────────────────


@app.post("/api/load")
def load(req: LoadRequest):
    """Parse a G-code file (by path) or raw text into a fresh session."""
    if (req.path is None) == (req.text is None):
        raise HTTPException(400, "Provide exactly one of 'path' or 'text'.")
    try:
        if req.path is not None:
            session = EditorSession.from_file(req.path)
        else:
            session = EditorSession.from_text(req.text)
    except ParseError as e:
        raise HTTPException(422, {
            "kind": e.kind.value,
            "message": e.message,
            "line_no": e.line_no,
            "line": e.line,
        })
    set_session(session)
    log.info("Loaded session: %d vertices", len(session.graph))
    return session.summary()


@app.post("/api/reset")
def reset_session():
    """Drop the loaded file and its history."""
    set_session(None)
    return {"status": "ok"}


@app.get("/api/summary")
def get_summary():
    return _with_session(lambda s: s.summary())


@app.get("/api/version")
def get_version():
    return _with_session(lambda s: {"version": s.version})


# ── Routes: vertices & view ────────────────────────────────────────


@app.get("/api/vertices")
def get_vertices():
    return _with_session(lambda s: {
        "version": s.version,
        "vertices": [vertex_to_dict(v) for v in s.vertices()],
    })


@app.get("/api/visible")
def get_visible():
    return _with_session(lambda s: {"version": s.version, "ids": s.visible_ids()})


def _view_state(s: EditorSession) -> dict:
    return {
        **s.view.to_dict(),
        "count_threshold": s.count_threshold,
        "max_count": s.graph.max_count,
    }


@app.get("/api/view")
def get_view():
    return _with_session(_view_state)


@app.put("/api/view")
def update_view(req: ViewUpdateRequest):
    """Update playback threshold, Z window and label visibility.

    Fields left out keep their value.  An explicit null for ``z_min`` or
    ``z_max`` removes that bound; for ``count_threshold`` it shows every
    vertex again.
    """
    def _apply(s: EditorSession) -> dict:
        if "count_threshold" in req.model_fields_set:
            s.count_threshold = req.count_threshold
        if "z_min" in req.model_fields_set or "z_max" in req.model_fields_set:
            s.set_z_range(
                req.z_min if "z_min" in req.model_fields_set else s.view.z_min,
                req.z_max if "z_max" in req.model_fields_set else s.view.z_max,
            )
        if req.visible_labels is not None:
            s.view.visible_labels = set(req.visible_labels)
        return _view_state(s)
    return _with_session(_apply)


@app.post("/api/view/labels/{label}/toggle")
def toggle_label(label: Label):
    return _with_session(lambda s: {"label": label.value, "visible": s.toggle_label(label)})


# ── Routes: groupings ──────────────────────────────────────────────


@app.get("/api/vertex/{vertex_id}")
def get_vertex(vertex_id: int):
    return _with_session(lambda s: vertex_to_dict(s.graph.vertex(vertex_id)))


@app.get("/api/shape/{vertex_id}")
def get_shape(vertex_id: int):
    def _shape(s: EditorSession) -> dict:
        s.graph.vertex(vertex_id)
        return {"ids": sorted(s.graph.get_shape(vertex_id))}
    return _with_session(_shape)


@app.get("/api/layer/{vertex_id}")
def get_layer(vertex_id: int):
    def _layer(s: EditorSession) -> dict:
        s.graph.vertex(vertex_id)
        return {
            "index": s.graph.layer_index(vertex_id),
            "ids": sorted(s.graph.get_layer(vertex_id)),
        }
    return _with_session(_layer)


# ── Routes: selection ──────────────────────────────────────────────


def _selection_state(s: EditorSession, changed: bool | None = None) -> dict:
    return {
        "ids": sorted(s.selection),
        "can_undo": s.history.can_undo,
        "can_redo": s.history.can_redo,
        **({"changed": changed} if changed is not None else {}),
    }


@app.get("/api/selection")
def get_selection():
    return _with_session(_selection_state)


@app.post("/api/selection")
def change_selection(req: SelectionRequest):
    return _with_session(
        lambda s: _selection_state(s, s.select(req.ids, req.mode, req.scope))
    )


@app.post("/api/selection/clear")
def clear_selection():
    return _with_session(lambda s: _selection_state(s, s.clear_selection()))


@app.post("/api/undo")
def undo():
    def _undo(s: EditorSession) -> dict:
        changed = s.undo()
        return {**_selection_state(s, changed), **({} if changed else {"message": "nothing to undo"})}
    return _with_session(_undo)


@app.post("/api/redo")
def redo():
    def _redo(s: EditorSession) -> dict:
        changed = s.redo()
        return {**_selection_state(s, changed), **({} if changed else {"message": "nothing to redo"})}
    return _with_session(_redo)


# ── Routes: edits ──────────────────────────────────────────────────


@app.post("/api/edit/merge_delete")
def edit_merge_delete():
    return _with_session(lambda s: _edit_response(s, s.merge_delete()))


@app.post("/api/edit/hole_delete")
def edit_hole_delete():
    return _with_session(lambda s: _edit_response(s, s.hole_delete()))


@app.post("/api/edit/subdivide")
def edit_subdivide(req: SubdivideRequest):
    return _with_session(
        lambda s: _edit_response(s, s.subdivide(req.max_distance, req.selected_only))
    )


@app.post("/api/edit/translate")
def edit_translate(req: TranslateRequest):
    return _with_session(lambda s: _edit_response(s, s.translate(req.offset, req.scope)))


@app.post("/api/edit/insert_before")
def edit_insert_before(req: InsertRequest):
    return _with_session(lambda s: _edit_response(s, s.insert_before(req.text)))


# ── Routes: export ─────────────────────────────────────────────────


@app.get("/api/gcode")
def export_gcode():
    text = _with_session(lambda s: s.export_gcode())
    return PlainTextResponse(text, media_type="text/x-gcode")


# ── Entry point ────────────────────────────────────────────────────

def main(host: str | None = None, port: int | None = None):
    import uvicorn
    uvicorn.run(
        app,
        host=host or settings.host,
        port=port or settings.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
