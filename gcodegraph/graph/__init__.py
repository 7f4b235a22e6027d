"""G-code graph — parsed motion vertices, groupings and structural edits.

Submodules:
  models        Vertex / Label dataclasses, error types, parser configuration.
  parsed        The ``Parsed`` graph: chains, shapes, layers, version counter.
  parsing       G-code text → labelled motion records → ``Parsed``.
  edits         Delete (merge / hole), subdivide, insert-before, translate.
  serialization JSON conversion and G-code export.
"""

from .models import (
    Id, Label, Vertex, Scope, EditResult, ParserConfig,
    GraphError, ParseError, ParseErrorKind, EditError, VertexNotFound, HistoryError,
)
from .parsed import Parsed
from .parsing import parse_gcode, read_gcode, classify
from .edits import (
    merge_delete, hole_delete, subdivide, insert_before, translate, expand_scope,
)
from .serialization import vertex_to_dict, graph_to_dict, parse_graph, to_gcode

__all__ = [
    # Models
    "Id", "Label", "Vertex", "Scope", "EditResult", "ParserConfig",
    "GraphError", "ParseError", "ParseErrorKind", "EditError",
    "VertexNotFound", "HistoryError",
    # Graph
    "Parsed",
    # Parsing
    "parse_gcode", "read_gcode", "classify",
    # Edits
    "merge_delete", "hole_delete", "subdivide", "insert_before", "translate",
    "expand_scope",
    # Serialization
    "vertex_to_dict", "graph_to_dict", "parse_graph", "to_gcode",
]
