"""Tests for the Parsed graph: chains, shapes, layers and bookkeeping."""

from __future__ import annotations

import unittest

from gcodegraph.geometry import Pos
from gcodegraph.graph import (
    Label, Vertex, Parsed, ParserConfig, GraphError, VertexNotFound, parse_gcode,
)
from tests.gcode_fixtures import LINE, OBJECTS, NON_MONOTONIC_Z


def _v(vid, x, prev=None, count=None, label=Label.PLANAR_EXTRUSION, z=0.2):
    return Vertex(id=vid, to=Pos(x, 0, z, 1), prev=prev, label=label,
                  count=vid if count is None else count)


class TestShapes(unittest.TestCase):

    def setUp(self):
        self.graph = parse_gcode(OBJECTS)

    def test_shape_contains_queried_vertex(self):
        for vid in self.graph.vertices:
            self.assertIn(vid, self.graph.get_shape(vid))

    def test_shape_is_stable_within_chain(self):
        """Any member of a shape yields the same shape."""
        for vid in self.graph.vertices:
            shape = self.graph.get_shape(vid)
            for other in shape:
                self.assertEqual(self.graph.get_shape(other), shape)

    def test_shapes_partition_graph(self):
        seen: set[int] = set()
        for head in self.graph.heads():
            shape = self.graph.get_shape(head)
            self.assertFalse(seen & shape)
            seen |= shape
        self.assertEqual(seen, set(self.graph.vertices))

    def test_unknown_vertex_has_empty_shape(self):
        self.assertEqual(self.graph.get_shape(999), set())

    def test_chain_is_link_ordered(self):
        chain = self.graph.chain(15)
        self.assertEqual(chain, [5, 6, 7, 8, 14, 15])
        self.assertEqual(self.graph.chain_head(15), 5)

    def test_successors(self):
        self.assertEqual(self.graph.successors(8), [14])
        self.assertEqual(self.graph.successors(15), [])


class TestLayers(unittest.TestCase):

    def test_non_monotonic_z(self):
        graph = parse_gcode(NON_MONOTONIC_Z)
        self.assertEqual(graph.layers, [[1, 2, 9], [6, 7], [4]])
        self.assertAlmostEqual(graph.layer_z(0), 0.2)
        self.assertAlmostEqual(graph.layer_z(1), 0.4)
        self.assertAlmostEqual(graph.layer_z(2), 0.6)

    def test_layer_lookup(self):
        graph = parse_gcode(NON_MONOTONIC_Z)
        self.assertEqual(graph.get_layer(9), {1, 2, 9})
        self.assertEqual(graph.layer_index(4), 2)

    def test_only_extrusions_belong_to_layers(self):
        graph = parse_gcode(NON_MONOTONIC_Z)
        self.assertEqual(graph.get_layer(0), set())
        self.assertIsNone(graph.layer_index(3))

    def test_layer_query_stable(self):
        graph = parse_gcode(OBJECTS)
        for members in graph.layers:
            for vid in members:
                self.assertEqual(graph.get_layer(vid), set(members))

    def test_objects_layers(self):
        graph = parse_gcode(OBJECTS)
        self.assertEqual(graph.layers, [[6, 7, 13], [15]])

    def test_band_tolerance_from_config(self):
        graph = parse_gcode(NON_MONOTONIC_Z, config=ParserConfig(layer_band_mm=0.01, epsilon=1e-6))
        self.assertEqual(len(graph.layers), 4)

    def test_layers_rebuilt_after_touch(self):
        graph = parse_gcode(NON_MONOTONIC_Z)
        self.assertEqual(len(graph.layers), 3)
        graph.vertices[4].to = Pos(0, 10, 0.2, 1)
        graph.touch()
        self.assertEqual(graph.get_layer(4), {1, 2, 4, 9})


class TestOrdering(unittest.TestCase):

    def test_iter_ordered_by_count(self):
        graph = Parsed([_v(2, 30, prev=1), _v(0, 10), _v(1, 20, prev=0)])
        self.assertEqual([v.id for v in graph.iter_ordered()], [0, 1, 2])

    def test_equal_counts_follow_links(self):
        """A vertex minted later but linked earlier plays first."""
        graph = Parsed([
            _v(0, 10),
            _v(1, 20, prev=3, count=1),
            _v(3, 15, prev=0, count=1),
        ])
        self.assertEqual([v.id for v in graph.iter_ordered()], [0, 3, 1])

    def test_max_count(self):
        self.assertEqual(parse_gcode(LINE).max_count, 4)
        self.assertEqual(Parsed().max_count, 0)


class TestBookkeeping(unittest.TestCase):

    def test_duplicate_ids_rejected(self):
        with self.assertRaises(GraphError):
            Parsed([_v(0, 10), _v(0, 20)])

    def test_mint_id_is_monotonic(self):
        graph = parse_gcode(LINE)
        self.assertEqual(graph.mint_id(), 4)
        self.assertEqual(graph.mint_id(), 5)

    def test_touch_bumps_version(self):
        graph = parse_gcode(LINE)
        self.assertEqual(graph.version, 0)
        graph.touch()
        self.assertEqual(graph.version, 1)

    def test_vertex_lookup(self):
        graph = parse_gcode(LINE)
        self.assertEqual(graph.vertex(2).to.x, 30)
        with self.assertRaises(VertexNotFound) as ctx:
            graph.vertex(42)
        self.assertEqual(ctx.exception.vertex_id, 42)
        self.assertIsInstance(ctx.exception, LookupError)

    def test_segment_length(self):
        graph = parse_gcode(LINE)
        self.assertIsNone(graph.segment_length(0))
        self.assertAlmostEqual(graph.segment_length(1), 10.0)

    def test_prev_pos_of_head_is_origin(self):
        graph = parse_gcode(LINE)
        self.assertEqual(graph.prev_pos(graph.vertex(0)), Pos())
        self.assertEqual(graph.prev_pos(graph.vertex(1)).x, 10)

    def test_integrity_dangling_prev(self):
        graph = Parsed([_v(0, 10), _v(1, 20, prev=7)])
        errors = graph.check_integrity()
        self.assertEqual(len(errors), 1)
        self.assertIn("prev 7", errors[0])

    def test_integrity_cycle(self):
        graph = Parsed([_v(0, 10, prev=1), _v(1, 20, prev=0)])
        self.assertTrue(graph.check_integrity())
        with self.assertRaises(GraphError):
            graph.chain_head(0)

    def test_summary(self):
        summary = parse_gcode(OBJECTS).summary()
        self.assertEqual(summary["vertices"], 16)
        self.assertEqual(summary["chains"], 4)
        self.assertEqual(summary["layers"], 2)
        self.assertEqual(summary["labels"]["planar_extrusion"], 4)
        self.assertEqual(summary["labels"]["mystery"], 0)
        self.assertEqual(summary["z_range"], [0.0, 5.0])


if __name__ == "__main__":
    unittest.main()
