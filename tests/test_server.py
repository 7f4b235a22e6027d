"""Tests for the HTTP surface, driven through FastAPI's TestClient."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from gcodegraph.web.server import app, set_session
from tests.gcode_fixtures import LINE, OBJECTS


class ServerTestCase(unittest.TestCase):

    fixture = OBJECTS

    def setUp(self):
        set_session(None)
        self.client = TestClient(app)
        if self.fixture is not None:
            r = self.client.post("/api/load", json={"text": self.fixture})
            self.assertEqual(r.status_code, 200, r.text)

    def tearDown(self):
        set_session(None)


class TestLoading(ServerTestCase):

    fixture = None

    def test_requires_session(self):
        r = self.client.get("/api/summary")
        self.assertEqual(r.status_code, 400)

    def test_load_text(self):
        r = self.client.post("/api/load", json={"text": OBJECTS})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["vertices"], 16)

    def test_load_path(self):
        with tempfile.TemporaryDirectory() as tmp:
            p = Path(tmp) / "part.gcode"
            p.write_text(LINE, encoding="utf-8")
            r = self.client.post("/api/load", json={"path": str(p)})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["source"], str(p))

    def test_exactly_one_source(self):
        self.assertEqual(self.client.post("/api/load", json={}).status_code, 400)
        r = self.client.post("/api/load", json={"text": LINE, "path": "x.gcode"})
        self.assertEqual(r.status_code, 400)

    def test_parse_error(self):
        r = self.client.post("/api/load", json={"text": "G1 X1.2.3"})
        self.assertEqual(r.status_code, 422)
        detail = r.json()["detail"]
        self.assertEqual(detail["kind"], "malformed_number")
        self.assertEqual(detail["line_no"], 1)

    def test_missing_file(self):
        r = self.client.post("/api/load", json={"path": "/nonexistent/part.gcode"})
        self.assertEqual(r.status_code, 422)
        self.assertEqual(r.json()["detail"]["kind"], "unreadable_file")

    def test_reset(self):
        self.client.post("/api/load", json={"text": LINE})
        self.client.post("/api/reset")
        self.assertEqual(self.client.get("/api/version").status_code, 400)


class TestQueries(ServerTestCase):

    def test_vertices(self):
        data = self.client.get("/api/vertices").json()
        self.assertEqual(data["version"], 0)
        self.assertEqual(len(data["vertices"]), 16)
        self.assertEqual(data["vertices"][6]["label"], "planar_extrusion")

    def test_vertex(self):
        self.assertEqual(self.client.get("/api/vertex/6").json()["prev"], 5)
        self.assertEqual(self.client.get("/api/vertex/99").status_code, 404)

    def test_shape(self):
        r = self.client.get("/api/shape/6")
        self.assertEqual(r.json()["ids"], [5, 6, 7, 8, 14, 15])
        self.assertEqual(self.client.get("/api/shape/99").status_code, 404)

    def test_layer(self):
        r = self.client.get("/api/layer/13").json()
        self.assertEqual(r, {"index": 0, "ids": [6, 7, 13]})
        self.assertEqual(self.client.get("/api/layer/5").json()["ids"], [])


class TestView(ServerTestCase):

    def test_defaults(self):
        view = self.client.get("/api/view").json()
        self.assertEqual(view["count_threshold"], 16)
        self.assertEqual(view["max_count"], 16)
        self.assertIsNone(view["z_min"])

    def test_update(self):
        r = self.client.put("/api/view", json={"count_threshold": 5})
        self.assertEqual(r.json()["count_threshold"], 5)
        self.assertEqual(self.client.get("/api/visible").json()["ids"], [1, 2, 3])

    def test_null_threshold_shows_all(self):
        self.client.put("/api/view", json={"count_threshold": 5})
        r = self.client.put("/api/view", json={"count_threshold": None})
        self.assertEqual(r.json()["count_threshold"], 16)
        self.assertEqual(len(self.client.get("/api/visible").json()["ids"]), 13)

    def test_threshold_kept_when_omitted(self):
        self.client.put("/api/view", json={"count_threshold": 5})
        r = self.client.put("/api/view", json={"z_min": 0.1})
        self.assertEqual(r.json()["count_threshold"], 5)

    def test_z_window(self):
        self.client.put("/api/view", json={"z_min": 0.1, "z_max": 0.3})
        self.assertEqual(self.client.get("/api/visible").json()["ids"], [5, 6, 7, 8, 12, 13])
        r = self.client.put("/api/view", json={"z_max": None})
        self.assertEqual(r.json()["z_min"], 0.1)
        self.assertIsNone(r.json()["z_max"])

    def test_bad_z_window(self):
        r = self.client.put("/api/view", json={"z_min": 2, "z_max": 1})
        self.assertEqual(r.status_code, 400)

    def test_labels(self):
        r = self.client.put("/api/view", json={"visible_labels": ["planar_extrusion"]})
        self.assertEqual(r.json()["visible_labels"], ["planar_extrusion"])
        self.assertEqual(self.client.get("/api/visible").json()["ids"], [6, 7, 13, 15])

    def test_toggle(self):
        r = self.client.post("/api/view/labels/lower_z/toggle")
        self.assertEqual(r.json(), {"label": "lower_z", "visible": True})
        self.assertEqual(self.client.post("/api/view/labels/bogus/toggle").status_code, 422)


class TestSelection(ServerTestCase):

    def test_select_and_undo(self):
        r = self.client.post("/api/selection", json={"ids": [6], "scope": "shape"})
        self.assertEqual(r.json()["ids"], [5, 6, 7, 8, 14, 15])
        self.assertTrue(r.json()["changed"])
        r = self.client.post("/api/undo")
        self.assertEqual(r.json()["ids"], [])
        self.assertTrue(r.json()["can_redo"])
        r = self.client.post("/api/redo")
        self.assertEqual(len(r.json()["ids"]), 6)

    def test_modes(self):
        self.client.post("/api/selection", json={"ids": [1, 2]})
        r = self.client.post("/api/selection", json={"ids": [2, 3], "mode": "toggle"})
        self.assertEqual(r.json()["ids"], [1, 3])

    def test_nothing_to_undo(self):
        r = self.client.post("/api/undo")
        self.assertEqual(r.status_code, 200)
        self.assertFalse(r.json()["changed"])
        self.assertEqual(r.json()["message"], "nothing to undo")

    def test_clear(self):
        self.client.post("/api/selection", json={"ids": [1]})
        r = self.client.post("/api/selection/clear")
        self.assertEqual(r.json()["ids"], [])
        self.assertEqual(self.client.get("/api/selection").json()["ids"], [])


class TestEdits(ServerTestCase):

    fixture = LINE

    def _select(self, ids):
        self.client.post("/api/selection", json={"ids": ids})

    def test_merge_delete(self):
        self._select([1, 2])
        r = self.client.post("/api/edit/merge_delete").json()
        self.assertEqual(r["removed"], [1, 2])
        self.assertEqual(r["version"], 1)
        self.assertEqual(self.client.get("/api/vertex/3").json()["prev"], 0)

    def test_empty_selection(self):
        r = self.client.post("/api/edit/translate", json={"offset": [1, 0, 0]})
        self.assertEqual(r.status_code, 400)
        self.assertIn("empty selection", r.json()["detail"])

    def test_delete_nothing(self):
        r = self.client.post("/api/edit/merge_delete")
        self.assertEqual(r.status_code, 200)
        self.assertFalse(r.json()["changed"])
        self.assertEqual(r.json()["version"], 0)

    def test_hole_delete(self):
        self._select([1])
        self.client.post("/api/edit/hole_delete")
        self.assertIsNone(self.client.get("/api/vertex/2").json()["prev"])

    def test_subdivide(self):
        r = self.client.post("/api/edit/subdivide", json={"max_distance": 4.0}).json()
        self.assertEqual(len(r["created"]), 6)
        self.assertTrue(r["changed"])

    def test_subdivide_rejects_zero(self):
        r = self.client.post("/api/edit/subdivide", json={"max_distance": 0})
        self.assertEqual(r.status_code, 400)

    def test_translate(self):
        self._select([1])
        r = self.client.post("/api/edit/translate", json={"offset": [0, 0, 1]}).json()
        self.assertEqual(r["moved"], [1])
        self.assertEqual(self.client.get("/api/vertex/1").json()["z"], 1)

    def test_insert_before(self):
        self._select([2])
        r = self.client.post("/api/edit/insert_before", json={"text": "G1 Z1"}).json()
        self.assertEqual(r["created"], [4])

    def test_insert_parse_error(self):
        self._select([2])
        r = self.client.post("/api/edit/insert_before", json={"text": "G1 Xfoo"})
        self.assertEqual(r.status_code, 422)
        self.assertEqual(self.client.get("/api/version").json()["version"], 0)

    def test_export(self):
        r = self.client.get("/api/gcode")
        self.assertEqual(r.status_code, 200)
        self.assertIn("M83", r.text)
        self.assertIn("X40.000", r.text)


if __name__ == "__main__":
    unittest.main()
