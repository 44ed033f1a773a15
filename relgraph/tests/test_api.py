"""
relgraph/tests/test_api.py — Tests for relgraph.api.endpoints.

Tests verify:
- Health and graph snapshot routes.
- Gestures pivot, extend and remove focus; bad gestures are rejected.
- Bus events posted over HTTP reach the controller.
- Every route returns the controller's own locked snapshot.

Skipped when fastapi (or httpx, needed by TestClient) is not installed.
"""

import pytest

pytest.importorskip("fastapi")
pytest.importorskip("httpx")

from fastapi.testclient import TestClient  # noqa: E402

from relgraph import __version__  # noqa: E402
from relgraph.api.endpoints import create_app  # noqa: E402
from relgraph.interaction.controller import InteractionController  # noqa: E402
from relgraph.interaction.renderer import SnapshotRenderer  # noqa: E402
from relgraph.query.service import ImmediateQueryRunner  # noqa: E402


@pytest.fixture
def controller(people_service, small_config):
    ctrl = InteractionController(ImmediateQueryRunner(people_service), SnapshotRenderer(), small_config)
    ctrl.connect("db", "people")
    return ctrl


@pytest.fixture
def client(controller):
    return TestClient(create_app(controller))


# ── System + graph ────────────────────────────────────────────────────────────

class TestGraphRoutes:
    """Read-only routes."""

    def test_health(self, client):
        """Health returns status and package version."""
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": __version__}

    def test_graph_starts_with_all_labels(self, client):
        """Before any pivot the graph lists every label."""
        body = client.get("/api/v1/graph").json()
        assert body["state"] == "empty"
        assert [n["id"] for n in body["nodes"]] == ["alice", "bob", "carol", "dave"]
        assert body["edges"] == []
        assert body["error"] is None

    def test_graph_matches_controller_snapshot(self, client, controller):
        """The route body is exactly controller.to_dict()."""
        assert client.get("/api/v1/graph").json() == controller.to_dict()


# ── Gestures ──────────────────────────────────────────────────────────────────

class TestGestureRoutes:
    """POST /gestures and focus removal."""

    def test_double_click_gesture_pivots(self, client):
        """double_click returns the pinned ego-network."""
        resp = client.post("/api/v1/gestures", json={"kind": "double_click", "node_id": "alice"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["focus"] == ["alice"]
        assert body["state"] == "single_focus"
        assert body["edges"] == [
            {"source": "alice", "target": "bob", "weight": 1},
            {"source": "alice", "target": "carol", "weight": 1},
        ]
        assert all(n["pinned"] for n in body["nodes"])

    def test_modifier_click_then_remove_focus(self, client):
        """modifier_click extends focus; DELETE removes one value or 404s."""
        client.post("/api/v1/gestures", json={"kind": "double_click", "node_id": "alice"})
        client.post("/api/v1/gestures", json={"kind": "modifier_click", "node_id": "dave"})
        assert client.get("/api/v1/focus").json() == {"focus": ["alice", "dave"], "state": "union_focus"}

        body = client.delete("/api/v1/focus/alice").json()
        assert body["focus"] == ["dave"]
        assert client.delete("/api/v1/focus/alice").status_code == 404

    def test_pan_zoom_gesture(self, client):
        """pan_zoom updates the view transform."""
        body = client.post(
            "/api/v1/gestures", json={"kind": "pan_zoom", "translate": [4, 5], "scale": 2}
        ).json()
        assert body["view"] == {"translate": [4.0, 5.0], "scale": 2.0}

    def test_drag_gesture_moves_node(self, client):
        """drag_move places the node at the given coordinates."""
        body = client.post(
            "/api/v1/gestures", json={"kind": "drag_move", "node_id": "bob", "x": 7, "y": 9}
        ).json()
        bob = next(n for n in body["nodes"] if n["id"] == "bob")
        assert (bob["x"], bob["y"]) == (7.0, 9.0)

    def test_bad_gestures(self, client):
        """Unknown kinds are 422; missing node ids are 400."""
        assert client.post("/api/v1/gestures", json={"kind": "tickle"}).status_code == 422
        assert client.post("/api/v1/gestures", json={"kind": "click"}).status_code == 400


# ── Events ────────────────────────────────────────────────────────────────────

class TestEventRoutes:
    """Bus events over HTTP."""

    def test_filter_changed_event(self, client, controller):
        """Only a filter change on the active table requeries."""
        generation = controller.generation
        client.post("/api/v1/events/filter-changed", json={"database": "db", "table": "people"})
        assert controller.generation == generation + 1
        client.post("/api/v1/events/filter-changed", json={"database": "db", "table": "other"})
        assert controller.generation == generation + 1

    def test_dataset_changed_to_missing_table_reports_error(self, client):
        """A dataset whose table does not exist shows an empty graph with the error."""
        client.post("/api/v1/gestures", json={"kind": "double_click", "node_id": "alice"})
        body = client.post(
            "/api/v1/events/dataset-changed", json={"database": "db", "tables": ["ghost"]}
        ).json()
        assert body["focus"] == []
        assert body["nodes"] == []
        assert "does not exist" in body["error"]["message"]

    def test_dataset_changed_without_tables(self, client):
        """An empty table list clears the graph and notices."""
        client.post("/api/v1/gestures", json={"kind": "double_click", "node_id": "alice"})
        body = client.post(
            "/api/v1/events/dataset-changed", json={"database": "db2", "tables": []}
        ).json()
        assert body["nodes"] == []
        assert body["edges"] == []
        assert body["notices"] == []
