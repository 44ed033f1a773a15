"""
relgraph/tests/test_layout.py — Tests for relgraph.layout.force.

Tests verify:
- The tick loop stops at the convergence threshold or the iteration ceiling.
- Every node is pinned after run().
- Node 0 sits exactly at the viewport centre.
- Same seed + same input order → identical positions.
- Barnes–Hut charge matches exact pairwise charge at theta=0 and stays close
  at the default theta.
- A 10k-node graph lays out in bounded time.
- Drag assigns positions directly and pins the node.
"""

import dataclasses
import math
import time

import numpy as np
import pytest

from relgraph.config import DEFAULT_CONFIG
from relgraph.graph.builder import build_graph_model
from relgraph.graph.model import ColorGroup, GraphModel, Node
from relgraph.layout.force import LayoutEngine, barnes_hut_charge


# ── Helpers ───────────────────────────────────────────────────────────────────

def make_star_model(spokes: int = 6) -> GraphModel:
    """hub → s0..sN plus a second record hanging off s0."""
    records = [
        {"label": "hub", "relatedEntities": [f"s{i}" for i in range(spokes)]},
        {"label": "s0", "relatedEntities": ["leaf"]},
    ]
    return build_graph_model(records, focus=["hub"]).model


def exact_charge(pos: np.ndarray, targets: np.ndarray, strength: float) -> np.ndarray:
    """All-pairs inverse-square charge with the same distance clamp."""
    diff = pos[None, :, :] - pos[targets][:, None, :]
    dist_sq = np.maximum((diff ** 2).sum(axis=2), 1.0)
    return (diff * (strength / dist_sq)[:, :, None]).sum(axis=1)


# ── Termination ───────────────────────────────────────────────────────────────

class TestTermination:
    """The tick loop is bounded by alpha and by max_iterations."""

    def test_default_schedule_converges_before_ceiling(self, small_config):
        """0.1 × 0.99^n drops to 0.01 after 230 ticks."""
        result = LayoutEngine(small_config).run(make_star_model())
        assert result.converged
        assert result.ticks == 230
        assert result.final_alpha <= small_config.convergence_threshold

    def test_iteration_ceiling_bounds_work(self, small_config):
        """A threshold that is never reached stops at max_iterations."""
        config = dataclasses.replace(small_config, convergence_threshold=1e-12, max_iterations=25)
        result = LayoutEngine(config).run(make_star_model())
        assert result.ticks == 25
        assert not result.converged

    def test_zero_iterations_still_pins(self, small_config):
        """max_iterations=0 runs no ticks but still pins every node."""
        config = dataclasses.replace(small_config, max_iterations=0)
        model = make_star_model()
        result = LayoutEngine(config).run(model)
        assert result.ticks == 0
        assert all(n.pinned for n in model.nodes)

    def test_empty_model(self, small_config):
        """An empty model needs no ticks."""
        result = LayoutEngine(small_config).run(GraphModel())
        assert result.ticks == 0
        assert result.positions == {}


# ── Post-conditions ───────────────────────────────────────────────────────────

class TestPostConditions:
    """State of the model after run()."""

    def test_all_nodes_pinned_after_run(self, small_config):
        """Every node is frozen once the layout finishes."""
        model = make_star_model()
        LayoutEngine(small_config).run(model)
        assert all(n.pinned for n in model.nodes)

    def test_anchor_node_at_viewport_centre(self, small_config):
        """Node 0 sits exactly at (width/2, height/2)."""
        model = make_star_model()
        LayoutEngine(small_config).run(model, width=500, height=250)
        assert model.nodes[0].position == (250.0, 125.0)

    def test_positions_written_back_and_returned(self, small_config):
        """Returned positions equal the coordinates stored on the nodes."""
        model = make_star_model()
        result = LayoutEngine(small_config).run(model)
        for node in model.nodes:
            assert result.positions[node.id] == node.position
            assert math.isfinite(node.x) and math.isfinite(node.y)

    def test_nodes_are_spread_out(self, small_config):
        """Charge keeps every pair of nodes apart."""
        model = make_star_model()
        LayoutEngine(small_config).run(model)
        pos = np.array([n.position for n in model.nodes])
        dists = np.sqrt(((pos[:, None, :] - pos[None, :, :]) ** 2).sum(axis=2))
        off_diagonal = dists[~np.eye(len(pos), dtype=bool)]
        assert off_diagonal.min() > 1.0

    def test_spokes_settle_near_spring_length(self, small_config):
        """Connected spokes end up within a loose band around spring_length of the hub."""
        model = make_star_model()
        LayoutEngine(small_config).run(model)
        hub = np.array(model.node("hub").position)
        for i in range(6):
            d = np.linalg.norm(np.array(model.node(f"s{i}").position) - hub)
            assert 0.3 * small_config.spring_length < d < 3.0 * small_config.spring_length

    def test_isolated_nodes_only(self, small_config):
        """A graph without edges still converges."""
        model = GraphModel(nodes=[Node(f"n{i}", ColorGroup.ROOT_MEMBER) for i in range(5)])
        result = LayoutEngine(small_config).run(model)
        assert result.converged
        assert all(n.pinned for n in model.nodes)

    def test_prepinned_node_keeps_position(self, small_config):
        """Nodes pinned on entry are excluded from physics."""
        model = make_star_model()
        leaf = model.node("leaf")
        leaf.x, leaf.y, leaf.pinned = 10.0, 20.0, True
        LayoutEngine(small_config).run(model)
        assert leaf.position == (10.0, 20.0)


# ── Determinism ───────────────────────────────────────────────────────────────

class TestDeterminism:
    """Initial placement is seeded."""

    def test_same_seed_same_positions(self, small_config):
        """Two runs over the same input agree exactly."""
        a = LayoutEngine(small_config).run(make_star_model()).positions
        b = LayoutEngine(small_config).run(make_star_model()).positions
        assert a == b

    def test_different_seed_different_positions(self, small_config):
        """Changing layout_seed moves the result."""
        a = LayoutEngine(small_config).run(make_star_model()).positions
        other = dataclasses.replace(small_config, layout_seed=small_config.layout_seed + 1)
        b = LayoutEngine(other).run(make_star_model()).positions
        assert a != b


# ── Barnes–Hut charge ─────────────────────────────────────────────────────────

class TestBarnesHutCharge:
    """Quadtree approximation of the inverse-square repulsion."""

    def test_theta_zero_is_exact(self):
        """With theta=0 every pair is visited, so the result equals all-pairs."""
        pos = np.random.default_rng(1).random((60, 2)) * [600.0, 300.0]
        targets = np.arange(60)
        approx = barnes_hut_charge(pos, targets, -30.0, theta=0.0)
        assert approx == pytest.approx(exact_charge(pos, targets, -30.0))

    def test_default_theta_is_close_to_exact(self):
        """theta=0.8 stays within a few percent of the exact force field."""
        pos = np.random.default_rng(2).random((800, 2)) * [600.0, 300.0]
        targets = np.arange(800)
        exact = exact_charge(pos, targets, -30.0)
        approx = barnes_hut_charge(pos, targets, -30.0, theta=DEFAULT_CONFIG.theta)
        error = np.linalg.norm(approx - exact) / np.linalg.norm(exact)
        assert error < 0.1

    def test_only_targets_receive_force(self):
        """Rows line up with the targets argument; other nodes still exert charge."""
        pos = np.array([[0.0, 0.0], [10.0, 0.0], [20.0, 0.0]])
        force = barnes_hut_charge(pos, np.array([2]), -1.0, theta=0.0)
        assert force.shape == (1, 2)
        # Both neighbours sit to the left of node 2.
        assert force[0, 0] == pytest.approx(exact_charge(pos, np.array([2]), -1.0)[0, 0])
        assert force[0, 0] > 0

    def test_coincident_nodes_are_finite(self):
        """Nodes on top of each other produce no NaN or infinite kicks."""
        pos = np.zeros((5, 2))
        force = barnes_hut_charge(pos, np.arange(5), -300.0, theta=0.8)
        assert np.isfinite(force).all()

    def test_no_targets(self):
        """An empty target list returns an empty (0, 2) array."""
        force = barnes_hut_charge(np.ones((3, 2)), np.array([], dtype=int), -1.0, 0.8)
        assert force.shape == (0, 2)


# ── Scale ─────────────────────────────────────────────────────────────────────

class TestScale:
    """Layout of large ego-network unions."""

    def test_ten_thousand_nodes_within_budget(self):
        """10 records × 1000 related entities (10,010 nodes) finish the default schedule."""
        records = [
            {"label": f"hub{h}", "relatedEntities": [f"e{h}_{i}" for i in range(1000)]}
            for h in range(10)
        ]
        model = build_graph_model(records, focus=["hub0"]).model
        assert len(model.nodes) == 10_010

        started = time.perf_counter()
        result = LayoutEngine(DEFAULT_CONFIG).run(model)
        elapsed = time.perf_counter() - started

        assert result.ticks == 230
        assert all(n.pinned for n in model.nodes)
        assert all(math.isfinite(n.x) and math.isfinite(n.y) for n in model.nodes)
        assert elapsed < 120.0, f"layout took {elapsed:.1f}s"


# ── Drag ──────────────────────────────────────────────────────────────────────

class TestDrag:
    """Direct position overrides after layout."""

    def test_drag_moves_and_pins_node(self, small_config):
        """drag_move assigns the position; release keeps the post-layout pin."""
        model = make_star_model()
        engine = LayoutEngine(small_config)
        engine.run(model)

        engine.drag_start("s3")
        assert engine.is_dragging("s3")
        engine.drag_move("s3", 12.5, 34.0)
        assert model.node("s3").position == (12.5, 34.0)
        assert model.node("s3").pinned
        engine.drag_end("s3")
        assert not engine.is_dragging("s3")
        # Pinned by the finished layout, so it stays pinned after release.
        assert model.node("s3").pinned
        assert model.node("s3").position == (12.5, 34.0)

    def test_drag_end_restores_unpinned_state(self, small_config):
        """A node that was free before the drag is free again after it."""
        model = GraphModel(nodes=[Node("a", ColorGroup.OTHER), Node("b", ColorGroup.OTHER)])
        engine = LayoutEngine(small_config)
        engine.run(model)
        model.node("b").pinned = False

        engine.drag_start("b")
        assert model.node("b").pinned
        engine.drag_end("b")
        assert not model.node("b").pinned

    def test_drag_unknown_node_raises(self, small_config):
        """Dragging a node outside the model is a KeyError."""
        engine = LayoutEngine(small_config)
        engine.run(make_star_model())
        with pytest.raises(KeyError):
            engine.drag_start("nobody")

    def test_drag_before_run_raises(self):
        """Dragging before any layout is a RuntimeError."""
        with pytest.raises(RuntimeError):
            LayoutEngine(DEFAULT_CONFIG).drag_start("hub")
