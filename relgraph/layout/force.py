"""
relgraph/layout/force.py — Bounded force-directed layout.

A Verlet-integrated spring/charge simulation over a GraphModel:
    - Springs:  every edge pulls its endpoints toward config.spring_length.
    - Charge:   every free node is pushed away from every other node by an
                inverse-square force scaled by config.repulsion. Distant groups
                of nodes are summarised by a Barnes–Hut quadtree (config.theta).
    - Gravity:  every node is pulled toward the viewport centre.

All three forces are scaled by alpha, a cooling parameter multiplied by
config.alpha_decay after every tick. The loop ends when alpha drops to
config.convergence_threshold or after config.max_iterations ticks, whichever
comes first, so work is bounded regardless of topology.

The node at index 0 is the anchor: it is pinned to the exact viewport centre
after every tick so the primary focal entity stays centred.

Determinism: initial placement draws from numpy.random.default_rng(seed).
Same seed + same node order gives identical positions; any other change in
input ordering moves the result.

Author: relgraph maintainers
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from relgraph.config import DEFAULT_CONFIG, RelGraphConfig
from relgraph.graph.model import GraphModel

logger = logging.getLogger(__name__)

# Squared distances below this are clamped when computing charge, so
# near-coincident nodes do not receive unbounded kicks.
_MIN_DISTANCE_SQ = 1.0

# Deepest quadtree level. 4**10 leaf cells covers any graph within the caps.
_MAX_DEPTH = 10


def _quadtree_depth(n: int) -> int:
    """Leaf level that gives roughly one node per leaf cell."""
    return min(_MAX_DEPTH, max(1, math.ceil(math.log(max(n, 2), 4))))


def barnes_hut_charge(
    pos: np.ndarray,
    targets: np.ndarray,
    strength: float,
    theta: float,
) -> np.ndarray:
    """
    Inverse-square charge on each target node, approximated with a quadtree.

    Every node in pos carries unit charge. For each target the tree is walked
    from the root: a cell of width w whose centre of charge lies at squared
    distance d² acts as a single body (charge = node count) when
    w² < theta² × d². Otherwise it is opened, and leaf cells that are still
    too close interact node by node. Squared distances are clamped to
    _MIN_DISTANCE_SQ.

    The quadtree is a complete grid pyramid over the bounding square, so each
    level is summarised with np.bincount and all (target, cell) pairs of a
    level are visited in one vectorised step. Work per tick is O(N log N).

    Args:
        pos:      (N, 2) node positions. All nodes exert charge.
        targets:  Indices of the nodes that receive charge.
        strength: alpha × repulsion.
        theta:    Opening criterion. 0 visits every pair exactly.

    Returns:
        (len(targets), 2) array; the Verlet previous position of targets[i]
        moves by minus row i.
    """
    n = len(pos)
    targets = np.asarray(targets, dtype=np.int64)
    if n < 2 or not len(targets):
        return np.zeros((len(targets), 2))

    depth = _quadtree_depth(n)
    side = 1 << depth
    origin = pos.min(axis=0)
    extent = float((pos.max(axis=0) - origin).max()) or 1.0
    cell = np.clip(np.floor((pos - origin) / extent * side).astype(np.int64), 0, side - 1)
    ix, iy = cell[:, 0], cell[:, 1]

    # ── Pyramid: node count and centre of charge per cell, per level ─────────
    counts, com_x, com_y = [], [], []
    for level in range(depth + 1):
        shift = depth - level
        ids = (iy >> shift) * (1 << level) + (ix >> shift)
        size = 1 << (2 * level)
        count = np.bincount(ids, minlength=size).astype(float)
        with np.errstate(invalid="ignore", divide="ignore"):
            # Empty cells become NaN; they are dropped before being read.
            com_x.append(np.bincount(ids, weights=pos[:, 0], minlength=size) / count)
            com_y.append(np.bincount(ids, weights=pos[:, 1], minlength=size) / count)
        counts.append(count)
    leaf_ids = ids
    leaf_count = counts[depth].astype(np.int64)
    leaf_start = np.cumsum(leaf_count) - leaf_count
    leaf_order = np.argsort(leaf_ids, kind="stable")

    force_x = np.zeros(n)
    force_y = np.zeros(n)
    theta_sq = theta * theta

    # ── Walk: one frontier of (target, cell) pairs per level ──────────────────
    qi = targets
    qc = np.zeros(len(qi), dtype=np.int64)
    for level in range(depth + 1):
        mass = counts[level][qc]
        live = mass > 0
        qi, qc, mass = qi[live], qc[live], mass[live]
        if not len(qi):
            break
        dx = com_x[level][qc] - pos[qi, 0]
        dy = com_y[level][qc] - pos[qi, 1]
        dist_sq = dx * dx + dy * dy
        width = extent / (1 << level)
        far = width * width < theta_sq * dist_sq

        k = strength * mass[far] / np.maximum(dist_sq[far], _MIN_DISTANCE_SQ)
        force_x += np.bincount(qi[far], weights=dx[far] * k, minlength=n)
        force_y += np.bincount(qi[far], weights=dy[far] * k, minlength=n)

        qi, qc = qi[~far], qc[~far]
        if level < depth:
            row = 1 << level
            first_child = (qc // row) * (4 * row) + (qc % row) * 2
            qc = (first_child[:, None] + np.array([0, 1, 2 * row, 2 * row + 1])).ravel()
            qi = np.repeat(qi, 4)

    # ── Leaves still too close: node by node ──────────────────────────────────
    if len(qi):
        members = leaf_count[qc]
        src = np.repeat(qi, members)
        offset = np.arange(members.sum()) - np.repeat(np.cumsum(members) - members, members)
        other = leaf_order[np.repeat(leaf_start[qc], members) + offset]
        keep = other != src
        src, other = src[keep], other[keep]
        dx = pos[other, 0] - pos[src, 0]
        dy = pos[other, 1] - pos[src, 1]
        k = strength / np.maximum(dx * dx + dy * dy, _MIN_DISTANCE_SQ)
        force_x += np.bincount(src, weights=dx * k, minlength=n)
        force_y += np.bincount(src, weights=dy * k, minlength=n)

    return np.column_stack((force_x[targets], force_y[targets]))


@dataclass
class LayoutResult:
    """
    Outcome of a LayoutEngine.run() call.

    Fields:
        ticks:       Number of simulation ticks executed.
        final_alpha: Alpha after the last tick.
        converged:   True if alpha reached the threshold before the ceiling.
        positions:   node_id → (x, y).
    """

    ticks: int
    final_alpha: float
    converged: bool
    positions: dict[str, tuple[float, float]] = field(default_factory=dict)


class LayoutEngine:
    """
    Runs the force simulation to completion on a single GraphModel.

    One engine instance belongs to one GraphModel; the controller discards
    both on every rebuild. After run() every node is pinned. The drag_*
    methods then let the renderer move individual nodes directly.
    """

    def __init__(self, config: RelGraphConfig = DEFAULT_CONFIG) -> None:
        self.config = config
        self.model: Optional[GraphModel] = None
        self.width: float = config.viewport_width
        self.height: float = config.viewport_height
        self._dragging: dict[str, bool] = {}

    @property
    def center(self) -> tuple[float, float]:
        return (self.width / 2.0, self.height / 2.0)

    # ── Simulation ────────────────────────────────────────────────────────────

    def run(
        self,
        model: GraphModel,
        width: Optional[float] = None,
        height: Optional[float] = None,
    ) -> LayoutResult:
        """
        Lay out model in a width × height viewport and pin every node.

        Blocks until convergence or the iteration ceiling. Positions are
        written back onto the model's Node objects and also returned.

        Nodes already pinned on entry keep their current position and are
        excluded from physics for the whole run.
        """
        cfg = self.config
        self.model = model
        self.width = float(width if width is not None else cfg.viewport_width)
        self.height = float(height if height is not None else cfg.viewport_height)
        self._dragging = {}

        n = len(model.nodes)
        if n == 0:
            logger.debug("Layout skipped: empty graph.")
            return LayoutResult(ticks=0, final_alpha=cfg.initial_alpha, converged=True)

        center = np.array(self.center)
        fixed = np.array([node.pinned for node in model.nodes], dtype=bool)
        pos = self._initial_positions(model, fixed)
        prev = pos.copy()

        edges = np.array(model.edge_index_pairs(), dtype=np.int64).reshape(-1, 2)
        weights = np.bincount(edges.ravel(), minlength=n).astype(float)

        alpha = cfg.initial_alpha
        ticks = 0
        while alpha > cfg.convergence_threshold and ticks < cfg.max_iterations:
            self._tick(pos, prev, fixed, edges, weights, center, alpha)
            # Anchor rule: overrides physics for node 0 only.
            pos[0] = center
            prev[0] = center
            alpha *= cfg.alpha_decay
            ticks += 1

        converged = alpha <= cfg.convergence_threshold
        positions: dict[str, tuple[float, float]] = {}
        for i, node in enumerate(model.nodes):
            node.x = float(pos[i, 0])
            node.y = float(pos[i, 1])
            node.pinned = True
            positions[node.id] = (node.x, node.y)

        logger.info(
            "Layout complete: %d nodes, %d edges, %d ticks, alpha=%.4f (%s).",
            n,
            len(edges),
            ticks,
            alpha,
            "converged" if converged else "iteration ceiling",
        )
        return LayoutResult(
            ticks=ticks, final_alpha=alpha, converged=converged, positions=positions
        )

    def _initial_positions(self, model: GraphModel, fixed: np.ndarray) -> np.ndarray:
        rng = np.random.default_rng(self.config.layout_seed)
        pos = rng.random((len(model.nodes), 2)) * np.array([self.width, self.height])
        for i in np.flatnonzero(fixed):
            pos[i] = model.nodes[i].position
        pos[0] = self.center
        return pos

    def _tick(
        self,
        pos: np.ndarray,
        prev: np.ndarray,
        fixed: np.ndarray,
        edges: np.ndarray,
        weights: np.ndarray,
        center: np.ndarray,
        alpha: float,
    ) -> None:
        """Advance the simulation one step, mutating pos and prev in place."""
        cfg = self.config

        # ── Springs ───────────────────────────────────────────────────────────
        if len(edges):
            src, tgt = edges[:, 0], edges[:, 1]
            delta = pos[tgt] - pos[src]
            length = np.sqrt((delta ** 2).sum(axis=1))
            live = length > 0
            if live.any():
                src, tgt, delta, length = src[live], tgt[live], delta[live], length[live]
                scale = alpha * cfg.link_strength * (length - cfg.spring_length) / length
                delta = delta * scale[:, None]
                # Lighter endpoint moves more.
                share = weights[src] / (weights[tgt] + weights[src])
                np.add.at(pos, tgt, -delta * share[:, None])
                np.add.at(pos, src, delta * (1.0 - share)[:, None])

        # ── Gravity ───────────────────────────────────────────────────────────
        k = alpha * cfg.gravity
        if k:
            pos += (center - pos) * k

        # ── Charge ────────────────────────────────────────────────────────────
        if cfg.repulsion:
            free = np.flatnonzero(~fixed)
            prev[free] -= barnes_hut_charge(pos, free, alpha * cfg.repulsion, cfg.theta)

        # ── Verlet integration ────────────────────────────────────────────────
        velocity = (prev - pos) * cfg.friction
        moved = pos - velocity
        prev[~fixed] = pos[~fixed]
        pos[~fixed] = moved[~fixed]
        pos[fixed] = prev[fixed]

    # ── Interactive override ──────────────────────────────────────────────────

    def drag_start(self, node_id: str) -> None:
        """Suspend physics on node_id until drag_end()."""
        node = self._require_node(node_id)
        self._dragging[node_id] = node.pinned
        node.pinned = True

    def drag_move(self, node_id: str, x: float, y: float) -> None:
        """Assign node_id's position directly."""
        node = self._require_node(node_id)
        if node_id not in self._dragging:
            self._dragging[node_id] = node.pinned
        node.pinned = True
        node.x = float(x)
        node.y = float(y)

    def drag_end(self, node_id: str) -> None:
        """Release node_id, restoring the pin state it had before the drag."""
        node = self._require_node(node_id)
        was_pinned = self._dragging.pop(node_id, node.pinned)
        node.pinned = was_pinned

    def is_dragging(self, node_id: str) -> bool:
        return node_id in self._dragging

    def _require_node(self, node_id: str):
        if self.model is None:
            raise RuntimeError("LayoutEngine.run() has not been called.")
        node = self.model.node(node_id)
        if node is None:
            raise KeyError(f"Unknown node '{node_id}'.")
        return node
