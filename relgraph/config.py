"""
relgraph/config.py — All tunable parameters for relgraph.

Every cap, force constant and field name lives here so that calibration
changes are a single-file diff. Components take a RelGraphConfig argument
and default to DEFAULT_CONFIG.

Author: relgraph maintainers
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RelGraphConfig:
    """
    Immutable configuration for the graph build / layout / interaction cycle.

    Override by constructing a new RelGraphConfig with the desired values,
    or with dataclasses.replace(DEFAULT_CONFIG, ...).
    """

    # ── Record fields ─────────────────────────────────────────────────────────
    label_field: str = "label"
    # Primary entity identifier on every record. Node ids are values of this field.

    related_field: str = "relatedEntities"
    # Ordered list of related identifiers on a record. Each entry becomes an
    # edge label → entity.

    # ── Truncation caps (GraphBuilder) ────────────────────────────────────────
    max_records: int = 1000
    # Records beyond this count are dropped (first-N) and a notice is emitted.

    max_related_entities: int = 1000
    # Related entities per record beyond this count are dropped (first-N).

    # ── Force simulation (LayoutEngine) ───────────────────────────────────────
    repulsion: float = -300.0
    # Node charge. Negative values repel; magnitude scales the inverse-square force.

    spring_length: float = 100.0
    # Rest length of every edge spring, in layout units.

    link_strength: float = 1.0
    # Spring stiffness in [0, 1].

    gravity: float = 0.05
    # Pull of every node toward the viewport centre.

    friction: float = 0.9
    # Velocity retention per tick (Verlet damping).

    initial_alpha: float = 0.1
    # Starting "temperature" of the simulation.

    alpha_decay: float = 0.99
    # Alpha is multiplied by this after every tick. Must lie in (0, 1).

    convergence_threshold: float = 0.01
    # Simulation stops once alpha <= this value.
    # With the defaults above this is reached after ~230 ticks.

    max_iterations: int = 1000
    # Hard ceiling on ticks, independent of convergence rate.

    theta: float = 0.8
    # Barnes–Hut opening criterion for repulsion. A quadtree cell of width w
    # whose centre of charge lies at distance d is treated as one body when
    # w / d < theta. 0 computes every pair exactly.

    layout_seed: int = 42
    # Seed for the initial random placement. Same seed + same input order
    # gives identical positions.

    # ── Viewport ──────────────────────────────────────────────────────────────
    viewport_width: float = 600.0
    viewport_height: float = 300.0

    # ── Query service ─────────────────────────────────────────────────────────
    query_timeout_sec: float = 30.0
    # Timeout for HttpQueryService requests.

    query_workers: int = 2
    # Thread pool size for AsyncQueryRunner.

    def __post_init__(self) -> None:
        if self.max_records <= 0 or self.max_related_entities <= 0:
            raise ValueError("Truncation caps must be positive.")
        if not 0.0 < self.alpha_decay < 1.0:
            raise ValueError(f"alpha_decay must lie in (0, 1), got {self.alpha_decay}.")
        if self.max_iterations < 0:
            raise ValueError("max_iterations must be >= 0.")
        if self.theta < 0:
            raise ValueError(f"theta must be >= 0, got {self.theta}.")
        if self.viewport_width <= 0 or self.viewport_height <= 0:
            raise ValueError("Viewport extents must be positive.")


# Singleton default — import this everywhere instead of constructing anew.
DEFAULT_CONFIG = RelGraphConfig()
