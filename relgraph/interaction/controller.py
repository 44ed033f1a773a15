"""
relgraph/interaction/controller.py — Focus state machine and rebuild loop.

States (derived from the FocusSet size):

    EMPTY         — no focus; the graph shows one isolated node per label.
    SINGLE_FOCUS  — one focus value; the graph is its ego-network.
    UNION_FOCUS   — several focus values; the union of their ego-networks.

Transitions:
    double-click d        FocusSet ← [d]                       requery
    modifier-click d      FocusSet ← FocusSet + [d]            requery
                          (only if d ∈ RootSet and d ∉ FocusSet; else no-op)
    remove focus v        FocusSet ← FocusSet − {v}            requery
    filters_changed       (matching database.table only)       requery
    dataset_changed       FocusSet ← [], new database.table    requery

Every requery fetches the distinct labels first (refreshing RootSet), then,
if FocusSet is non-empty, the OR-composed focus records. Both steps carry the
generation token issued when the requery started. A completion whose token is
not the latest is dropped, so the most recently issued request always wins
regardless of completion order.

Each applied result builds a fresh GraphModel and a fresh LayoutEngine.
FocusSet is the only state carried from one rebuild to the next.

Every method that reads or writes controller state holds one re-entrant lock,
so HTTP handlers on a thread pool see a consistent model. With
AsyncQueryRunner the owning thread runs completions (and therefore layout)
through poll() or drain().

Author: relgraph maintainers
"""

import logging
import threading
from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Any, Optional, Protocol

from relgraph.config import DEFAULT_CONFIG, RelGraphConfig
from relgraph.graph.builder import (
    BuildResult,
    build_graph_model,
    build_isolated_model,
    is_missing,
)
from relgraph.graph.model import GraphModel
from relgraph.interaction.events import FilterBus
from relgraph.interaction.renderer import GestureEvent, GestureKind, Renderer, ViewTransform
from relgraph.layout.force import LayoutEngine
from relgraph.query.composer import Query, QueryComposer
from relgraph.query.service import ErrorCallback, QueryError, SuccessCallback

logger = logging.getLogger(__name__)

NO_CONNECTION_NOTICE = "No database connection."
UNKNOWN_LABEL_NOTICE = "Unknown label"


class QueryRunner(Protocol):
    def submit(self, query: Query, on_success: SuccessCallback, on_error: ErrorCallback): ...


class FocusState(Enum):
    EMPTY = "empty"
    SINGLE_FOCUS = "single_focus"
    UNION_FOCUS = "union_focus"


class InteractionController:
    """
    Translates gestures and bus events into queries and rebuilds.

    Args:
        runner:        Query runner (ImmediateQueryRunner, AsyncQueryRunner, ...).
                       None means no connection: requests surface a notice.
        renderer:      Receives every rebuilt model, notices and errors.
        config:        RelGraphConfig.
        bus:           Optional FilterBus to subscribe to.
        initial_focus: Starting FocusSet.
    """

    def __init__(
        self,
        runner: Optional[QueryRunner],
        renderer: Renderer,
        config: RelGraphConfig = DEFAULT_CONFIG,
        bus: Optional[FilterBus] = None,
        initial_focus: Iterable[str] = (),
    ) -> None:
        self.runner = runner
        self.renderer = renderer
        self.config = config
        self.composer = QueryComposer(config)

        self.database: str = ""
        self.table: str = ""
        self.width: float = config.viewport_width
        self.height: float = config.viewport_height

        self.focus: list[str] = []
        for value in initial_focus:
            if value and value not in self.focus:
                self.focus.append(value)
        self.root_set: set[str] = set()

        self.model: GraphModel = GraphModel()
        self.layout: Optional[LayoutEngine] = None
        self.selected: Optional[str] = None
        self.view: ViewTransform = ViewTransform()
        self.last_error: Optional[QueryError] = None
        self.notices: list[str] = []

        self._generation = 0
        self._lock = threading.RLock()
        self._unsubscribe = []
        if bus is not None:
            self._unsubscribe.append(bus.on_filter_changed(self.on_filter_changed))
            self._unsubscribe.append(bus.on_dataset_changed(self.on_dataset_changed))

    # ── State ─────────────────────────────────────────────────────────────────

    @property
    def state(self) -> FocusState:
        if not self.focus:
            return FocusState.EMPTY
        if len(self.focus) == 1:
            return FocusState.SINGLE_FOCUS
        return FocusState.UNION_FOCUS

    @property
    def generation(self) -> int:
        """Token of the most recently issued request."""
        return self._generation

    def set_viewport(self, width: float, height: float) -> None:
        """Viewport used by the next layout. Does not trigger a rebuild."""
        with self._lock:
            self.width = float(width)
            self.height = float(height)

    def to_dict(self) -> dict[str, Any]:
        """Consistent snapshot of everything a remote renderer needs to paint."""
        with self._lock:
            snapshot = self.model.snapshot()
            error = self.last_error.to_dict() if self.last_error is not None else None
            return {
                "generation": self._generation,
                "state": self.state.value,
                "focus": list(self.focus),
                "selected": self.selected,
                "nodes": snapshot["nodes"],
                "edges": snapshot["edges"],
                "notices": list(self.notices),
                "error": error,
                "view": {"translate": list(self.view.translate), "scale": self.view.scale},
            }

    def close(self) -> None:
        """Unsubscribe from the bus. Results still in flight become stale."""
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        with self._lock:
            self._generation += 1

    # ── Bus events ────────────────────────────────────────────────────────────

    def connect(self, database: str, table: str) -> Optional[int]:
        """Attach to database.table keeping the current (initial) FocusSet, then query."""
        with self._lock:
            self.database = database
            self.table = table
        logger.info("Active dataset is now %s.%s.", database, table)
        return self.requery()

    def on_dataset_changed(self, database: str, tables: Sequence[str]) -> None:
        """Full reset: new dataset, empty FocusSet, refetch labels, rebuild."""
        with self._lock:
            self.focus = []
            self.root_set = set()
            self.selected = None
            self.view = ViewTransform()
            if self.last_error is not None:
                self.last_error = None
                self.renderer.clear_error()
            self._clear_graph()
        self.connect(database, tables[0] if tables else "")

    def on_filter_changed(self, database: str, table: str) -> None:
        """Re-run the current query if the filter targets our table."""
        with self._lock:
            active = (self.database, self.table)
        if (database, table) != active:
            logger.debug("Ignoring filter change on %s.%s.", database, table)
            return
        self.requery()

    # ── Focus transitions ─────────────────────────────────────────────────────

    def double_click(self, node_id: str) -> None:
        """Pivot: the clicked node replaces the whole FocusSet."""
        with self._lock:
            self.focus = [node_id]
        self.requery()

    def modifier_click(self, node_id: str) -> bool:
        """
        Add node_id to the FocusSet if it is a root label not already focused.

        Returns True if the FocusSet changed (and a requery was issued).
        """
        with self._lock:
            if node_id not in self.root_set or node_id in self.focus:
                logger.debug("Modifier-click on '%s' ignored.", node_id)
                return False
            self.focus.append(node_id)
        self.requery()
        return True

    def click(self, node_id: str) -> None:
        """Plain click selects a node; it does not change the query."""
        with self._lock:
            self.selected = node_id

    def remove_focus(self, value: str) -> bool:
        """
        Drop value from the FocusSet (external filter removal).

        An emptied FocusSet falls back to the distinct-labels graph.
        Returns True if value was focused.
        """
        with self._lock:
            if value not in self.focus:
                return False
            self.focus.remove(value)
        self.requery()
        return True

    # ── Gestures ──────────────────────────────────────────────────────────────

    def dispatch(self, event: GestureEvent) -> None:
        """Route a renderer gesture to the matching handler."""
        kind = event.kind
        if kind is GestureKind.PAN_ZOOM:
            with self._lock:
                self.view = ViewTransform(translate=tuple(event.translate), scale=event.scale)
            return
        if event.node_id is None:
            raise ValueError(f"{kind.value} gesture needs a node_id.")

        if kind is GestureKind.CLICK:
            self.click(event.node_id)
        elif kind is GestureKind.DOUBLE_CLICK:
            self.double_click(event.node_id)
        elif kind is GestureKind.MODIFIER_CLICK:
            self.modifier_click(event.node_id)
        elif kind in (GestureKind.DRAG_START, GestureKind.DRAG_MOVE, GestureKind.DRAG_END):
            self._drag(event)

    def _drag(self, event: GestureEvent) -> None:
        if event.kind is GestureKind.DRAG_MOVE and (event.x is None or event.y is None):
            raise ValueError("drag_move gesture needs x and y.")
        with self._lock:
            # Membership check and drag must see the same model and engine.
            if self.layout is None or event.node_id not in self.model:
                logger.debug("Drag on '%s' ignored: node not in current graph.", event.node_id)
                return
            if event.kind is GestureKind.DRAG_START:
                self.layout.drag_start(event.node_id)
            elif event.kind is GestureKind.DRAG_MOVE:
                self.layout.drag_move(event.node_id, event.x, event.y)
            else:
                self.layout.drag_end(event.node_id)

    # ── Query cycle ───────────────────────────────────────────────────────────

    def requery(self) -> Optional[int]:
        """
        Issue a new request for the current FocusSet.

        Returns the generation token of the new request, or None if nothing
        was issued (no connection or no active table).
        """
        with self._lock:
            if self.runner is None:
                self._clear_graph()
                self.notices = [NO_CONNECTION_NOTICE]
                self.renderer.show_notice(NO_CONNECTION_NOTICE)
                return None
            if not self.table:
                logger.debug("requery() without an active table; nothing to do.")
                return None
            self.focus = [v for v in self.focus if v]
            if self.last_error is not None:
                self.last_error = None
                self.renderer.clear_error()
            self._generation += 1
            generation = self._generation
            focus = tuple(self.focus)
            query = self.composer.distinct_labels(self.database, self.table)

        logger.debug("Request %d issued (focus=%s).", generation, list(focus))
        self.runner.submit(
            query,
            lambda labels: self._on_labels(generation, focus, labels),
            lambda error: self._on_error(generation, error),
        )
        return generation

    def _is_stale(self, generation: int) -> bool:
        if generation != self._generation:
            logger.debug(
                "Discarding result of request %d (latest is %d).", generation, self._generation
            )
            return True
        return False

    def _on_labels(self, generation: int, focus: tuple[str, ...], labels: list) -> None:
        with self._lock:
            if self._is_stale(generation):
                return
            self.root_set = {str(v) for v in labels if not is_missing(v)}
            if not focus:
                result = build_isolated_model(labels, root_set=self.root_set, config=self.config)
                self._apply(generation, result)
                return
            query = self.composer.focus_records(self.database, self.table, focus)

        self.runner.submit(
            query,
            lambda records: self._on_records(generation, focus, records),
            lambda error: self._on_error(generation, error),
        )

    def _on_records(self, generation: int, focus: tuple[str, ...], records: list) -> None:
        with self._lock:
            if self._is_stale(generation):
                return
            result = build_graph_model(records, focus, self.root_set, self.config)
            extra = [] if records else [UNKNOWN_LABEL_NOTICE]
            self._apply(generation, result, extra)

    def _apply(self, generation: int, result: BuildResult, extra_notices: Sequence[str] = ()) -> None:
        """Lay out and hand a freshly built model to the renderer. Caller holds the lock."""
        layout = LayoutEngine(self.config)
        layout.run(result.model, self.width, self.height)

        self.model = result.model
        self.layout = layout
        if self.selected is not None and self.selected not in self.model:
            self.selected = None
        self.notices = list(extra_notices) + list(result.notices)

        self.renderer.render(self.model)
        for notice in self.notices:
            self.renderer.show_notice(notice)
        logger.info(
            "Request %d applied: %s, %d nodes, %d edges.",
            generation,
            self.state.value,
            len(self.model.nodes),
            len(self.model.edges),
        )

    def _on_error(self, generation: int, error: QueryError) -> None:
        with self._lock:
            if self._is_stale(generation):
                return
            logger.warning("Request %d failed: %s", generation, error.message)
            self.last_error = error
            self._clear_graph()
            self.renderer.show_error(error.message, error.trace)

    def _clear_graph(self) -> None:
        """Replace the graph with an empty one and render it. Caller holds the lock."""
        self.model = GraphModel()
        self.layout = None
        self.notices = []
        self.renderer.render(self.model)
