"""
relgraph/api/endpoints.py — FastAPI surface for a remote renderer.

A browser (or any client) pulls the current GraphModel snapshot and pushes
gestures and bus events back. The controller does all the work; these routes
only translate HTTP into controller calls.

Endpoint summary:
    GET    /api/v1/health                    — Liveness check.
    GET    /api/v1/graph                     — Current snapshot + focus + notices.
    GET    /api/v1/focus                     — FocusSet and focus state.
    DELETE /api/v1/focus/{value}             — Remove one focus value.
    POST   /api/v1/gestures                  — Report a renderer gesture.
    POST   /api/v1/events/filter-changed     — Filter bus: filters_changed.
    POST   /api/v1/events/dataset-changed    — Filter bus: dataset_changed.

Routes are plain (sync) functions: a rebuild runs the layout to completion,
so FastAPI executes them on its worker thread pool. The controller serialises
them with its own lock.

Author: relgraph maintainers
"""

import logging
from typing import Optional

from relgraph import __version__
from relgraph.interaction.controller import InteractionController
from relgraph.interaction.renderer import GestureEvent, GestureKind

logger = logging.getLogger(__name__)

# ── Optional FastAPI / Pydantic dependency ─────────────────────────────────────
try:
    from fastapi import FastAPI, HTTPException
    from pydantic import BaseModel
    HAS_FASTAPI = True
except ImportError:
    FastAPI = None
    HTTPException = None
    BaseModel = object
    HAS_FASTAPI = False


if HAS_FASTAPI:
    class GestureRequest(BaseModel):
        """Body of POST /gestures."""
        kind: str
        node_id: Optional[str] = None
        x: Optional[float] = None
        y: Optional[float] = None
        translate: tuple[float, float] = (0.0, 0.0)
        scale: float = 1.0

    class FilterChangedRequest(BaseModel):
        """Body of POST /events/filter-changed."""
        database: str
        table: str

    class DatasetChangedRequest(BaseModel):
        """Body of POST /events/dataset-changed."""
        database: str
        tables: list[str]

    class HealthResponse(BaseModel):
        """Health check response."""
        status: str
        version: str


def create_app(controller: InteractionController) -> "FastAPI":
    """
    Create the relgraph FastAPI application around one controller.

    Args:
        controller: The InteractionController that owns the graph.

    Returns:
        Configured FastAPI application instance.

    Raises:
        ImportError: If fastapi or pydantic are not installed.
    """
    if not HAS_FASTAPI:
        raise ImportError(
            "fastapi and pydantic are required: pip install fastapi pydantic"
        )

    app = FastAPI(
        title="relgraph API",
        version=__version__,
        description="Relational-to-graph pivot engine: graph snapshots in, gestures out.",
    )

    # ── Routes ────────────────────────────────────────────────────────────────

    @app.get("/api/v1/health", response_model=HealthResponse, tags=["system"])
    def health() -> dict:
        """Liveness check: returns service status and version."""
        return {"status": "ok", "version": __version__}

    @app.get("/api/v1/graph", tags=["graph"])
    def get_graph() -> dict:
        """Current GraphModel snapshot with focus, notices and error."""
        return controller.to_dict()

    @app.get("/api/v1/focus", tags=["focus"])
    def get_focus() -> dict:
        """Current FocusSet and state."""
        current = controller.to_dict()
        return {"focus": current["focus"], "state": current["state"]}

    @app.delete("/api/v1/focus/{value}", tags=["focus"])
    def remove_focus(value: str) -> dict:
        """Remove one focus value; an emptied FocusSet falls back to all labels."""
        if not controller.remove_focus(value):
            raise HTTPException(status_code=404, detail=f"'{value}' is not a focus value.")
        return controller.to_dict()

    @app.post("/api/v1/gestures", tags=["graph"])
    def post_gesture(body: GestureRequest) -> dict:
        """Apply a renderer gesture and return the resulting state."""
        try:
            kind = GestureKind(body.kind)
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Unknown gesture kind '{body.kind}'.")
        event = GestureEvent(
            kind=kind,
            node_id=body.node_id,
            x=body.x,
            y=body.y,
            translate=tuple(body.translate),
            scale=body.scale,
        )
        try:
            controller.dispatch(event)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return controller.to_dict()

    @app.post("/api/v1/events/filter-changed", tags=["events"])
    def filter_changed(body: FilterChangedRequest) -> dict:
        controller.on_filter_changed(body.database, body.table)
        return controller.to_dict()

    @app.post("/api/v1/events/dataset-changed", tags=["events"])
    def dataset_changed(body: DatasetChangedRequest) -> dict:
        controller.on_dataset_changed(body.database, body.tables)
        return controller.to_dict()

    logger.info("relgraph API created for %s.%s.", controller.database, controller.table)
    return app
