"""
relgraph/interaction/renderer.py — The renderer contract.

The renderer consumes GraphModel snapshots and reports gestures back as
GestureEvents. Pan and zoom only change the ViewTransform; they never touch
layout coordinates.

Author: relgraph maintainers
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from relgraph.graph.model import GraphModel

logger = logging.getLogger(__name__)


class GestureKind(Enum):
    CLICK = "click"
    DOUBLE_CLICK = "double_click"
    MODIFIER_CLICK = "modifier_click"
    DRAG_START = "drag_start"
    DRAG_MOVE = "drag_move"
    DRAG_END = "drag_end"
    PAN_ZOOM = "pan_zoom"


@dataclass(frozen=True)
class GestureEvent:
    """
    A user gesture reported by the renderer.

    node_id is required for every kind except PAN_ZOOM; x/y for DRAG_MOVE;
    translate/scale for PAN_ZOOM.
    """

    kind: GestureKind
    node_id: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    translate: tuple[float, float] = (0.0, 0.0)
    scale: float = 1.0


@dataclass(frozen=True)
class ViewTransform:
    """Rendering transform: screen = layout * scale + translate."""

    translate: tuple[float, float] = (0.0, 0.0)
    scale: float = 1.0

    def apply(self, x: float, y: float) -> tuple[float, float]:
        return (x * self.scale + self.translate[0], y * self.scale + self.translate[1])


class Renderer(ABC):
    """Anything that can paint a GraphModel and show messages to the user."""

    @abstractmethod
    def render(self, model: GraphModel) -> None:
        """Paint model. Called once per rebuild, after layout."""

    def show_notice(self, text: str) -> None:
        logger.info("Notice: %s", text)

    def show_error(self, message: str, trace: str = "") -> None:
        logger.warning("Error shown to user: %s", message)

    def clear_error(self) -> None:
        pass


@dataclass
class SnapshotRenderer(Renderer):
    """
    Keeps the latest snapshot, notices and error in memory.

    Used by the HTTP API and the CLI, where a client pulls state instead of
    being pushed pixels.
    """

    snapshot: dict[str, Any] = field(default_factory=lambda: {"nodes": [], "edges": []})
    notices: list[str] = field(default_factory=list)
    error: Optional[dict[str, str]] = None
    render_count: int = 0

    def render(self, model: GraphModel) -> None:
        self.snapshot = model.snapshot()
        self.notices = []
        self.render_count += 1

    def show_notice(self, text: str) -> None:
        super().show_notice(text)
        self.notices.append(text)

    def show_error(self, message: str, trace: str = "") -> None:
        super().show_error(message, trace)
        self.error = {"message": message, "trace": trace}

    def clear_error(self) -> None:
        self.error = None
