"""
relgraph.interaction — Selection/pivot protocol.

Modules:
    controller — InteractionController: focus state machine, last-issued-wins.
    events     — FilterBus: filters_changed / dataset_changed channels.
    renderer   — Renderer contract, GestureEvent, ViewTransform, SnapshotRenderer.
"""

from relgraph.interaction.controller import FocusState, InteractionController
from relgraph.interaction.events import FilterBus
from relgraph.interaction.renderer import (
    GestureEvent,
    GestureKind,
    Renderer,
    SnapshotRenderer,
    ViewTransform,
)
