"""
relgraph/viz/plotly_graph.py — Plotly adapter for the Renderer contract.

Paints a laid-out GraphModel as an interactive Plotly figure.

Visual encoding:
    - Node color:  ColorGroup (focus / root member / other), one trace per group
    - Node size:   fixed radius, the anchor node (index 0) drawn larger
    - Edges:       straight segments source → target, weight is always 1
    - Hover:       node id

Coordinates are used as-is (layout units, y grows downward as on screen).
Pan/zoom is Plotly's own and never feeds back into layout coordinates.

Author: relgraph maintainers
"""

import logging
from typing import Optional

from relgraph.graph.model import ColorGroup, GraphModel
from relgraph.interaction.renderer import Renderer

logger = logging.getLogger(__name__)

# ── Optional Plotly dependency ─────────────────────────────────────────────────
try:
    import plotly.graph_objects as go
    HAS_PLOTLY = True
except ImportError:
    go = None
    HAS_PLOTLY = False

# ── Visual config ─────────────────────────────────────────────────────────────
_GROUP_COLORS = {
    ColorGroup.FOCUS: "#1f77b4",
    ColorGroup.ROOT_MEMBER: "#ff7f0e",
    ColorGroup.OTHER: "#2ca02c",
}
_GROUP_NAMES = {
    ColorGroup.FOCUS: "Focus",
    ColorGroup.ROOT_MEMBER: "Label",
    ColorGroup.OTHER: "Related",
}
_EDGE_COLOR = "rgba(153, 153, 153, 0.6)"
_NODE_SIZE = 10
_ANCHOR_SIZE = 14


def build_plotly_figure(
    model: GraphModel,
    width: float,
    height: float,
    title: str = "Directed Graph",
) -> "go.Figure":
    """
    Build a Plotly figure from a laid-out GraphModel.

    Args:
        model:  GraphModel whose nodes already carry layout positions.
        width:  Viewport width used for the layout (sets the x range).
        height: Viewport height used for the layout (sets the y range).
        title:  Figure title.

    Returns:
        Plotly Figure object (no IO, no files written).

    Raises:
        ImportError: If plotly is not installed.
    """
    if not HAS_PLOTLY:
        raise ImportError("plotly is required: pip install plotly")

    # ── Edge trace ────────────────────────────────────────────────────────────
    x_coords: list[Optional[float]] = []
    y_coords: list[Optional[float]] = []
    for edge in model.edges:
        source = model.node(edge.source)
        target = model.node(edge.target)
        x_coords += [source.x, target.x, None]
        y_coords += [source.y, target.y, None]

    traces = [
        go.Scatter(
            x=x_coords,
            y=y_coords,
            mode="lines",
            line={"width": 1, "color": _EDGE_COLOR},
            name="links",
            hoverinfo="none",
            showlegend=False,
        )
    ]

    # ── Node traces grouped by ColorGroup, in paint order ─────────────────────
    for group in ColorGroup:
        members = [(i, n) for i, n in enumerate(model.nodes) if n.color_group is group]
        if not members:
            continue
        traces.append(
            go.Scatter(
                x=[n.x for _, n in members],
                y=[n.y for _, n in members],
                mode="markers",
                name=_GROUP_NAMES[group],
                marker={
                    "size": [_ANCHOR_SIZE if i == 0 else _NODE_SIZE for i, _ in members],
                    "color": _GROUP_COLORS[group],
                    "line": {"color": "white", "width": 1.5},
                },
                text=[n.id for _, n in members],
                customdata=[n.id for _, n in members],
                hovertemplate="%{text}<extra></extra>",
            )
        )

    fig = go.Figure(
        data=traces,
        layout=go.Layout(
            title=title,
            showlegend=True,
            hovermode="closest",
            dragmode="pan",
            xaxis={"showgrid": False, "zeroline": False, "showticklabels": False,
                   "range": [0, width]},
            yaxis={"showgrid": False, "zeroline": False, "showticklabels": False,
                   "range": [height, 0], "scaleanchor": "x"},
            margin={"l": 20, "r": 20, "t": 60, "b": 20},
            paper_bgcolor="white",
            plot_bgcolor="white",
        ),
    )

    logger.info(
        "Plotly figure built: %d nodes, %d edges, %d traces.",
        len(model.nodes),
        len(model.edges),
        len(traces),
    )
    return fig


class PlotlyRenderer(Renderer):
    """
    Renderer that keeps the latest Plotly figure and can write it to HTML.

    Notices and errors become the figure subtitle so they travel with the
    exported file.
    """

    def __init__(self, width: float = 600.0, height: float = 300.0, title: str = "Directed Graph") -> None:
        if not HAS_PLOTLY:
            raise ImportError("plotly is required: pip install plotly")
        self.width = width
        self.height = height
        self.title = title
        self.figure: Optional["go.Figure"] = None
        self.notices: list[str] = []
        self.error: Optional[str] = None

    def render(self, model: GraphModel) -> None:
        self.notices = []
        self.figure = build_plotly_figure(model, self.width, self.height, self.title)
        self._update_title()

    def show_notice(self, text: str) -> None:
        super().show_notice(text)
        self.notices.append(text)
        self._update_title()

    def show_error(self, message: str, trace: str = "") -> None:
        super().show_error(message, trace)
        self.error = message
        self._update_title()

    def clear_error(self) -> None:
        self.error = None
        self._update_title()

    def _update_title(self) -> None:
        if self.figure is None:
            return
        lines = [self.title]
        if self.error:
            lines.append(f"<span style='color:red'>{self.error}</span>")
        lines += self.notices
        self.figure.update_layout(title="<br>".join(lines))

    def save_html(self, output_path: str) -> None:
        """
        Write the latest figure to a self-contained HTML file.

        Raises:
            RuntimeError: If nothing has been rendered yet.
        """
        if self.figure is None:
            raise RuntimeError("Nothing rendered yet.")
        self.figure.write_html(output_path, include_plotlyjs="cdn")
        logger.info("Plotly figure saved to: %s", output_path)
