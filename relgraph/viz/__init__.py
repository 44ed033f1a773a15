"""
relgraph.viz — Renderer adapters.

Modules:
    plotly_graph — PlotlyRenderer and build_plotly_figure (requires plotly).
"""
