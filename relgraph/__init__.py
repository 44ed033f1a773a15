"""
relgraph — Relational-to-graph pivot engine for visual-analytics dashboards.

Turns flat relational query results into a deduplicated node/edge model,
lays it out with a bounded force simulation, and decides which records to
fetch next as the user pivots through the graph.

Subpackages:
- relgraph.graph        — GraphModel types and the record → graph builder.
- relgraph.layout       — Force-directed LayoutEngine.
- relgraph.query        — QueryComposer and query service adapters.
- relgraph.interaction  — InteractionController, filter bus, Renderer contract.
- relgraph.viz          — Plotly renderer adapter.
- relgraph.api          — Optional FastAPI surface.

Author: relgraph maintainers
"""

__version__ = "0.1.0"
