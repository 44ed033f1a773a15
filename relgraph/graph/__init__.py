"""
relgraph.graph — GraphModel types and construction.

Modules:
    model    — ColorGroup, Record, Node, Edge, GraphModel.
    builder  — Records + FocusSet + RootSet → deduplicated GraphModel.
"""

from relgraph.graph.builder import (
    BuildResult,
    build_graph_model,
    build_isolated_model,
    records_from_dataframe,
)
from relgraph.graph.model import ColorGroup, Edge, GraphModel, Node, Record
