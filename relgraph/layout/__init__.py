"""
relgraph.layout — 2D layout for GraphModels.

Modules:
    force — LayoutEngine: bounded, alpha-cooled spring/charge/gravity simulation.
"""

from relgraph.layout.force import LayoutEngine, LayoutResult
