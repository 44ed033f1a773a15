"""
relgraph/graph/model.py — GraphModel types.

A GraphModel is rebuilt wholesale on every query result and never patched
incrementally. Node order is significant: index 0 is the layout anchor and
array order is the paint (z) order.

Author: relgraph maintainers
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import networkx as nx


class ColorGroup(Enum):
    """Node classification, computed once when the node is inserted."""

    FOCUS = "focus"
    ROOT_MEMBER = "root_member"
    OTHER = "other"


@dataclass
class Record:
    """A single relational row: a label plus the entities it relates to."""

    label: str
    related_entities: list[str] = field(default_factory=list)


@dataclass
class Node:
    """
    Graph vertex.

    Fields:
        id:          Label value. Unique within a GraphModel.
        color_group: FOCUS / ROOT_MEMBER / OTHER.
        x, y:        Layout coordinates (viewport units).
        pinned:      True when physics no longer moves the node.
    """

    id: str
    color_group: ColorGroup
    x: float = 0.0
    y: float = 0.0
    pinned: bool = False

    @property
    def position(self) -> tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class Edge:
    """Directed edge. Weight is always 1; repeated pairs never accumulate."""

    source: str
    target: str

    @property
    def weight(self) -> int:
        return 1


@dataclass
class GraphModel:
    """Ordered nodes plus directed, deduplicated edges."""

    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    _index: dict[str, int] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self._index = {}
        for i, node in enumerate(self.nodes):
            if node.id in self._index:
                raise ValueError(f"Duplicate node id '{node.id}'.")
            self._index[node.id] = i

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._index

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def index_of(self, node_id: str) -> int:
        return self._index[node_id]

    def node(self, node_id: str) -> Optional[Node]:
        i = self._index.get(node_id)
        return self.nodes[i] if i is not None else None

    def edge_index_pairs(self) -> list[tuple[int, int]]:
        """Edges as (source_index, target_index) pairs, in edge order."""
        return [(self._index[e.source], self._index[e.target]) for e in self.edges]

    def snapshot(self) -> dict[str, Any]:
        """
        Plain-dict view for renderers and JSON output.

        Returns:
            {
                'nodes': [{'id', 'group', 'x', 'y', 'pinned'}, ...],
                'edges': [{'source', 'target', 'weight'}, ...],
            }
        """
        return {
            "nodes": [
                {
                    "id": n.id,
                    "group": n.color_group.value,
                    "x": n.x,
                    "y": n.y,
                    "pinned": n.pinned,
                }
                for n in self.nodes
            ],
            "edges": [
                {"source": e.source, "target": e.target, "weight": e.weight}
                for e in self.edges
            ],
        }

    def to_networkx(self) -> nx.DiGraph:
        """Copy into a NetworkX DiGraph (node attrs: color_group, x, y, pinned)."""
        G = nx.DiGraph()
        for n in self.nodes:
            G.add_node(n.id, color_group=n.color_group.value, x=n.x, y=n.y, pinned=n.pinned)
        for e in self.edges:
            G.add_edge(e.source, e.target, weight=e.weight)
        return G
