"""
relgraph/graph/builder.py — Relational records → GraphModel.

Each record contributes a node for its label and, for every related entity,
a node plus a directed edge label → entity. Nodes and edges are inserted only
if absent, so the first occurrence fixes a node's array index (which seeds
layout determinism and paint order).

Construction goes through a NetworkX DiGraph: it keeps insertion order for
nodes and edges and gives O(1) membership checks for both.

Author: relgraph maintainers
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import networkx as nx
import pandas as pd

from relgraph.config import DEFAULT_CONFIG, RelGraphConfig
from relgraph.graph.model import ColorGroup, Edge, GraphModel, Node, Record

logger = logging.getLogger(__name__)

RawRecord = Union[Record, Mapping[str, Any]]


@dataclass
class BuildResult:
    """
    Output of build_graph_model().

    Fields:
        model:              The freshly built GraphModel.
        notices:            User-visible messages (truncation). Not errors.
        dropped_records:    Records beyond config.max_records.
        truncated_labels:   label → number of related entities dropped.
        skipped_records:    Records skipped for a missing label.
    """

    model: GraphModel
    notices: list[str] = field(default_factory=list)
    dropped_records: int = 0
    truncated_labels: dict[str, int] = field(default_factory=dict)
    skipped_records: int = 0

    @property
    def truncated(self) -> bool:
        return self.dropped_records > 0 or bool(self.truncated_labels)


def classify(value: str, focus: Sequence[str], root_set: Iterable[str]) -> ColorGroup:
    """FOCUS if value is a focus value, else ROOT_MEMBER if in the root set, else OTHER."""
    if value in focus:
        return ColorGroup.FOCUS
    if value in root_set:
        return ColorGroup.ROOT_MEMBER
    return ColorGroup.OTHER


def is_missing(value: Any) -> bool:
    """True for None, blank strings and pandas missing scalars (NaN, NaT, NA)."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        # pd.isna on list-likes returns an array; those are not missing scalars.
        return False


def _split_record(raw: RawRecord, config: RelGraphConfig) -> tuple[Any, list]:
    """Return (label, related_entities) for a Record or a raw row mapping."""
    if isinstance(raw, Record):
        return raw.label, list(raw.related_entities or [])

    label = raw.get(config.label_field)
    related = raw.get(config.related_field)
    if related is None:
        return label, []
    if isinstance(related, str):
        return label, [related]
    if isinstance(related, Iterable):
        return label, list(related)
    if is_missing(related):
        return label, []
    return label, [related]


def build_graph_model(
    records: Iterable[RawRecord],
    focus: Sequence[str] = (),
    root_set: Iterable[str] = (),
    config: RelGraphConfig = DEFAULT_CONFIG,
) -> BuildResult:
    """
    Build a deduplicated GraphModel from an ordered batch of records.

    Algorithm (O(R × K) for R records with K related entities each):
        1. Truncate the batch to config.max_records (first-N).
        2. For each record in order:
             a. Skip it if the label is missing.
             b. Insert-if-absent a node for the label, classified on insertion.
             c. For the first config.max_related_entities related entities,
                insert-if-absent the entity node and add the edge
                label → entity if that ordered pair is not already present.
        3. Freeze node and edge order into a GraphModel.

    Args:
        records:  Record objects or row mappings keyed by config.label_field
                  and config.related_field.
        focus:    Ordered FocusSet. Members are classified FOCUS.
        root_set: Distinct label values known for the dataset. Members not in
                  focus are classified ROOT_MEMBER. Never used to filter.
        config:   RelGraphConfig (caps and field names).

    Returns:
        BuildResult with the model and any truncation notices.

    Notes:
        - Zero records yields an empty, valid GraphModel.
        - Edge weight is constant at 1; repeated pairs are ignored.
    """
    focus = list(focus)
    root = set(root_set)

    G = nx.DiGraph()
    result = BuildResult(model=GraphModel())

    def add_node_if_absent(value: str) -> None:
        if value not in G:
            G.add_node(value, color_group=classify(value, focus, root))

    processed = 0
    for raw in records:
        if processed >= config.max_records:
            result.dropped_records += 1
            continue
        processed += 1

        label, related = _split_record(raw, config)
        if is_missing(label):
            result.skipped_records += 1
            logger.debug("Skipping record without a '%s' value: %r", config.label_field, raw)
            continue
        label = str(label)
        add_node_if_absent(label)

        if len(related) > config.max_related_entities:
            result.truncated_labels[label] = (
                result.truncated_labels.get(label, 0)
                + len(related) - config.max_related_entities
            )
            related = related[: config.max_related_entities]

        for entity in related:
            if is_missing(entity):
                continue
            entity = str(entity)
            add_node_if_absent(entity)
            if not G.has_edge(label, entity):
                G.add_edge(label, entity)

    if result.dropped_records:
        result.notices.append(f"Limiting display to {config.max_records} records")
        logger.info(
            "Record cap reached: %d of %d records dropped.",
            result.dropped_records,
            processed + result.dropped_records,
        )
    if result.truncated_labels:
        result.notices.append(
            f"Limiting display to {config.max_related_entities} related entities per record"
        )
        logger.info(
            "Related-entity cap reached on %d record label(s).", len(result.truncated_labels)
        )

    result.model = GraphModel(
        nodes=[Node(id=n, color_group=d["color_group"]) for n, d in G.nodes(data=True)],
        edges=[Edge(u, v) for u, v in G.edges()],
    )

    logger.info(
        "Graph build complete: %d nodes, %d edges (%d records, %d skipped).",
        len(result.model.nodes),
        len(result.model.edges),
        processed,
        result.skipped_records,
    )
    return result


def build_isolated_model(
    labels: Iterable[Any],
    focus: Sequence[str] = (),
    root_set: Optional[Iterable[str]] = None,
    config: RelGraphConfig = DEFAULT_CONFIG,
) -> BuildResult:
    """
    Build the distinct-labels fallback graph: one isolated node per label.

    If root_set is None the labels themselves form the root set, which is the
    case when they come straight from a distinct-labels query.
    """
    labels = list(labels)
    if root_set is None:
        root_set = {str(v) for v in labels if not is_missing(v)}
    rows = [Record(label=v) for v in labels]
    return build_graph_model(rows, focus=focus, root_set=root_set, config=config)


def records_from_dataframe(
    df: pd.DataFrame,
    config: RelGraphConfig = DEFAULT_CONFIG,
) -> list[dict[str, Any]]:
    """
    Convert a DataFrame into ordered row dicts carrying only the graph fields.

    A missing related-entities column is treated as empty lists.
    """
    if config.label_field not in df.columns:
        raise KeyError(f"DataFrame has no '{config.label_field}' column.")

    has_related = config.related_field in df.columns
    columns = [config.label_field] + ([config.related_field] if has_related else [])

    rows: list[dict[str, Any]] = []
    for row in df[columns].to_dict(orient="records"):
        rows.append({
            config.label_field: row[config.label_field],
            config.related_field: row[config.related_field] if has_related else [],
        })
    return rows
