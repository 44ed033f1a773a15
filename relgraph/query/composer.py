"""
relgraph/query/composer.py — Which records does the graph need next?

Two shapes of query cover every state of the interaction cycle:

    FocusSet empty      → distinct-labels query (one row per label value).
    FocusSet non-empty  → label = f1 OR label = f2 OR ... over the focus values,
                          fetching exactly (label, related) and nothing else.

Queries are immutable values. to_dict() gives the JSON form sent to an HTTP
query service; matches() evaluates the predicate against a row mapping for
in-process services.

Author: relgraph maintainers
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from relgraph.config import DEFAULT_CONFIG, RelGraphConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WhereClause:
    """Single comparison. Only equality is needed by the graph."""

    field: str
    value: Any
    operator: str = "="

    def matches(self, row: Mapping[str, Any]) -> bool:
        if self.operator == "=":
            return row.get(self.field) == self.value
        if self.operator == "!=":
            return row.get(self.field) != self.value
        raise ValueError(f"Unsupported operator '{self.operator}'.")

    def to_dict(self) -> dict[str, Any]:
        return {"type": "where", "lhs": self.field, "operator": self.operator, "rhs": self.value}


@dataclass(frozen=True)
class OrClause:
    """Disjunction of clauses."""

    clauses: tuple["Predicate", ...]

    def matches(self, row: Mapping[str, Any]) -> bool:
        return any(c.matches(row) for c in self.clauses)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "or", "whereClauses": [c.to_dict() for c in self.clauses]}


Predicate = Union[WhereClause, OrClause]


def or_(*clauses: Predicate) -> Predicate:
    """Combine clauses with OR. A single clause is returned unchanged."""
    if not clauses:
        raise ValueError("or_() needs at least one clause.")
    if len(clauses) == 1:
        return clauses[0]
    return OrClause(tuple(clauses))


@dataclass(frozen=True)
class Query:
    """
    A select against one database table.

    Fields:
        database: Database name.
        table:    Table name.
        fields:   Exactly the fields to fetch.
        where:    Optional predicate. None selects every row.
        distinct: If True, return distinct values of fields[0] only.
    """

    database: str
    table: str
    fields: tuple[str, ...] = field(default_factory=tuple)
    where: Optional[Predicate] = None
    distinct: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "databaseName": self.database,
            "tableName": self.table,
            "fields": list(self.fields),
            "distinct": self.distinct,
            "filter": self.where.to_dict() if self.where is not None else None,
        }


class QueryComposer:
    """Derives the next query from the current FocusSet."""

    def __init__(self, config: RelGraphConfig = DEFAULT_CONFIG) -> None:
        self.config = config

    def distinct_labels(self, database: str, table: str) -> Query:
        """All distinct label values in the table (the RootSet query)."""
        return Query(
            database=database,
            table=table,
            fields=(self.config.label_field,),
            distinct=True,
        )

    def focus_records(self, database: str, table: str, focus: Sequence[str]) -> Query:
        """Records whose label equals any focus value."""
        if not focus:
            raise ValueError("focus_records() needs at least one focus value.")
        label = self.config.label_field
        predicate = or_(*(WhereClause(label, value) for value in focus))
        return Query(
            database=database,
            table=table,
            fields=(label, self.config.related_field),
            where=predicate,
        )

    def compose(self, database: str, table: str, focus: Sequence[str]) -> Query:
        """distinct_labels() when focus is empty, focus_records() otherwise."""
        if not focus:
            return self.distinct_labels(database, table)
        query = self.focus_records(database, table, focus)
        logger.debug("Composed focus query over %d value(s) on %s.%s.", len(focus), database, table)
        return query
