"""
relgraph.query — Query composition and the query-service boundary.

Modules:
    composer — QueryComposer: FocusSet → distinct-labels or OR-equality Query.
    service  — QueryService ABC, QueryError, DataFrame / HTTP adapters, runners.
"""

from relgraph.query.composer import OrClause, Query, QueryComposer, WhereClause, or_
from relgraph.query.service import (
    AsyncQueryRunner,
    DataFrameQueryService,
    HttpQueryService,
    ImmediateQueryRunner,
    QueryError,
    QueryService,
)
