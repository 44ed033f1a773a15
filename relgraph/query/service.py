"""
relgraph/query/service.py — Query service adapters.

The query/connection service is an external collaborator. This module pins
down the two calls the graph needs and ships two adapters:

    DataFrameQueryService — in-process tables held as pandas DataFrames.
    HttpQueryService      — JSON over HTTP, stdlib urllib only.

Both raise QueryError(message, trace) on failure. Runners wrap a service with
callback completion:

    ImmediateQueryRunner  — runs the query inline, then calls back.
    AsyncQueryRunner      — runs the query on a thread pool; the owning thread
                            collects completions with poll() or drain().
                            Completion order is not guaranteed; consumers
                            must detect stale results.

Author: relgraph maintainers
"""

import json
import logging
import threading
import time
import traceback
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import Any, Optional

import pandas as pd

from relgraph.config import DEFAULT_CONFIG, RelGraphConfig
from relgraph.query.composer import Predicate, Query

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[list], None]
ErrorCallback = Callable[["QueryError"], None]


class QueryError(Exception):
    """
    A failed query, carrying the server-supplied message and stack trace.

    Query failures are non-fatal to the graph: the controller renders an empty
    model and surfaces message/trace to the user.
    """

    def __init__(self, message: str, trace: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.trace = trace

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message, "trace": self.trace}


class QueryService(ABC):
    """The two calls the graph issues against the query service."""

    @abstractmethod
    def select_distinct_field(self, database: str, table: str, field: str) -> list:
        """Ordered distinct values of field."""

    @abstractmethod
    def select_where_any(
        self,
        database: str,
        table: str,
        fields: Sequence[str],
        predicate: Optional[Predicate],
    ) -> list[dict[str, Any]]:
        """Ordered rows matching predicate, restricted to fields."""

    def execute(self, query: Query) -> list:
        """Dispatch a composed Query to the matching call."""
        if query.distinct:
            return self.select_distinct_field(query.database, query.table, query.fields[0])
        return self.select_where_any(query.database, query.table, query.fields, query.where)


# ── In-process adapter ────────────────────────────────────────────────────────

def parse_related_cell(value: Any, sep: str = ";") -> list:
    """
    Decode a related-entities cell read from CSV.

    Accepts a JSON array ('["bob", "carol"]'), a sep-delimited string
    ('bob;carol'), an existing list, or a missing value (→ []).
    """
    if isinstance(value, (list, tuple)):
        return list(value)
    if value is None:
        return []
    if isinstance(value, float) and pd.isna(value):
        return []
    text = str(value).strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Related cell is not valid JSON, splitting on '%s': %r", sep, text)
        else:
            if isinstance(decoded, list):
                return decoded
    return [part.strip() for part in text.split(sep) if part.strip()]


class DataFrameQueryService(QueryService):
    """
    Query service over pandas DataFrames keyed by (database, table).

    Row order in each DataFrame is the result order.
    """

    def __init__(self, tables: Optional[dict[tuple[str, str], pd.DataFrame]] = None) -> None:
        self._tables: dict[tuple[str, str], pd.DataFrame] = dict(tables or {})

    def add_table(self, database: str, table: str, df: pd.DataFrame) -> None:
        self._tables[(database, table)] = df

    def tables(self, database: str) -> list[str]:
        return [t for (db, t) in self._tables if db == database]

    @classmethod
    def from_csv(
        cls,
        path: str,
        database: str,
        table: str,
        config: RelGraphConfig = DEFAULT_CONFIG,
        related_sep: str = ";",
    ) -> "DataFrameQueryService":
        """Load one CSV as database.table, decoding the related-entities column."""
        logger.info("Loading records from: %s", path)
        df = pd.read_csv(path, dtype={config.label_field: str})
        if config.related_field in df.columns:
            df[config.related_field] = df[config.related_field].map(
                lambda cell: parse_related_cell(cell, related_sep)
            )
        logger.info("Loaded %d rows into %s.%s.", len(df), database, table)
        return cls({(database, table): df})

    def _frame(self, database: str, table: str) -> pd.DataFrame:
        try:
            return self._tables[(database, table)]
        except KeyError:
            raise QueryError(f"Table '{database}.{table}' does not exist.") from None

    def select_distinct_field(self, database: str, table: str, field: str) -> list:
        df = self._frame(database, table)
        if field not in df.columns:
            raise QueryError(f"Field '{field}' does not exist in '{database}.{table}'.")
        return df[field].dropna().drop_duplicates().tolist()

    def select_where_any(
        self,
        database: str,
        table: str,
        fields: Sequence[str],
        predicate: Optional[Predicate],
    ) -> list[dict[str, Any]]:
        df = self._frame(database, table)
        # Only the first (label) field is mandatory; absent extras come back as None.
        if fields and fields[0] not in df.columns:
            raise QueryError(f"Field '{fields[0]}' does not exist in '{database}.{table}'.")

        rows = []
        for row in df.to_dict(orient="records"):
            if predicate is None or predicate.matches(row):
                rows.append({f: row.get(f) for f in fields})
        return rows


# ── HTTP adapter ──────────────────────────────────────────────────────────────

class HttpQueryService(QueryService):
    """
    Query service reached over HTTP.

    POSTs Query.to_dict() as JSON to {base_url}/query and expects
    {"data": [...]} back. Error responses are expected to carry
    {"error": ..., "stackTrace": ...}, which become QueryError fields.
    """

    def __init__(self, base_url: str, config: RelGraphConfig = DEFAULT_CONFIG) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = config.query_timeout_sec

    def _post(self, payload: dict) -> Any:
        url = urllib.parse.urljoin(self.base_url + "/", "query")
        req = urllib.request.Request(
            url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                body = json.loads(resp.read())
        except urllib.error.HTTPError as exc:
            message, trace = _decode_error_body(exc)
            logger.warning("Query service HTTP %d: %s", exc.code, message)
            raise QueryError(message, trace) from exc
        except urllib.error.URLError as exc:
            logger.warning("Query service network error: %s — %s", exc.reason, url)
            raise QueryError(f"No database connection: {exc.reason}") from exc
        except json.JSONDecodeError as exc:
            raise QueryError(f"Malformed response from query service: {exc}") from exc

        if not isinstance(body, dict) or "data" not in body:
            raise QueryError("Query service response has no 'data' member.")
        return body["data"]

    def select_distinct_field(self, database: str, table: str, field: str) -> list:
        query = Query(database=database, table=table, fields=(field,), distinct=True)
        data = self._post(query.to_dict())
        # Services may answer with bare values or with {field: value} rows.
        return [row.get(field) if isinstance(row, dict) else row for row in data]

    def select_where_any(
        self,
        database: str,
        table: str,
        fields: Sequence[str],
        predicate: Optional[Predicate],
    ) -> list[dict[str, Any]]:
        query = Query(database=database, table=table, fields=tuple(fields), where=predicate)
        return list(self._post(query.to_dict()))


def _decode_error_body(exc: urllib.error.HTTPError) -> tuple[str, str]:
    try:
        body = json.loads(exc.read() or b"{}")
    except (json.JSONDecodeError, OSError):
        return f"HTTP {exc.code}: {exc.reason}", ""
    if not isinstance(body, dict):
        return f"HTTP {exc.code}: {exc.reason}", ""
    return str(body.get("error") or f"HTTP {exc.code}: {exc.reason}"), str(body.get("stackTrace") or "")


# ── Runners ───────────────────────────────────────────────────────────────────

def _as_query_error(exc: BaseException) -> QueryError:
    if isinstance(exc, QueryError):
        return exc
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return QueryError(str(exc) or type(exc).__name__, trace)


class ImmediateQueryRunner:
    """Executes each query inline and calls back before submit() returns."""

    def __init__(self, service: QueryService) -> None:
        self.service = service

    def submit(self, query: Query, on_success: SuccessCallback, on_error: ErrorCallback) -> None:
        try:
            result = self.service.execute(query)
        except QueryError as exc:
            on_error(exc)
            return
        on_success(result)


class AsyncQueryRunner:
    """
    Executes queries on a thread pool; completions run on the owning thread.

    Workers only execute the query. Callbacks (and therefore graph builds and
    layout) run when the owner calls poll() or drain(), so the controller's
    state is only ever touched from the thread that drives it. Completion
    order across queries is not guaranteed; consumers must detect stale
    results.

    Unexpected exceptions are logged with traceback and reported through
    on_error as a QueryError, so one failed request never kills the pool.
    """

    def __init__(self, service: QueryService, config: RelGraphConfig = DEFAULT_CONFIG) -> None:
        self.service = service
        self._executor = ThreadPoolExecutor(
            max_workers=config.query_workers, thread_name_prefix="relgraph-query"
        )
        self._lock = threading.Lock()
        self._pending: list[tuple[Future, Query, SuccessCallback, ErrorCallback]] = []

    @property
    def pending(self) -> int:
        """Queries submitted whose callbacks have not run yet."""
        with self._lock:
            return len(self._pending)

    def submit(self, query: Query, on_success: SuccessCallback, on_error: ErrorCallback) -> Future:
        future = self._executor.submit(self.service.execute, query)
        with self._lock:
            self._pending.append((future, query, on_success, on_error))
        return future

    def poll(self) -> int:
        """Run callbacks of queries that have already finished. Never blocks."""
        with self._lock:
            done = [entry for entry in self._pending if entry[0].done()]
            for entry in done:
                self._pending.remove(entry)
        for future, query, on_success, on_error in done:
            self._complete(future, query, on_success, on_error)
        return len(done)

    def drain(self, timeout: Optional[float] = None) -> int:
        """
        Run callbacks on the calling thread until no query is outstanding.

        Callbacks may submit follow-up queries; those are waited for too.
        Returns the number of callbacks run.

        Raises:
            TimeoutError: If queries are still running after timeout seconds.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        completed = 0
        while True:
            with self._lock:
                futures = [entry[0] for entry in self._pending]
            if not futures:
                return completed
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            done, _ = wait_futures(futures, timeout=remaining, return_when=FIRST_COMPLETED)
            if not done:
                raise TimeoutError(f"{len(futures)} queries still running after {timeout}s.")
            completed += self.poll()

    def _complete(
        self,
        future: Future,
        query: Query,
        on_success: SuccessCallback,
        on_error: ErrorCallback,
    ) -> None:
        exc = future.exception()
        if exc is None:
            on_success(future.result())
            return
        if not isinstance(exc, QueryError):
            logger.error(
                "Unexpected error running query on %s.%s",
                query.database,
                query.table,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
        on_error(_as_query_error(exc))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
