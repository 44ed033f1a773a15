"""
relgraph/tests/conftest.py — Shared pytest fixtures for the relgraph test suite.

Fixtures:
    people_df         — Small deterministic table of label → related entities.
    people_service    — DataFrameQueryService serving people_df as db.people.
    deferred_runner   — Runner that parks queries until the test completes them.
    recording_renderer — SnapshotRenderer that also logs every call.
    small_config      — RelGraphConfig with a small viewport and fixed seed.
"""

import dataclasses
import os
import threading

import pandas as pd
import pytest

from relgraph.config import DEFAULT_CONFIG
from relgraph.interaction.renderer import SnapshotRenderer
from relgraph.query.service import QueryError


# ── Pytest configuration hooks ────────────────────────────────────────────────

def pytest_configure(config):
    """Register the integration marker."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests that call a real query service (deselected by default, "
        "pass --run-integration or -m integration to enable)",
    )


def pytest_addoption(parser):
    """Add --run-integration CLI flag to enable integration tests."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests that call a real query service.",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is passed or -m integration is used."""
    markexpr = config.getoption("-m", default="")
    if "integration" in markexpr:
        return

    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(
        reason="Integration test -- pass --run-integration or -m integration to run"
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


DATABASE = "db"
TABLE = "people"

PEOPLE_ROWS = [
    {"label": "alice", "relatedEntities": ["bob", "carol"]},
    {"label": "bob", "relatedEntities": ["alice", "dave"]},
    {"label": "carol", "relatedEntities": []},
    {"label": "dave", "relatedEntities": ["erin", "frank"]},
]


# ── Test doubles ──────────────────────────────────────────────────────────────

class DeferredQueryRunner:
    """
    Parks every submitted query. Tests decide when, in what order, and with
    what outcome each one completes.
    """

    def __init__(self, service):
        self.service = service
        self.pending: list[tuple] = []

    def submit(self, query, on_success, on_error):
        self.pending.append((query, on_success, on_error))

    def complete(self, index: int = 0) -> None:
        query, on_success, on_error = self.pending.pop(index)
        try:
            result = self.service.execute(query)
        except QueryError as exc:
            on_error(exc)
            return
        on_success(result)

    def fail(self, index: int = 0, message: str = "boom", trace: str = "at line 1") -> None:
        _, _, on_error = self.pending.pop(index)
        on_error(QueryError(message, trace))

    def complete_all(self) -> None:
        # Completing one query may enqueue the next step of the chain.
        while self.pending:
            self.complete(0)


class RecordingRenderer(SnapshotRenderer):
    """SnapshotRenderer that also records (method, payload) tuples and the render threads."""

    def __init__(self):
        super().__init__()
        self.calls: list[tuple] = []
        self.threads: set[threading.Thread] = set()

    def render(self, model):
        self.threads.add(threading.current_thread())
        super().render(model)
        self.calls.append(("render", model))

    def show_notice(self, text):
        super().show_notice(text)
        self.calls.append(("notice", text))

    def show_error(self, message, trace=""):
        super().show_error(message, trace)
        self.calls.append(("error", message, trace))

    def clear_error(self):
        super().clear_error()
        self.calls.append(("clear_error",))


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def people_df() -> pd.DataFrame:
    return pd.DataFrame(PEOPLE_ROWS)


@pytest.fixture
def people_service(people_df):
    from relgraph.query.service import DataFrameQueryService

    return DataFrameQueryService({(DATABASE, TABLE): people_df})


@pytest.fixture
def deferred_runner(people_service) -> DeferredQueryRunner:
    return DeferredQueryRunner(people_service)


@pytest.fixture
def recording_renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def small_config():
    return dataclasses.replace(
        DEFAULT_CONFIG, viewport_width=400.0, viewport_height=200.0, layout_seed=7
    )


@pytest.fixture(scope="session")
def query_service_url():
    """Base URL of a live query service, or None."""
    return os.environ.get("RELGRAPH_QUERY_URL")
