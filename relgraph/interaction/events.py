"""
relgraph/interaction/events.py — In-process filter notification bus.

Stands in for the dashboard's messaging channel. Two channels matter to the
graph:

    filters_changed  (database, table)  — requery if it is our table.
    dataset_changed  (database, tables) — full reset.

Callbacks run synchronously on the publishing thread, in subscription order.

Author: relgraph maintainers
"""

import logging
import threading
from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)

FilterChangedCallback = Callable[[str, str], None]
DatasetChangedCallback = Callable[[str, Sequence[str]], None]


class FilterBus:
    """Publish/subscribe for filter and dataset events."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._filter_callbacks: list[FilterChangedCallback] = []
        self._dataset_callbacks: list[DatasetChangedCallback] = []

    def on_filter_changed(self, callback: FilterChangedCallback) -> Callable[[], None]:
        """Subscribe to filters_changed. Returns an unsubscribe function."""
        with self._lock:
            self._filter_callbacks.append(callback)
        return lambda: self._remove(self._filter_callbacks, callback)

    def on_dataset_changed(self, callback: DatasetChangedCallback) -> Callable[[], None]:
        """Subscribe to dataset_changed. Returns an unsubscribe function."""
        with self._lock:
            self._dataset_callbacks.append(callback)
        return lambda: self._remove(self._dataset_callbacks, callback)

    def publish_filter_changed(self, database: str, table: str) -> None:
        with self._lock:
            callbacks = list(self._filter_callbacks)
        logger.debug("filters_changed %s.%s → %d subscriber(s).", database, table, len(callbacks))
        for callback in callbacks:
            callback(database, table)

    def publish_dataset_changed(self, database: str, tables: Sequence[str]) -> None:
        with self._lock:
            callbacks = list(self._dataset_callbacks)
        logger.debug("dataset_changed %s → %d subscriber(s).", database, len(callbacks))
        for callback in callbacks:
            callback(database, list(tables))

    def remove_all(self) -> None:
        with self._lock:
            self._filter_callbacks.clear()
            self._dataset_callbacks.clear()

    def _remove(self, callbacks: list, callback: Callable) -> None:
        with self._lock:
            if callback in callbacks:
                callbacks.remove(callback)
