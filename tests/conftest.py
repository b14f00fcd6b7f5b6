"""Pytest configuration and fixtures."""

import threading

import pytest

from hogmetrics.config import HogMetricsConfig
from hogmetrics.core.time_window import TimeWindow
from hogmetrics.db.base import BaseWarehouseClient, QueryResult


class FakeWarehouse(BaseWarehouseClient):
    """In-memory warehouse that answers queries by SQL substring.

    Assemblers run sub-queries concurrently, so responses are matched on query
    text rather than call order. The first rule whose substring appears in the
    SQL wins; unmatched queries return no rows.
    """

    def __init__(self):
        self.rules: list[tuple[str, object]] = []
        self.queries = []
        self.closed = False
        self._lock = threading.Lock()

    def respond(self, sql_fragment: str, rows_or_error) -> "FakeWarehouse":
        self.rules.append((sql_fragment, rows_or_error))
        return self

    @property
    def name(self) -> str:
        return "Fake"

    def execute(self, query):
        with self._lock:
            self.queries.append(query)
        for fragment, response in self.rules:
            if fragment in query.sql:
                if isinstance(response, Exception):
                    raise response
                return QueryResult(results=response)
        return QueryResult(results=[])

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def warehouse():
    return FakeWarehouse()


@pytest.fixture
def config():
    return HogMetricsConfig()


@pytest.fixture
def window():
    """Three days in January 2024."""
    return TimeWindow.from_strings("2024-01-01", "2024-01-03")


@pytest.fixture
def warehouse_factory():
    """Builds a fresh FakeWarehouse on every call."""
    return FakeWarehouse
