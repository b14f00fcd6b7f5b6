"""Shared plumbing for metric assemblers."""

import logging
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any

from hogmetrics.config import HogMetricsConfig
from hogmetrics.core.dialect import CompiledQuery
from hogmetrics.core.results import group_by_breakdown, parse_rows
from hogmetrics.core.time_series import direct_series, fill_forward
from hogmetrics.core.time_window import IntervalUnit, TimeWindow
from hogmetrics.db.base import BaseWarehouseClient, QueryResult
from hogmetrics.db.cache import ClientCache
from hogmetrics.errors import ConfigurationError, ExternalAPIError, ValidationError
from hogmetrics.sql.compiler import MAX_ROWS, QueryCompiler

logger = logging.getLogger(__name__)

SERVICE_NAME = "PostHog"


@contextmanager
def error_boundary(operation: str) -> Iterator[None]:
    """Wrap failures of one assembler operation into ExternalAPIError.

    Configuration, validation and already-tagged external errors propagate
    unchanged.
    """
    try:
        yield
    except (ConfigurationError, ValidationError, ExternalAPIError):
        raise
    except Exception as e:
        logger.error(f"Error fetching {operation}: {e}")
        raise ExternalAPIError(SERVICE_NAME, f"Error fetching {operation}: {e}") from e


class Assembler:
    """Base class for metric assemblers.

    Args:
        warehouse: A warehouse client, or a ClientCache that hands one out
        config: Loaded configuration (defaults to built-in settings)
        compiler: Query compiler (defaults to one built from ``config``)
    """

    def __init__(
        self,
        warehouse: BaseWarehouseClient | ClientCache,
        config: HogMetricsConfig | None = None,
        compiler: QueryCompiler | None = None,
    ):
        self.warehouse = warehouse
        self.config = config or HogMetricsConfig()
        self.compiler = compiler or QueryCompiler(self.config.filters, self.config.query_strategy)

    @property
    def client(self) -> BaseWarehouseClient:
        if isinstance(self.warehouse, ClientCache):
            return self.warehouse.get()
        return self.warehouse

    def execute(self, query: CompiledQuery) -> QueryResult:
        """Run one query."""
        logger.debug(f"Running query with {len(query.values)} parameters")
        result = self.client.execute(query)
        if result.row_count >= MAX_ROWS:
            logger.warning(f"Query hit the {MAX_ROWS} row limit; results are truncated")
        return result

    def execute_many(self, queries: list[CompiledQuery]) -> list[QueryResult]:
        """Run independent queries concurrently, returning results in query order."""
        return self.run_concurrently(*[lambda q=q: self.execute(q) for q in queries])

    def run_concurrently(self, *calls: Callable[[], Any]) -> list[Any]:
        """Call independent functions on a thread pool and wait for all of them.

        The first failure (in call order) is raised after every call has finished.
        """
        if len(calls) <= 1:
            return [call() for call in calls]

        workers = max(1, min(self.config.max_workers, len(calls)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(call) for call in calls]
        return [future.result() for future in futures]


def bucket_labels(time_window: TimeWindow, interval: IntervalUnit) -> list[str]:
    return [day.isoformat() for day in time_window.buckets(interval)]


def breakdown_series_map(
    query: CompiledQuery,
    result: QueryResult,
    dates: list[str],
    cumulative: bool = True,
) -> dict[str, dict[str, float]]:
    """Decode rows into breakdown -> {date: value} over the dense calendar.

    Sparse scalar rows are filled forward (or looked up per bucket) here;
    array rows already carry dense series.
    """
    grouped = group_by_breakdown(parse_rows(result.results, query.shape))
    if query.shape == "array":
        return grouped

    fill = fill_forward if cumulative else direct_series
    return {key: dict(zip(dates, fill(raw, dates))) for key, raw in grouped.items()}


def single_series(
    query: CompiledQuery,
    result: QueryResult,
    dates: list[str],
    cumulative: bool = True,
) -> list[float]:
    """Decode a query without breakdown into one value per date."""
    points = parse_rows(result.results, query.shape)
    raw: dict[str, float] = {}
    for point in points:
        raw[point.date] = raw.get(point.date, 0) + point.value

    if query.shape == "array":
        return [raw.get(day, 0) for day in dates]
    if cumulative:
        return fill_forward(raw, dates)
    return direct_series(raw, dates)
