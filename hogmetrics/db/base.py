"""Base warehouse client interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from hogmetrics.core.dialect import CompiledQuery


@dataclass
class QueryResult:
    """Rows returned by a warehouse query.

    Attributes:
        results: Rows, each a list of column values (columns may be arrays)
        columns: Column names, when the warehouse reports them
    """

    results: list[list[Any]] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.results)


class BaseWarehouseClient(ABC):
    """Abstract base class for warehouse clients.

    A client accepts a compiled query payload and returns structured rows.
    Clients are shared across threads by the metric assemblers, so
    ``execute`` must be safe to call concurrently.
    """

    @abstractmethod
    def execute(self, query: CompiledQuery) -> QueryResult:
        """Execute a compiled query.

        Args:
            query: Rendered HogQL and its placeholder values

        Returns:
            QueryResult

        Raises:
            ExternalAPIError: If the warehouse call fails
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release network resources."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Service name used in error messages."""
        raise NotImplementedError

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
