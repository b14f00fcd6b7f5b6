"""hogmetrics: HogQL query construction and aggregation for product analytics."""

__version__ = "0.1.0"

from hogmetrics.config import HogMetricsConfig, find_config, load_config
from hogmetrics.core.dialect import CompiledQuery
from hogmetrics.core.filters import FilterOptions
from hogmetrics.core.time_window import TimeWindow
from hogmetrics.errors import (
    AnalyticsError,
    ConfigurationError,
    ExternalAPIError,
    ResultParseError,
    ValidationError,
)
from hogmetrics.sql.compiler import QueryCompiler

__all__ = [
    "AnalyticsError",
    "CompiledQuery",
    "ConfigurationError",
    "ExternalAPIError",
    "FilterOptions",
    "HogMetricsConfig",
    "QueryCompiler",
    "ResultParseError",
    "TimeWindow",
    "ValidationError",
    "find_config",
    "load_config",
]
