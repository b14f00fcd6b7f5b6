"""Cumulative breakdown metrics: installs, projects, deployments, CLI commands."""

import logging

from pydantic import BaseModel, ConfigDict, Field
from sqlglot import exp

from hogmetrics.core.breakdown import BreakdownResult, collapse_breakdowns, combine_series
from hogmetrics.core.dialect import CompiledQuery, prop
from hogmetrics.core.filters import FilterOptions, build_property_equals_filter, build_property_in_filter
from hogmetrics.core.results import OTHER_BREAKDOWN, UNKNOWN_BREAKDOWN
from hogmetrics.core.time_window import IntervalUnit, TimeWindow
from hogmetrics.db.base import QueryResult
from hogmetrics.errors import ValidationError
from hogmetrics.metrics.base import Assembler, breakdown_series_map, bucket_labels, error_boundary
from hogmetrics.metrics.models import (
    CommandMetrics,
    CumulativeDataPoint,
    DeploymentMetrics,
    InstallMetrics,
    ProjectMetrics,
    RecentDeployment,
)
from hogmetrics.sql.compiler import Aggregation, CountMode
from hogmetrics.sql.sources import DEPLOYMENTS_SOURCE, PROJECTS_SOURCE, QuerySource, events_source

logger = logging.getLogger(__name__)

INSTALL_EVENT = "fiveonefour_cli_install_script_run"
INSTALL_BREAKDOWN = "properties.cli_name"
INSTALL_PRODUCTS = ["moose", "aurora", "sloan"]

COMMAND_EVENT = "moose_cli_command"
COMMAND_BREAKDOWN = "properties.command"

ORGANIZATION_BREAKDOWN = "org_id"
RECENT_DEPLOYMENTS_LIMIT = 20

_RECENT_DEPLOYMENT_COLUMNS = ["deploy_id", "project_name", "repo_url", "status", "created_at", "org_id"]


class SeriesMetric(BaseModel):
    """How one breakdown series metric is queried."""

    model_config = ConfigDict(frozen=True)

    source: QuerySource
    breakdown: str = Field(..., description="Default field path to split by")
    interval: IntervalUnit = Field(..., description="Default bucket width")
    aggregation: Aggregation = "cumulative"
    count_mode: CountMode = "events"


SERIES_METRICS: dict[str, SeriesMetric] = {
    "installs": SeriesMetric(
        source=events_source(INSTALL_EVENT), breakdown=INSTALL_BREAKDOWN, interval="day", count_mode="first_seen"
    ),
    "projects": SeriesMetric(source=PROJECTS_SOURCE, breakdown=ORGANIZATION_BREAKDOWN, interval="month"),
    "deployments": SeriesMetric(source=DEPLOYMENTS_SOURCE, breakdown=ORGANIZATION_BREAKDOWN, interval="month"),
    "commands": SeriesMetric(
        source=events_source(COMMAND_EVENT), breakdown=COMMAND_BREAKDOWN, interval="week", aggregation="direct"
    ),
}


def count_organizations(series_map: dict[str, dict[str, float]]) -> int:
    """Distinct real breakdowns, excluding the unknown and other groups."""
    return sum(1 for key in series_map if key not in (UNKNOWN_BREAKDOWN, OTHER_BREAKDOWN))


def _products_filter(products: list[str] | None) -> list[exp.Expression]:
    products = INSTALL_PRODUCTS if products is None else products
    return [build_property_in_filter(INSTALL_BREAKDOWN, products, hint="products")] if products else []


def _status_filter(status: str | None) -> list[exp.Expression]:
    return [build_property_equals_filter("status", status, hint="status")] if status else []


class CumulativeMetricsAssembler(Assembler):
    """Builds cumulative, breakdown-aware metrics.

    Example:
        >>> assembler = CumulativeMetricsAssembler(PostHogClient.from_config(config.connection))
        >>> metrics = assembler.get_installs(TimeWindow.from_strings("2024-01-01", "2024-03-31"))
        >>> metrics.total_installs
    """

    def _collapse(
        self,
        query: CompiledQuery,
        result: QueryResult,
        time_window: TimeWindow,
        interval: IntervalUnit,
        top_n: int | None,
        aggregation: Aggregation = "cumulative",
    ) -> tuple[BreakdownResult, dict[str, dict[str, float]], list[str]]:
        dates = bucket_labels(time_window, interval)
        cumulative = aggregation == "cumulative"
        series_map = breakdown_series_map(query, result, dates, cumulative)
        collapsed = collapse_breakdowns(series_map, self._top_n(top_n), cumulative)
        logger.debug(f"Collapsed {len(series_map)} breakdowns into {len(collapsed.series)} series")
        return collapsed, series_map, dates

    def _top_n(self, top_n: int | None) -> int:
        return self.config.default_top_n if top_n is None else top_n

    @staticmethod
    def _data_points(collapsed: BreakdownResult, dates: list[str]) -> list[CumulativeDataPoint]:
        # Every bucket appears, zero-filled when nothing matched
        return [CumulativeDataPoint(date=day, total=total) for day, total in combine_series(collapsed.series, dates)]

    def compile_metric(
        self,
        metric: str,
        time_window: TimeWindow,
        *,
        interval: IntervalUnit | None = None,
        breakdown: str | None = None,
        top_n: int | None = None,
        filter_options: FilterOptions | None = None,
        products: list[str] | None = None,
        status: str | None = None,
    ) -> CompiledQuery:
        """Compile a metric's series query without running it.

        The ``get_*`` methods run exactly this query.

        Args:
            metric: One of "installs", "projects", "deployments", "commands"
            time_window: Query range
            interval: Bucket width (defaults to the metric's own)
            breakdown: Field path to split by (defaults to the metric's own)
            top_n: Series kept by the warehouse strategy
            filter_options: Internal traffic toggles
            products: CLI names to include, installs only (empty list disables the filter)
            status: Deployment status to match, deployments only

        Raises:
            ValidationError: If the metric is unknown
        """
        if metric not in SERIES_METRICS:
            raise ValidationError(
                f"Unknown metric: '{metric}'. Use one of: {', '.join(SERIES_METRICS)}", details={"metric": metric}
            )
        definition = SERIES_METRICS[metric]
        extra = []
        if metric == "installs":
            extra = _products_filter(products)
        elif metric == "deployments":
            extra = _status_filter(status)
        return self.compiler.compile(
            time_window,
            definition.source,
            breakdown=breakdown or definition.breakdown,
            interval=interval or definition.interval,
            aggregation=definition.aggregation,
            count_mode=definition.count_mode,
            filter_options=filter_options,
            extra_filters=extra,
            top_n=self._top_n(top_n),
        )

    def get_installs(
        self,
        time_window: TimeWindow,
        *,
        interval: IntervalUnit | None = None,
        breakdown: str | None = None,
        products: list[str] | None = None,
        top_n: int | None = None,
        filter_options: FilterOptions | None = None,
    ) -> InstallMetrics:
        """Cumulative CLI installs, one series per CLI.

        Each person counts once per CLI, in the bucket of their first install.

        Args:
            time_window: Query range
            interval: Bucket width (daily by default)
            breakdown: Field path to split by
            products: CLI names to include (empty list disables the filter)
            top_n: Series kept before collapsing into other
            filter_options: Internal traffic toggles

        Returns:
            InstallMetrics
        """
        with error_boundary("install metrics"):
            interval = interval or SERIES_METRICS["installs"].interval
            query = self.compile_metric(
                "installs",
                time_window,
                interval=interval,
                breakdown=breakdown,
                top_n=top_n,
                filter_options=filter_options,
                products=products,
            )
            result = self.execute(query)
            collapsed, _, dates = self._collapse(query, result, time_window, interval, top_n)
            return InstallMetrics(
                time_window=time_window,
                total=collapsed.grand_total,
                total_installs=collapsed.grand_total,
                data_points=self._data_points(collapsed, dates),
                breakdown_series=collapsed.series,
            )

    def get_projects(
        self,
        time_window: TimeWindow,
        *,
        interval: IntervalUnit | None = None,
        breakdown: str | None = None,
        top_n: int | None = None,
    ) -> ProjectMetrics:
        """Cumulative projects created, one series per organization."""
        with error_boundary("project metrics"):
            interval = interval or SERIES_METRICS["projects"].interval
            query = self.compile_metric("projects", time_window, interval=interval, breakdown=breakdown, top_n=top_n)
            result = self.execute(query)
            collapsed, series_map, dates = self._collapse(query, result, time_window, interval, top_n)
            return ProjectMetrics(
                time_window=time_window,
                total=collapsed.grand_total,
                total_projects=collapsed.grand_total,
                total_organizations=count_organizations(series_map),
                data_points=self._data_points(collapsed, dates),
                breakdown_series=collapsed.series,
            )

    def get_deployments(
        self,
        time_window: TimeWindow,
        *,
        interval: IntervalUnit | None = None,
        breakdown: str | None = None,
        status: str | None = None,
        top_n: int | None = None,
    ) -> DeploymentMetrics:
        """Cumulative deployments per organization, plus the most recent deployments.

        Args:
            time_window: Query range
            interval: Bucket width (monthly by default)
            breakdown: Field path to split by
            status: Only count deployments with this status
            top_n: Series kept before collapsing into other

        Returns:
            DeploymentMetrics
        """
        with error_boundary("deployment metrics"):
            interval = interval or SERIES_METRICS["deployments"].interval
            series_query = self.compile_metric(
                "deployments", time_window, interval=interval, breakdown=breakdown, top_n=top_n, status=status
            )
            recent_query = self.compiler.compile_select(
                time_window,
                DEPLOYMENTS_SOURCE,
                [prop(column) for column in _RECENT_DEPLOYMENT_COLUMNS],
                extra_filters=_status_filter(status),
                order_by=[exp.Ordered(this=prop("created_at"), desc=True)],
                limit=RECENT_DEPLOYMENTS_LIMIT,
            )
            series_result, recent_result = self.execute_many([series_query, recent_query])

            collapsed, series_map, dates = self._collapse(series_query, series_result, time_window, interval, top_n)
            return DeploymentMetrics(
                time_window=time_window,
                total=collapsed.grand_total,
                total_deployments=collapsed.grand_total,
                total_organizations=count_organizations(series_map),
                data_points=self._data_points(collapsed, dates),
                breakdown_series=collapsed.series,
                recent_deployments=[_recent_deployment(row) for row in recent_result.results],
            )

    def get_commands(
        self,
        time_window: TimeWindow,
        *,
        interval: IntervalUnit | None = None,
        top_n: int | None = None,
        filter_options: FilterOptions | None = None,
    ) -> CommandMetrics:
        """Per-bucket CLI command counts, one series per command."""
        with error_boundary("command metrics"):
            definition = SERIES_METRICS["commands"]
            interval = interval or definition.interval
            query = self.compile_metric(
                "commands", time_window, interval=interval, top_n=top_n, filter_options=filter_options
            )
            result = self.execute(query)
            collapsed, _, _ = self._collapse(
                query, result, time_window, interval, top_n, aggregation=definition.aggregation
            )
            return CommandMetrics(
                time_window=time_window,
                total_commands=collapsed.grand_total,
                top_commands=collapsed.series,
            )




def _recent_deployment(row: list) -> RecentDeployment:
    values = dict(zip(_RECENT_DEPLOYMENT_COLUMNS, row))
    return RecentDeployment(**{key: None if value is None else str(value) for key, value in values.items()})
