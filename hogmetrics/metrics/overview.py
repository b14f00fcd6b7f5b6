"""Cross-product overview."""

from sqlglot import exp

from hogmetrics.core.dialect import func, prop
from hogmetrics.core.filters import FilterOptions
from hogmetrics.core.results import scalar_value
from hogmetrics.core.time_window import TimeWindow
from hogmetrics.metrics.base import Assembler, error_boundary
from hogmetrics.metrics.models import OverviewMetrics, ProductSummary
from hogmetrics.metrics.product import USER_FIELD, ProductMetricsAssembler
from hogmetrics.sql.sources import events_source


class OverviewAssembler(Assembler):
    """Overall users and events, plus DAU/MAU for every configured product."""

    def get_overview(self, time_window: TimeWindow, *, filter_options: FilterOptions | None = None) -> OverviewMetrics:
        with error_boundary("overview metrics"):
            totals_query = self.compiler.compile_select(
                time_window,
                events_source(),
                [
                    exp.alias_(func("uniqExact", prop(USER_FIELD)), "users"),
                    exp.alias_(func("count"), "events"),
                ],
                filter_options=filter_options,
            )
            products = ProductMetricsAssembler(self.warehouse, self.config, self.compiler)
            names = list(self.config.products)

            outcomes = self.run_concurrently(
                lambda: self.execute(totals_query),
                *[
                    lambda name=name: products.get_product(name, time_window, filter_options=filter_options)
                    for name in names
                ],
            )
            totals = outcomes[0].results
            total_users = scalar_value(totals, column=0)

            return OverviewMetrics(
                time_window=time_window,
                total_users=total_users,
                total_active_users=total_users,
                total_events=scalar_value(totals, column=1),
                products_metrics={
                    name: ProductSummary(dau=metrics.dau, mau=metrics.mau)
                    for name, metrics in zip(names, outcomes[1:])
                },
            )
