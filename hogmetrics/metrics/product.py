"""Per-product usage metrics: active users, engagement, conversion and counters."""

import logging

from sqlglot import exp

from hogmetrics.config import ProductSettings
from hogmetrics.core.dialect import CompiledQuery, func, param, prop, ref
from hogmetrics.core.filters import FilterOptions, combine_filters
from hogmetrics.core.results import decode_date, scalar_value, to_number
from hogmetrics.core.time_window import TimeWindow
from hogmetrics.errors import AnalyticsError, ConfigurationError, ValidationError
from hogmetrics.metrics.base import Assembler, error_boundary
from hogmetrics.metrics.github import GitHubStarsAssembler
from hogmetrics.metrics.models import DailyUsers, ProductMetrics
from hogmetrics.sql.sources import events_source

logger = logging.getLogger(__name__)

USER_FIELD = "distinct_id"


def product_predicate(product: str) -> exp.Expression:
    """Events tagged with the product, or named with its prefix."""
    return func(
        "or",
        func("equals", prop("properties.product"), param("product", product)),
        func("like", prop("event"), param("product_prefix", f"{product}_%")),
    )


def event_pattern_match(pattern: str, hint: str) -> exp.Expression:
    """LIKE when the pattern has a wildcard, plain equality otherwise."""
    name = "like" if "%" in pattern else "equals"
    return func(name, prop("event"), param(hint, pattern))


def average_daily_users(chart_data: list[DailyUsers]) -> float:
    """Mean of the daily distinct user counts; 0 with no active days."""
    if not chart_data:
        return 0
    return sum(day.users for day in chart_data) / len(chart_data)


class ProductMetricsAssembler(Assembler):
    """Builds usage metrics for one configured product."""

    def _settings(self, product: str) -> ProductSettings:
        try:
            return self.config.get_product(product)
        except KeyError:
            known = ", ".join(sorted(self.config.products))
            raise ValidationError(
                f"Unknown product: '{product}'. Use one of: {known}", details={"product": product}
            ) from None

    def _queries(
        self,
        settings: ProductSettings,
        time_window: TimeWindow,
        filter_options: FilterOptions | None,
    ) -> dict[str, CompiledQuery]:
        source = events_source()
        scope = product_predicate(settings.name)
        users = func("uniqExact", prop(USER_FIELD))

        queries = {
            "daily": self.compiler.compile_select(
                time_window,
                source,
                [exp.alias_(func("toDate", prop("timestamp")), "day"), exp.alias_(users, "users")],
                filter_options=filter_options,
                extra_filters=[scope],
                group_by=["day"],
                order_by=[exp.Ordered(this=ref("day"), desc=False)],
            ),
            "totals": self.compiler.compile_select(
                time_window,
                source,
                [exp.alias_(func("count"), "events"), exp.alias_(users.copy(), "users")],
                filter_options=filter_options,
                extra_filters=[scope],
            ),
            "converted": self.compiler.compile_select(
                time_window,
                source,
                [exp.alias_(users.copy(), "users")],
                filter_options=filter_options,
                extra_filters=[
                    scope,
                    combine_filters(
                        [event_pattern_match(p, "conversion") for p in settings.conversion_event_patterns()]
                    ),
                ],
            ),
        }

        counters = [
            exp.alias_(func("countIf", event_pattern_match(pattern, "counter")), name)
            for name, pattern in settings.counters.items()
        ]
        counters += [
            exp.alias_(func("uniqExact", prop(path)), name) for name, path in settings.distinct_counters.items()
        ]
        if counters:
            queries["counters"] = self.compiler.compile_select(
                time_window, source, counters, filter_options=filter_options, extra_filters=[scope]
            )
        return queries

    def _stars(self, time_window: TimeWindow) -> float | None:
        try:
            stars = GitHubStarsAssembler(self.warehouse, self.config, self.compiler).get_stars(time_window)
        except ConfigurationError:
            raise
        except AnalyticsError as e:
            logger.warning(f"Skipping GitHub stars: {e.message}")
            return None
        return stars.current_stars

    def get_product(
        self,
        product: str,
        time_window: TimeWindow,
        *,
        filter_options: FilterOptions | None = None,
    ) -> ProductMetrics:
        """Usage metrics for a configured product.

        Args:
            product: Product key, e.g. "boreal" or "moosestack"
            time_window: Query range
            filter_options: Internal traffic toggles

        Returns:
            ProductMetrics

        Raises:
            ValidationError: If the product is not configured
        """
        settings = self._settings(product)

        with error_boundary(f"{product} metrics"):
            queries = self._queries(settings, time_window, filter_options)
            names = list(queries)
            calls = [lambda q=queries[name]: self.execute(q) for name in names]
            if settings.include_github_stars:
                calls.append(lambda: self._stars(time_window))
            outcomes = self.run_concurrently(*calls)
            results = dict(zip(names, outcomes))
            github_stars = outcomes[len(names)] if settings.include_github_stars else None

            chart_data = [
                DailyUsers(date=decode_date(row[0]), users=to_number(row[1]))
                for row in results["daily"].results
                if row
            ]
            total_events = scalar_value(results["totals"].results, column=0)
            total_users = scalar_value(results["totals"].results, column=1)
            converted = scalar_value(results["converted"].results)

            specific_metrics: dict[str, float] = {}
            if "counters" in results:
                counter_names = list(settings.counters) + list(settings.distinct_counters)
                for index, name in enumerate(counter_names):
                    specific_metrics[name] = scalar_value(results["counters"].results, column=index)

            return ProductMetrics(
                product=product,
                time_window=time_window,
                dau=average_daily_users(chart_data),
                mau=total_users,
                conversion_rate=converted / total_users * 100 if total_users > 0 else 0,
                engagement_score=total_events / total_users if total_users > 0 else 0,
                specific_metrics=specific_metrics,
                chart_data=chart_data,
                github_stars=github_stars,
            )
