"""GitHub star metrics from star webhook events."""

from hogmetrics.core.filters import FilterOptions, build_property_equals_filter, build_property_not_equals_filter
from hogmetrics.core.time_window import TimeWindow
from hogmetrics.metrics.base import Assembler, bucket_labels, error_boundary, single_series
from hogmetrics.metrics.models import GitHubStarMetrics, StarDataPoint
from hogmetrics.sql.sources import events_source

STAR_EVENT = "GitHub Star"
STAR_ACTION_FIELD = "properties.action"
UNSTAR_ACTION = "deleted"


def net_star_series(dates: list[str], added: list[float], removed: list[float]) -> list[StarDataPoint]:
    """Net stars per date: added minus removed. Values are not clamped at zero."""
    return [StarDataPoint(date=day, stars=plus - minus) for day, plus, minus in zip(dates, added, removed)]


class GitHubStarsAssembler(Assembler):
    """Builds cumulative net GitHub stars.

    Added and removed stars are two independent cumulative series over the
    same daily calendar, fetched concurrently.
    """

    def get_stars(self, time_window: TimeWindow, *, filter_options: FilterOptions | None = None) -> GitHubStarMetrics:
        with error_boundary("GitHub star metrics"):
            source = events_source(STAR_EVENT)
            added_query = self.compiler.compile(
                time_window,
                source,
                interval="day",
                filter_options=filter_options,
                extra_filters=[build_property_not_equals_filter(STAR_ACTION_FIELD, UNSTAR_ACTION, hint="action")],
            )
            removed_query = self.compiler.compile(
                time_window,
                source,
                interval="day",
                filter_options=filter_options,
                extra_filters=[build_property_equals_filter(STAR_ACTION_FIELD, UNSTAR_ACTION, hint="action")],
            )
            added_result, removed_result = self.execute_many([added_query, removed_query])

            dates = bucket_labels(time_window, "day")
            added = single_series(added_query, added_result, dates)
            removed = single_series(removed_query, removed_result, dates)
            time_series = net_star_series(dates, added, removed)

            stars_added = added[-1] if added else 0
            stars_removed = removed[-1] if removed else 0
            net_stars = stars_added - stars_removed

            return GitHubStarMetrics(
                time_window=time_window,
                current_stars=time_series[-1].stars if time_series else 0,
                stars_added=stars_added,
                stars_removed=stars_removed,
                net_stars=net_stars,
                time_series=time_series,
            )
