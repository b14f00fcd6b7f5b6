"""Top-N breakdown collapsing.

Series beyond the top-N cutoff are merged into one synthetic ``other``
series. Nothing is dropped: the grand total after collapsing always equals
the sum of the original series' totals.
"""

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from hogmetrics.core.results import OTHER_BREAKDOWN, UNKNOWN_BREAKDOWN


class BreakdownPoint(BaseModel):
    """One date of a breakdown series."""

    model_config = ConfigDict(frozen=True)

    date: str
    cumulative_total: float


class BreakdownSeries(BaseModel):
    """A breakdown's series, ascending by date.

    For cumulative series ``total`` is the last point's value; for direct
    (per-bucket) series it is the sum of the points.
    """

    model_config = ConfigDict(frozen=True)

    breakdown: str
    data_points: list[BreakdownPoint] = Field(default_factory=list)
    total: float = 0


class BreakdownResult(BaseModel):
    """Collapsed series plus the grand total."""

    model_config = ConfigDict(frozen=True)

    series: list[BreakdownSeries] = Field(default_factory=list)
    grand_total: float = 0


def synthetic_rank(breakdown: str) -> int:
    """Sort group: real breakdowns 0, unknown 1, other 2."""
    if breakdown == OTHER_BREAKDOWN:
        return 2
    if breakdown == UNKNOWN_BREAKDOWN:
        return 1
    return 0


def series_total(values: list[float], cumulative: bool = True) -> float:
    if not values:
        return 0
    return values[-1] if cumulative else sum(values)


def build_series(breakdown: str, points: Mapping[str, float], cumulative: bool = True) -> BreakdownSeries:
    """Build a series from date -> value, sorting points by date."""
    ordered = sorted(points.items())
    values = [value for _, value in ordered]
    return BreakdownSeries(
        breakdown=breakdown,
        data_points=[BreakdownPoint(date=day, cumulative_total=value) for day, value in ordered],
        total=series_total(values, cumulative),
    )


def order_breakdowns(series: list[BreakdownSeries]) -> list[BreakdownSeries]:
    """Order by synthetic group, then total descending, then name ascending."""
    return sorted(series, key=lambda s: (synthetic_rank(s.breakdown), -s.total, s.breakdown))


def _merge(series: list[BreakdownSeries], breakdown: str, cumulative: bool) -> BreakdownSeries:
    dates = sorted({point.date for item in series for point in item.data_points})
    merged = dict.fromkeys(dates, 0.0)
    for item in series:
        values = {point.date: point.cumulative_total for point in item.data_points}
        running = 0.0
        for day in dates:
            running = values.get(day, running)
            # A running total holds its last value on dates the series lacks
            merged[day] += running if cumulative else values.get(day, 0)
    return build_series(breakdown, merged, cumulative)


def collapse_breakdowns(
    series_by_key: Mapping[str, Mapping[str, float]],
    top_n: int,
    cumulative: bool = True,
) -> BreakdownResult:
    """Keep the top-N breakdowns and merge the rest into ``other``.

    Args:
        series_by_key: breakdown -> {date: value}
        top_n: Number of breakdowns to keep; values <= 0 keep everything
        cumulative: Whether values are running totals (total = last value) or
            per-bucket counts (total = sum)

    Returns:
        BreakdownResult with series in display order and the grand total
    """
    series = order_breakdowns(
        [build_series(key, points, cumulative) for key, points in series_by_key.items()]
    )

    incoming_other = [s for s in series if s.breakdown == OTHER_BREAKDOWN]
    ranked = [s for s in series if s.breakdown != OTHER_BREAKDOWN]

    if top_n > 0 and len(ranked) > top_n:
        kept, remainder = ranked[:top_n], ranked[top_n:]
    else:
        kept, remainder = ranked, []

    to_merge = remainder + incoming_other
    if to_merge:
        kept = kept + [_merge(to_merge, OTHER_BREAKDOWN, cumulative)]

    return BreakdownResult(series=kept, grand_total=sum(s.total for s in kept))


def combine_series(series: list[BreakdownSeries], dates: list[str]) -> list[tuple[str, float]]:
    """Sum series per date across breakdowns, over a fixed date list."""
    totals = {day: 0.0 for day in dates}
    for item in series:
        for point in item.data_points:
            if point.date in totals:
                totals[point.date] += point.cumulative_total
    return [(day, totals[day]) for day in dates]
