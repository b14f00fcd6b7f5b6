"""Date bucketing and fill-forward aggregation.

The same algorithm exists twice: as HogQL array clauses for queries that
aggregate in the warehouse, and as plain functions for sparse rows that are
aggregated in-process. Both produce one value per bucket of the dense bucket
calendar.

Cumulative mode sums every raw count whose bucket is at or before the current
bucket; direct mode takes the exact bucket's count, defaulting to 0.
"""

from datetime import date, datetime
from typing import Mapping

from sqlglot import exp

from hogmetrics.core.dialect import func, lambda_, num, param, prop, ref, string
from hogmetrics.core.filters import datetime_param, floor_to_interval_expr
from hogmetrics.core.results import NULL_BREAKDOWN_TOKEN
from hogmetrics.core.time_window import IntervalUnit, bucket_key, validate_interval

INTERVAL_FUNCTIONS: dict[str, str] = {
    "day": "toIntervalDay",
    "week": "toIntervalWeek",
    "month": "toIntervalMonth",
}


def build_bucket_expression(field: exp.Expression, interval: IntervalUnit) -> exp.Expression:
    """Bucket start for a timestamp expression."""
    return floor_to_interval_expr(field, interval)


def build_breakdown_value_clause(field: str) -> exp.Expression:
    """Breakdown value with null and empty strings mapped to the null token.

    Renders as ``ifNull(nullIf(toString(field), ''), {breakdown_null})``.
    """
    return func(
        "ifNull",
        func("nullIf", func("toString", prop(field)), string("")),
        param("breakdown_null", NULL_BREAKDOWN_TOKEN),
    )


def build_date_array_clause(
    start: str | datetime | date,
    end: str | datetime | date,
    interval: IntervalUnit,
) -> exp.Expression:
    """Dense array of bucket starts from ``floor(start)`` to ``floor(end)`` inclusive.

    Renders as::

        arrayMap(number -> plus(floor(start), toIntervalX(number)),
                 range(0, plus(coalesce(dateDiff('x', floor(start), floor(end))), 1)))
    """
    validate_interval(interval)
    first = floor_to_interval_expr(datetime_param("date_from", start), interval)
    last = floor_to_interval_expr(datetime_param("date_to", end), interval)

    bucket_count = func(
        "plus",
        func("coalesce", func("dateDiff", string(interval), first.copy(), last)),
        num(1),
    )
    step = lambda_(["number"], func("plus", first, func(INTERVAL_FUNCTIONS[interval], ref("number"))))
    return func("arrayMap", step, func("range", num(0), bucket_count))


def _bucket_match_clause(
    comparison: str,
    dates_alias: str,
    counts_column: str,
    buckets_column: str,
) -> exp.Expression:
    matches = lambda_(["raw", "bucket"], func(comparison, ref("bucket"), ref("_match_date")))
    per_date = func(
        "arraySum",
        func("arrayFilter", matches, func("groupArray", ref(counts_column)), func("groupArray", ref(buckets_column))),
    )
    return func("arrayMap", lambda_(["_match_date"], per_date), ref(dates_alias))


def build_cumulative_clause(
    dates_alias: str = "bucket_dates",
    counts_column: str = "raw_count",
    buckets_column: str = "bucket_start",
) -> exp.Expression:
    """Per bucket, the sum of raw counts at or before that bucket.

    Must be evaluated in a query grouped by breakdown so sums never cross
    breakdown groups.
    """
    return _bucket_match_clause("lessOrEquals", dates_alias, counts_column, buckets_column)


def build_direct_clause(
    dates_alias: str = "bucket_dates",
    counts_column: str = "raw_count",
    buckets_column: str = "bucket_start",
) -> exp.Expression:
    """Per bucket, the raw count of exactly that bucket (0 when absent)."""
    return _bucket_match_clause("equals", dates_alias, counts_column, buckets_column)


def _normalize(raw_counts: Mapping) -> dict[str, float]:
    normalized: dict[str, float] = {}
    for key, value in raw_counts.items():
        day = bucket_key(key)
        normalized[day] = normalized.get(day, 0) + value
    return normalized


def fill_forward(raw_counts: Mapping, dates: list) -> list[float]:
    """Cumulative series over a dense bucket calendar.

    Args:
        raw_counts: Sparse bucket -> count for ONE breakdown group
        dates: Dense, ascending bucket calendar

    Returns:
        One running total per date; zeros when ``raw_counts`` is empty

    Example:
        fill_forward({"2024-01-01": 3, "2024-01-03": 2}, ["2024-01-01", "2024-01-02", "2024-01-03"])
        -> [3, 3, 5]
    """
    counts = sorted(_normalize(raw_counts).items())
    series = []
    running = 0
    position = 0
    for bucket in dates:
        key = bucket_key(bucket)
        while position < len(counts) and counts[position][0] <= key:
            running += counts[position][1]
            position += 1
        series.append(running)
    return series


def direct_series(raw_counts: Mapping, dates: list) -> list[float]:
    """Per-bucket counts over a dense bucket calendar (missing buckets are 0)."""
    counts = _normalize(raw_counts)
    return [counts.get(bucket_key(bucket), 0) for bucket in dates]
