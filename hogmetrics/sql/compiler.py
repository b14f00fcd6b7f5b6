"""Compile metric requests into HogQL queries.

Two strategies produce the same final series:

- ``in_process``: the warehouse returns sparse ``(bucket_start, breakdown_value,
  raw_count)`` rows; fill-forward and top-N collapsing happen in Python.
- ``warehouse``: the query itself builds the dense date array, the per-breakdown
  cumulative or direct totals, ranks breakdowns with ``row_number()`` and
  collapses everything past the cutoff into the other bucket.

Query structure (warehouse strategy, with a breakdown):

    SELECT any(dates), sumForEach(totals), if(rank > top_n, other, key)   -- collapse
    FROM (SELECT ..., row_number() OVER (ORDER BY ...) AS breakdown_rank   -- rank
          FROM (SELECT key, date_array, fill_forward(...)                  -- series
                FROM (SELECT bucket, key, count() ... GROUP BY ...)        -- raw counts
                GROUP BY key))
    GROUP BY breakdown_value
    ORDER BY synthetic group, total DESC, breakdown_value
"""

from typing import Literal

from sqlglot import exp, select

from hogmetrics.config import QueryStrategy, TrafficFilterSettings
from hogmetrics.core.dialect import CompiledQuery, func, lambda_, num, param, prop, ref, render, string
from hogmetrics.core.filters import FilterOptions, build_where_clause
from hogmetrics.core.results import NULL_BREAKDOWN_TOKEN, OTHER_BREAKDOWN_TOKEN
from hogmetrics.core.time_series import (
    build_breakdown_value_clause,
    build_bucket_expression,
    build_cumulative_clause,
    build_date_array_clause,
    build_direct_clause,
)
from hogmetrics.core.time_window import IntervalUnit, TimeWindow, validate_interval
from hogmetrics.errors import ValidationError
from hogmetrics.sql.sources import QuerySource, events_source

Aggregation = Literal["cumulative", "direct"]
CountMode = Literal["events", "first_seen"]

# HogQL caps returned rows at this value
MAX_ROWS = 50000

_AGGREGATIONS = ("cumulative", "direct")
_COUNT_MODES = ("events", "first_seen")
_STRATEGIES = ("in_process", "warehouse")


def _check_choice(value: str, choices: tuple[str, ...], name: str) -> None:
    if value not in choices:
        raise ValidationError(
            f"Invalid {name}: '{value}'. Use one of: {', '.join(choices)}",
            details={name: value},
        )


def validate_breakdown_property(breakdown: str) -> str:
    """Check that a breakdown is a field path, not free text.

    Raises:
        ValidationError: If the breakdown is not a dotted identifier path
    """
    prop(breakdown)
    return breakdown


def _asc(expression: exp.Expression) -> exp.Ordered:
    return exp.Ordered(this=expression, desc=False)


def _desc(expression: exp.Expression) -> exp.Ordered:
    return exp.Ordered(this=expression, desc=True)


class QueryCompiler:
    """Builds metric queries from filters, bucket clauses and a source.

    Args:
        settings: Internal traffic filter constants
        strategy: Default strategy for ``compile``
    """

    def __init__(self, settings: TrafficFilterSettings | None = None, strategy: QueryStrategy = "in_process"):
        _check_choice(strategy, _STRATEGIES, "strategy")
        self.settings = settings or TrafficFilterSettings()
        self.strategy = strategy

    def where_clause(
        self,
        time_window: TimeWindow,
        source: QuerySource,
        *,
        interval: IntervalUnit = "day",
        filter_options: FilterOptions | None = None,
        extra_filters: list[exp.Expression] | None = None,
    ) -> exp.Expression:
        """Standard WHERE predicate for a source over a window."""
        return build_where_clause(
            time_window,
            source.event,
            filter_options,
            extra_filters,
            field=source.timestamp_field,
            interval=interval,
            settings=self.settings,
            apply_traffic_filters=source.apply_traffic_filters,
        )

    def compile(
        self,
        time_window: TimeWindow,
        source: QuerySource,
        *,
        breakdown: str | None = None,
        interval: IntervalUnit = "day",
        aggregation: Aggregation = "cumulative",
        count_mode: CountMode = "events",
        filter_options: FilterOptions | None = None,
        extra_filters: list[exp.Expression] | None = None,
        top_n: int = 25,
        strategy: QueryStrategy | None = None,
    ) -> CompiledQuery:
        """Compile a time series query.

        Args:
            time_window: Query range
            source: Table or event to read
            breakdown: Field path to split series by
            interval: Bucket width
            aggregation: "cumulative" running totals or "direct" per-bucket counts
            count_mode: "events" counts rows; "first_seen" counts each person once,
                in the bucket of their first matching row
            filter_options: Internal traffic toggles
            extra_filters: Additional predicates ANDed into the WHERE clause
            top_n: Breakdowns kept by the warehouse strategy (<= 0 keeps all)
            strategy: Overrides the compiler's default strategy

        Returns:
            CompiledQuery with "scalar" rows (in_process) or "array" rows (warehouse)

        Raises:
            ValidationError: If the breakdown, interval or a mode is invalid
        """
        interval = validate_interval(interval)
        strategy = strategy or self.strategy
        _check_choice(aggregation, _AGGREGATIONS, "aggregation")
        _check_choice(count_mode, _COUNT_MODES, "count_mode")
        _check_choice(strategy, _STRATEGIES, "strategy")
        if breakdown is not None:
            validate_breakdown_property(breakdown)

        where = self.where_clause(
            time_window, source, interval=interval, filter_options=filter_options, extra_filters=extra_filters
        )
        raw = self._raw_counts(source, where, breakdown, interval, count_mode)

        if strategy == "in_process":
            order = [_asc(ref("bucket_start"))]
            if breakdown is not None:
                order.append(_asc(ref("breakdown_value")))
            return render(raw.order_by(*order).limit(MAX_ROWS), shape="scalar")

        return render(
            self._warehouse_series(raw, time_window, breakdown, interval, aggregation, top_n),
            shape="array",
        )

    def _raw_counts(
        self,
        source: QuerySource,
        where: exp.Expression,
        breakdown: str | None,
        interval: IntervalUnit,
        count_mode: CountMode,
    ) -> exp.Select:
        bucket = build_bucket_expression(prop(source.timestamp_field), interval)
        group = ["bucket_start"] if breakdown is None else ["bucket_start", "breakdown_value"]

        if count_mode == "events":
            columns = [exp.alias_(bucket, "bucket_start")]
            if breakdown is not None:
                columns.append(exp.alias_(build_breakdown_value_clause(breakdown), "breakdown_value"))
            columns.append(exp.alias_(func("count"), "raw_count"))
            return (
                select(*columns)
                .from_(source.relation())
                .where(where)
                .group_by(*[ref(name) for name in group])
            )

        # first_seen: bucket each person at their earliest row, per breakdown
        person_columns = [exp.alias_(prop(source.person_field), "person")]
        if breakdown is not None:
            person_columns.append(exp.alias_(build_breakdown_value_clause(breakdown), "breakdown_value"))
        person_columns.append(exp.alias_(func("min", bucket), "bucket_start"))
        first_seen = (
            select(*person_columns)
            .from_(source.relation())
            .where(where)
            .group_by(*[ref(name) for name in ["person"] + group[1:]])
        )

        return (
            select(*[ref(name) for name in group], exp.alias_(func("count"), "raw_count"))
            .from_(first_seen.subquery("first_seen"))
            .group_by(*[ref(name) for name in group])
        )

    def _warehouse_series(
        self,
        raw: exp.Select,
        time_window: TimeWindow,
        breakdown: str | None,
        interval: IntervalUnit,
        aggregation: Aggregation,
        top_n: int,
    ) -> exp.Select:
        clause = build_cumulative_clause if aggregation == "cumulative" else build_direct_clause
        date_array = build_date_array_clause(time_window.start_date, time_window.end_date, interval)

        if breakdown is None:
            return select(
                exp.alias_(date_array, "bucket_dates"),
                exp.alias_(clause("bucket_dates"), "bucket_totals"),
            ).from_(raw.subquery("raw_counts"))

        series = (
            select(
                exp.alias_(ref("breakdown_value"), "breakdown_key"),
                exp.alias_(date_array, "dates"),
                exp.alias_(clause("dates"), "totals"),
            )
            .from_(raw.subquery("raw_counts"))
            .group_by(ref("breakdown_value"))
        )

        null_token = param("breakdown_null", NULL_BREAKDOWN_TOKEN)
        other_token = param("breakdown_other", OTHER_BREAKDOWN_TOKEN)

        rank_window = exp.Window(
            this=func("row_number"),
            order=exp.Order(
                expressions=[
                    _asc(func("if", func("equals", ref("breakdown_key"), null_token.copy()), num(1), num(0))),
                    _desc(self._series_total(ref("totals"), aggregation)),
                    _asc(ref("breakdown_key")),
                ]
            ),
        )
        ranked = select(
            ref("dates"),
            ref("totals"),
            ref("breakdown_key"),
            exp.alias_(rank_window, "breakdown_rank"),
        ).from_(series.subquery("series"))

        if top_n > 0:
            beyond_cutoff = func("greater", ref("breakdown_rank"), param("top_n", top_n))
            label = func("if", beyond_cutoff, other_token.copy(), ref("breakdown_key"))
        else:
            label = ref("breakdown_key")

        synthetic_group = func(
            "multiIf",
            func("equals", ref("breakdown_value"), other_token.copy()),
            num(2),
            func("equals", ref("breakdown_value"), null_token.copy()),
            num(1),
            num(0),
        )
        return (
            select(
                exp.alias_(func("any", ref("dates")), "bucket_dates"),
                exp.alias_(func("sumForEach", ref("totals")), "bucket_totals"),
                exp.alias_(label, "breakdown_value"),
            )
            .from_(ranked.subquery("ranked"))
            .group_by(ref("breakdown_value"))
            .order_by(
                _asc(synthetic_group),
                _desc(self._series_total(ref("bucket_totals"), aggregation)),
                _asc(ref("breakdown_value")),
            )
            .limit(MAX_ROWS)
        )

    @staticmethod
    def _series_total(values: exp.Expression, aggregation: Aggregation) -> exp.Expression:
        if aggregation == "cumulative":
            return func("arrayElement", values, num(-1))
        return func("arraySum", values)

    def compile_select(
        self,
        time_window: TimeWindow,
        source: QuerySource,
        columns: list[exp.Expression],
        *,
        interval: IntervalUnit = "day",
        filter_options: FilterOptions | None = None,
        extra_filters: list[exp.Expression] | None = None,
        group_by: list[str] | None = None,
        order_by: list[exp.Ordered] | None = None,
        limit: int | None = None,
    ) -> CompiledQuery:
        """Compile a plain aggregate or listing query over a source.

        Args:
            time_window: Query range
            source: Table or event to read
            columns: Select expressions (use ``exp.alias_`` to name them)
            interval: Floors the lower date bound
            filter_options: Internal traffic toggles
            extra_filters: Additional predicates
            group_by: Column aliases to group by
            order_by: Ordering expressions
            limit: Row limit

        Returns:
            CompiledQuery with scalar rows
        """
        where = self.where_clause(
            time_window, source, interval=interval, filter_options=filter_options, extra_filters=extra_filters
        )
        query = select(*columns).from_(source.relation()).where(where)
        if group_by:
            query = query.group_by(*[ref(name) for name in group_by])
        if order_by:
            query = query.order_by(*order_by)
        if limit is not None:
            query = query.limit(limit)
        return render(query, shape="scalar")

    def compile_funnel(
        self,
        time_window: TimeWindow,
        events: list[str],
        *,
        filter_options: FilterOptions | None = None,
    ) -> CompiledQuery:
        """Distinct persons reaching each funnel step.

        A person reaches step N when they performed every event of steps 1..N
        within the window. Returns one row with one count per step.

        Raises:
            ValidationError: If no events are given
        """
        if not events:
            raise ValidationError("A funnel needs at least one event")

        per_person = self._funnel_persons(time_window, events, filter_options)
        steps = [
            exp.alias_(func("countIf", self._performed_all(param("funnel_step", events[: i + 1]))), f"step_{i + 1}")
            for i in range(len(events))
        ]
        return render(select(*steps).from_(per_person.subquery("journeys")), shape="scalar")

    def compile_funnel_duration(
        self,
        time_window: TimeWindow,
        events: list[str],
        *,
        filter_options: FilterOptions | None = None,
    ) -> CompiledQuery:
        """Average seconds from the first step to the last step, over completing persons.

        Raises:
            ValidationError: If no events are given
        """
        if not events:
            raise ValidationError("A funnel needs at least one event")

        per_person = self._funnel_persons(time_window, events, filter_options)
        per_person = per_person.select(
            exp.alias_(
                func("minIf", prop("timestamp"), func("equals", prop("event"), param("first_step", events[0]))),
                "started_at",
            ),
            exp.alias_(
                func("maxIf", prop("timestamp"), func("equals", prop("event"), param("last_step", events[-1]))),
                "completed_at",
            ),
        )
        duration = func("dateDiff", string("second"), ref("started_at"), ref("completed_at"))
        query = (
            select(exp.alias_(func("avg", duration), "avg_seconds"))
            .from_(per_person.subquery("journeys"))
            .where(
                func(
                    "and",
                    self._performed_all(param("funnel_events", events)),
                    func("greaterOrEquals", ref("completed_at"), ref("started_at")),
                )
            )
        )
        return render(query, shape="scalar")

    def _funnel_persons(
        self,
        time_window: TimeWindow,
        events: list[str],
        filter_options: FilterOptions | None,
    ) -> exp.Select:
        source = events_source()
        funnel_filter = func("has", param("funnel_events", events), prop("event"))
        where = self.where_clause(time_window, source, filter_options=filter_options, extra_filters=[funnel_filter])
        return (
            select(
                exp.alias_(prop(source.person_field), "person"),
                exp.alias_(func("groupUniqArray", prop("event")), "person_events"),
            )
            .from_(source.relation())
            .where(where)
            .group_by(ref("person"))
        )

    @staticmethod
    def _performed_all(required: exp.Expression) -> exp.Expression:
        return func("arrayAll", lambda_(["step"], func("has", ref("person_events"), ref("step"))), required)

