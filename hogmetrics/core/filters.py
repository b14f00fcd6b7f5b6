"""Predicate builders for HogQL WHERE clauses.

Every builder returns sqlglot expressions; nothing here produces raw SQL
text. Literal values always go through ``param`` so they reach the query
engine as placeholder values.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field
from sqlglot import exp

from hogmetrics.config import TrafficFilterSettings
from hogmetrics.core.dialect import func, num, param, prop, table
from hogmetrics.core.time_window import IntervalUnit, TimeWindow, format_hogql_datetime, validate_interval

FLOOR_FUNCTIONS: dict[str, str] = {
    "day": "toStartOfDay",
    "week": "toStartOfWeek",
    "month": "toStartOfMonth",
}


class FilterOptions(BaseModel):
    """Internal traffic exclusion toggles. Every toggle defaults to enabled."""

    model_config = ConfigDict(frozen=True)

    exclude_localhost: bool = Field(default=True, description="Drop events whose $host is localhost")
    exclude_internal_ips: bool = Field(default=True, description="Drop events from office IPs")
    exclude_studio_paths: bool = Field(default=True, description="Drop local studio page views")
    exclude_internal_domains: bool = Field(default=True, description="Drop internal referrers")
    exclude_developers: bool = Field(default=True, description="Drop events flagged as developer traffic")
    exclude_developer_cohort: bool = Field(default=True, description="Drop members of the developer cohort")
    exclude_internal_emails: bool = Field(default=True, description="Drop persons with internal emails")

    @classmethod
    def none(cls) -> "FilterOptions":
        """Options with every exclusion disabled."""
        return cls(**{name: False for name in cls.model_fields})


def floor_to_interval_expr(value: exp.Expression, interval: IntervalUnit) -> exp.Expression:
    """Wrap an expression in the bucket-start function for an interval."""
    validate_interval(interval)
    if interval == "week":
        # Mode 0: weeks start on Sunday
        return func(FLOOR_FUNCTIONS[interval], value, num(0))
    return func(FLOOR_FUNCTIONS[interval], value)


def datetime_param(hint: str, value: str | datetime | date) -> exp.Expression:
    """``assumeNotNull(toDateTime({hint}))`` with the value in HogQL datetime format."""
    return func("assumeNotNull", func("toDateTime", param(hint, format_hogql_datetime(value))))


def build_date_range_filter(
    start: str | datetime | date,
    end: str | datetime | date,
    field: str = "timestamp",
    interval: IntervalUnit = "day",
) -> list[exp.Expression]:
    """Build the lower and upper bound predicates for a time field.

    The lower bound is floored to the start of its interval so the first bucket
    is a whole bucket, matching the date array generated for the same window.

    Args:
        start: Window start
        end: Window end
        field: Timestamp field path
        interval: Bucket width used to floor the lower bound

    Returns:
        [greaterOrEquals(field, floor(start)), lessOrEquals(field, end)]
    """
    column = prop(field)
    return [
        func("greaterOrEquals", column, floor_to_interval_expr(datetime_param("date_from", start), interval)),
        func("lessOrEquals", column.copy(), datetime_param("date_to", end)),
    ]


def build_internal_traffic_filters(
    options: FilterOptions | None = None,
    settings: TrafficFilterSettings | None = None,
) -> list[exp.Expression]:
    """Build the internal traffic exclusion predicates.

    Args:
        options: Toggles (defaults to everything enabled)
        settings: Denylists and patterns (defaults to the built-in constants)

    Returns:
        Ordered predicates: localhost, internal IPs, studio paths, internal
        domains, developer flags, internal emails, developer cohort
    """
    options = options or FilterOptions()
    settings = settings or TrafficFilterSettings()
    filters: list[exp.Expression] = []

    if options.exclude_localhost:
        # Events with no $host are kept
        host = func("toString", prop("properties.$host"))
        is_local = func("match", host, param("localhost_pattern", settings.localhost_pattern))
        filters.append(func("ifNull", func("not", is_local), num(1)))

    if options.exclude_internal_ips and settings.internal_ips:
        ip = func("toString", prop("properties.$ip"))
        filters.append(func("not", func("has", param("internal_ips", settings.internal_ips), ip)))

    if options.exclude_studio_paths:
        pathname = func("toString", prop("properties.$pathname"))
        filters.append(func("notILike", pathname, param("studio_path", settings.studio_path_pattern)))

    if options.exclude_internal_domains:
        filters.append(
            func(
                "notILike",
                func("toString", prop("properties.$referring_domain")),
                param("internal_domain", settings.internal_domain_pattern),
            )
        )

    if options.exclude_developers:
        for flag in settings.developer_flags:
            filters.append(func("notEquals", prop(f"properties.{flag}"), exp.true()))

    if options.exclude_internal_emails:
        filters.append(
            func(
                "notILike",
                func("toString", prop("person.properties.email")),
                param("internal_email", settings.internal_email_pattern),
            )
        )

    if options.exclude_developer_cohort:
        filters.append(build_cohort_exclusion(settings.developer_cohort_id, settings.developer_cohort_version))

    return filters


def build_cohort_exclusion(cohort_id: int, version: int) -> exp.Expression:
    """``notIn(person_id, (SELECT person_id FROM raw_cohort_people WHERE ...))``."""
    members = (
        exp.select(prop("person_id"))
        .from_(table("raw_cohort_people"))
        .where(
            func(
                "and",
                func("equals", prop("cohort_id"), param("cohort_id", cohort_id)),
                func("equals", prop("version"), param("cohort_version", version)),
            )
        )
    )
    return func("notIn", prop("person_id"), members.subquery())


def build_event_filter(event: str) -> exp.Expression:
    """``equals(event, {event})``."""
    return func("equals", prop("event"), param("event", event))


def build_event_like_filter(pattern: str, hint: str = "event_pattern") -> exp.Expression:
    """``like(event, {pattern})``."""
    return func("like", prop("event"), param(hint, pattern))


def build_property_equals_filter(field: str, value, hint: str = "value") -> exp.Expression:
    return func("equals", prop(field), param(hint, value))


def build_property_not_equals_filter(field: str, value, hint: str = "value") -> exp.Expression:
    return func("notEquals", prop(field), param(hint, value))


def build_property_in_filter(field: str, values: list, hint: str = "values") -> exp.Expression:
    """``has({values}, toString(field))``: the field's value is one of ``values``."""
    return func("has", param(hint, [str(v) for v in values]), func("toString", prop(field)))


def combine_filters(filters: list[exp.Expression]) -> exp.Expression:
    """AND a list of predicates together.

    No predicates yields the tautology ``1 = 1``; a single predicate is returned
    unwrapped; several are wrapped in ``and(...)``.
    """
    if not filters:
        return exp.EQ(this=num(1), expression=num(1))
    if len(filters) == 1:
        return filters[0]
    return func("and", *filters)


def build_where_clause(
    time_window: TimeWindow,
    event: str | None = None,
    options: FilterOptions | None = None,
    additional: list[exp.Expression] | None = None,
    *,
    field: str = "timestamp",
    interval: IntervalUnit = "day",
    settings: TrafficFilterSettings | None = None,
    apply_traffic_filters: bool = True,
) -> exp.Expression:
    """Assemble the standard WHERE predicate for a metric query.

    Order: date range, event match, traffic exclusions, additional predicates.
    """
    filters = build_date_range_filter(time_window.start_date, time_window.end_date, field, interval)
    if event is not None:
        filters.append(build_event_filter(event))
    if apply_traffic_filters:
        filters.extend(build_internal_traffic_filters(options, settings))
    filters.extend(additional or [])
    return combine_filters(filters)
