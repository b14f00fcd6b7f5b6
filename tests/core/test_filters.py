"""Tests for the filter builder."""

from sqlglot import select

from hogmetrics.config import TrafficFilterSettings
from hogmetrics.core.dialect import func, prop, render
from hogmetrics.core.filters import (
    FilterOptions,
    build_date_range_filter,
    build_internal_traffic_filters,
    build_property_in_filter,
    build_where_clause,
    combine_filters,
)


def _sql(expression):
    return render(select(expression))


def test_date_range_floors_lower_bound():
    query = _sql(combine_filters(build_date_range_filter("2024-01-03", "2024-01-31", interval="week")))

    assert "greaterOrEquals(timestamp, toStartOfWeek(assumeNotNull(toDateTime({date_from})), 0))" in query.sql
    assert "lessOrEquals(timestamp, assumeNotNull(toDateTime({date_to})))" in query.sql
    assert query.values == {"date_from": "2024-01-03 00:00:00", "date_to": "2024-01-31 00:00:00"}


def test_date_range_on_custom_field():
    query = _sql(combine_filters(build_date_range_filter("2024-01-01", "2024-02-01", field="created_at", interval="month")))

    assert "greaterOrEquals(created_at, toStartOfMonth(" in query.sql


def test_traffic_filters_in_order():
    filters = build_internal_traffic_filters()
    rendered = [_sql(f).sql for f in filters]

    assert len(filters) == 8
    assert "match(toString(properties.$host), {localhost_pattern})" in rendered[0]
    assert "ifNull(" in rendered[0]
    assert "has({internal_ips}, toString(properties.$ip))" in rendered[1]
    assert "notILike(toString(properties.$pathname), {studio_path})" in rendered[2]
    assert "properties.$referring_domain" in rendered[3]
    assert "notEquals(properties.is_moose_developer, true)" in rendered[4]
    assert "notEquals(properties.is_developer, true)" in rendered[5]
    assert "person.properties.email" in rendered[6]
    assert "raw_cohort_people" in rendered[7]


def test_traffic_filter_values():
    query = _sql(combine_filters(build_internal_traffic_filters()))
    settings = TrafficFilterSettings()

    assert query.values["internal_ips"] == settings.internal_ips
    assert query.values["cohort_id"] == 172499
    assert query.values["cohort_version"] == 40
    assert query.values["internal_email"] == "%fiveonefour.com%"


def test_disabled_options_produce_no_filters():
    assert build_internal_traffic_filters(FilterOptions.none()) == []


def test_single_toggle():
    options = FilterOptions.none().model_copy(update={"exclude_internal_ips": True})
    filters = build_internal_traffic_filters(options)

    assert len(filters) == 1
    assert "internal_ips" in _sql(filters[0]).values


def test_settings_override_constants():
    settings = TrafficFilterSettings(internal_ips=["10.0.0.1"], developer_flags=[])
    options = FilterOptions.none().model_copy(update={"exclude_internal_ips": True, "exclude_developers": True})
    query = _sql(combine_filters(build_internal_traffic_filters(options, settings)))

    assert query.values == {"internal_ips": ["10.0.0.1"]}


def test_combine_filters_shapes():
    one = func("equals", prop("a"), prop("b"))

    assert _sql(combine_filters([])).sql == "SELECT 1 = 1"
    assert combine_filters([one]) is one
    assert _sql(combine_filters([one, one.copy()])).sql.startswith("SELECT and(")


def test_property_in_filter_stringifies_values():
    query = _sql(build_property_in_filter("properties.cli_name", ["moose", 1], hint="products"))

    assert "has({products}, toString(properties.cli_name))" in query.sql
    assert query.values == {"products": ["moose", "1"]}


def test_where_clause_order(window):
    query = _sql(build_where_clause(window, "moose_cli_command", additional=[func("equals", prop("x"), prop("y"))]))
    sql = query.sql

    assert sql.index("greaterOrEquals(timestamp") < sql.index("equals(event, {event})")
    assert sql.index("equals(event, {event})") < sql.index("{localhost_pattern}")
    assert sql.index("raw_cohort_people") < sql.index("equals(x, y)")
    assert query.values["event"] == "moose_cli_command"


def test_where_clause_without_traffic_filters(window):
    query = _sql(build_where_clause(window, apply_traffic_filters=False, field="created_at"))

    assert "localhost_pattern" not in query.values
    assert set(query.values) == {"date_from", "date_to"}
