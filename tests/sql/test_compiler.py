"""Tests for the query compiler."""

import pytest
from sqlglot import exp

from hogmetrics.core.dialect import func, prop
from hogmetrics.core.filters import FilterOptions
from hogmetrics.errors import ValidationError
from hogmetrics.sql.compiler import MAX_ROWS, QueryCompiler, validate_breakdown_property
from hogmetrics.sql.sources import DEPLOYMENTS_SOURCE, PROJECTS_SOURCE, events_source


@pytest.fixture
def compiler():
    return QueryCompiler()


def test_in_process_returns_sparse_rows(compiler, window):
    query = compiler.compile(window, events_source("moose_cli_command"), breakdown="properties.command")

    assert query.shape == "scalar"
    assert "AS bucket_start" in query.sql
    assert "AS breakdown_value" in query.sql
    assert "count() AS raw_count" in query.sql
    assert f"LIMIT {MAX_ROWS}" in query.sql
    assert query.values["event"] == "moose_cli_command"


def test_in_process_without_breakdown(compiler, window):
    query = compiler.compile(window, events_source("x"))

    assert "breakdown_value" not in query.sql
    assert "breakdown_null" not in query.values


def test_bucket_function_follows_interval(compiler, window):
    assert "toStartOfDay(timestamp)" in compiler.compile(window, events_source("x"), interval="day").sql
    assert "toStartOfWeek(timestamp, 0)" in compiler.compile(window, events_source("x"), interval="week").sql
    assert "toStartOfMonth(timestamp)" in compiler.compile(window, events_source("x"), interval="month").sql


def test_first_seen_counts_each_person_once(compiler, window):
    query = compiler.compile(
        window, events_source("install"), breakdown="properties.cli_name", count_mode="first_seen"
    )

    assert "person_id AS person" in query.sql
    assert "min(toStartOfDay(timestamp)) AS bucket_start" in query.sql
    assert "AS first_seen" in query.sql


def test_warehouse_strategy_collapses_in_query(window):
    compiler = QueryCompiler(strategy="warehouse")
    query = compiler.compile(window, events_source("x"), breakdown="properties.cli_name", top_n=5)

    assert query.shape == "array"
    assert "row_number() OVER (ORDER BY" in query.sql
    assert "sumForEach(totals) AS bucket_totals" in query.sql
    assert "greater(breakdown_rank, {top_n})" in query.sql
    assert "lessOrEquals(bucket, _match_date)" in query.sql
    assert query.values["top_n"] == 5
    assert query.values["breakdown_other"] == "$$_posthog_breakdown_other_$$"
    assert query.values["breakdown_null"] == "$$_posthog_breakdown_null_$$"


def test_warehouse_strategy_keeps_all_when_top_n_disabled(window):
    query = QueryCompiler(strategy="warehouse").compile(window, events_source("x"), breakdown="properties.a", top_n=0)

    assert "top_n" not in query.values
    assert "breakdown_rank, {top_n}" not in query.sql


def test_warehouse_direct_aggregation(window):
    query = QueryCompiler(strategy="warehouse").compile(window, events_source("x"), aggregation="direct")

    assert "equals(bucket, _match_date)" in query.sql
    assert "bucket_dates" in query.sql


def test_strategy_override_per_call(compiler, window):
    query = compiler.compile(window, events_source("x"), strategy="warehouse")

    assert query.shape == "array"


def test_warehouse_tables_skip_traffic_filters(compiler, window):
    query = compiler.compile(window, PROJECTS_SOURCE, breakdown="org_id", interval="month")

    assert "`postgres.projects`" in query.sql
    assert "greaterOrEquals(created_at" in query.sql
    assert "localhost_pattern" not in query.values


def test_joined_source_is_a_derived_table(compiler, window):
    query = compiler.compile(window, DEPLOYMENTS_SOURCE, breakdown="org_id", interval="month")

    assert "`postgres.deploys` AS d" in query.sql
    assert "equals(d.project_id, p.project_id)" in query.sql
    assert "p.org_id AS org_id" in query.sql


def test_filter_options_pass_through(compiler, window):
    query = compiler.compile(window, events_source("x"), filter_options=FilterOptions.none())

    assert set(query.values) == {"date_from", "date_to", "event"}


def test_extra_filters_are_parameterized(compiler, window):
    extra = [func("equals", prop("properties.action"), exp.Literal.string("created"))]
    query = compiler.compile(window, events_source("x"), extra_filters=extra)

    assert "equals(properties.action, 'created')" in query.sql


@pytest.mark.parametrize(
    "kwargs",
    [
        {"interval": "hour"},
        {"aggregation": "rolling"},
        {"count_mode": "sessions"},
        {"strategy": "magic"},
        {"breakdown": "properties.x; DROP TABLE events"},
    ],
)
def test_invalid_arguments(compiler, window, kwargs):
    with pytest.raises(ValidationError):
        compiler.compile(window, events_source("x"), **kwargs)


def test_invalid_default_strategy():
    with pytest.raises(ValidationError):
        QueryCompiler(strategy="magic")


def test_validate_breakdown_property():
    assert validate_breakdown_property("properties.$browser") == "properties.$browser"


def test_compile_select(compiler, window):
    query = compiler.compile_select(
        window,
        events_source(),
        [exp.alias_(func("count"), "events")],
        order_by=[exp.Ordered(this=prop("events"), desc=True)],
        limit=10,
    )

    assert query.sql.startswith("SELECT count() AS events FROM events AS e")
    assert "ORDER BY events DESC" in query.sql
    assert "LIMIT 10" in query.sql


def test_compile_funnel(compiler, window):
    events = ["a", "b", "c"]
    query = compiler.compile_funnel(window, events)

    assert "AS step_1" in query.sql
    assert "AS step_3" in query.sql
    assert "groupUniqArray(event) AS person_events" in query.sql
    assert "arrayAll(step -> has(person_events, step)" in query.sql
    assert query.values["funnel_events"] == events
    steps = sorted((v for k, v in query.values.items() if k.startswith("funnel_step")), key=len)
    assert steps == [["a"], ["a", "b"], events]


def test_compile_funnel_duration(compiler, window):
    query = compiler.compile_funnel_duration(window, ["a", "b"])

    assert "avg(dateDiff('second', started_at, completed_at))" in query.sql
    assert "minIf(timestamp, equals(event, {first_step}))" in query.sql
    assert "maxIf(timestamp, equals(event, {last_step}))" in query.sql


def test_funnel_requires_events(compiler, window):
    with pytest.raises(ValidationError):
        compiler.compile_funnel(window, [])
    with pytest.raises(ValidationError):
        compiler.compile_funnel_duration(window, [])
