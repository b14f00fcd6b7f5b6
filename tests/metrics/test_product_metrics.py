"""Tests for product metrics."""

import pytest

from hogmetrics.errors import ConfigurationError, ValidationError
from hogmetrics.metrics.product import ProductMetricsAssembler, average_daily_users


def _respond_usage(warehouse):
    warehouse.respond("countIf(", [[7, 3]])
    warehouse.respond("toDate(timestamp) AS day", [["2024-01-01", 10], ["2024-01-02", 20]])
    warehouse.respond("count() AS events, uniqExact", [[300, 50]])
    warehouse.respond("{conversion", [[10]])
    return warehouse


def test_boreal_metrics(warehouse, window):
    _respond_usage(warehouse)

    metrics = ProductMetricsAssembler(warehouse).get_product("boreal", window)

    assert metrics.dau == 15
    assert metrics.mau == 50
    assert metrics.engagement_score == 6
    assert metrics.conversion_rate == 20
    assert metrics.specific_metrics == {"deployments": 7, "active_projects": 3}
    assert [d.date for d in metrics.chart_data] == ["2024-01-01", "2024-01-02"]
    assert metrics.github_stars is None


def test_product_predicate_values(warehouse, window):
    ProductMetricsAssembler(warehouse).get_product("boreal", window)

    for query in warehouse.queries:
        assert query.values["product"] == "boreal"
        assert query.values["product_prefix"] == "boreal_%"


def test_counter_patterns_use_like_only_with_wildcards(warehouse, window):
    ProductMetricsAssembler(warehouse).get_product("moosestack", window)

    counters = next(q for q in warehouse.queries if "countIf(" in q.sql)
    assert "countIf(like(event, {counter" in counters.sql
    assert "countIf(equals(event, {counter" in counters.sql
    assert "%build%" in counters.values.values()


def test_no_users_means_zero_rates(warehouse, window):
    metrics = ProductMetricsAssembler(warehouse).get_product("boreal", window)

    assert metrics.dau == 0
    assert metrics.conversion_rate == 0
    assert metrics.engagement_score == 0


def test_star_failure_is_omitted(warehouse, window):
    warehouse.respond("properties.action", RuntimeError("rate limited"))
    _respond_usage(warehouse)

    metrics = ProductMetricsAssembler(warehouse).get_product("moosestack", window)

    assert metrics.github_stars is None
    assert metrics.mau == 50


def test_star_configuration_error_is_raised(warehouse, window):
    warehouse.respond("properties.action", ConfigurationError("missing api key"))
    _respond_usage(warehouse)

    with pytest.raises(ConfigurationError):
        ProductMetricsAssembler(warehouse).get_product("moosestack", window)


def test_stars_are_attached(warehouse, window):
    warehouse.respond("notEquals(properties.action", [["2024-01-01", 12]])
    _respond_usage(warehouse)

    metrics = ProductMetricsAssembler(warehouse).get_product("moosestack", window)

    assert metrics.github_stars == 12


def test_unknown_product(warehouse, window):
    with pytest.raises(ValidationError) as info:
        ProductMetricsAssembler(warehouse).get_product("sloan", window)
    assert info.value.details == {"product": "sloan"}


def test_average_daily_users_empty():
    assert average_daily_users([]) == 0
