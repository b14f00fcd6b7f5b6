"""Tests for the cross-product overview."""

from hogmetrics.config import HogMetricsConfig, ProductSettings
from hogmetrics.metrics.overview import OverviewAssembler


def test_overview_delegates_to_each_product(warehouse, window):
    warehouse.respond("AS users, count() AS events", [[1000, 5000]])
    warehouse.respond("toDate(timestamp) AS day", [["2024-01-01", 10], ["2024-01-02", 20]])
    warehouse.respond("count() AS events, uniqExact", [[300, 50]])

    metrics = OverviewAssembler(warehouse).get_overview(window)

    assert metrics.total_users == 1000
    assert metrics.total_active_users == 1000
    assert metrics.total_events == 5000
    assert set(metrics.products_metrics) == {"boreal", "moosestack"}
    assert metrics.products_metrics["boreal"].dau == 15
    assert metrics.products_metrics["moosestack"].mau == 50


def test_overview_follows_configured_products(warehouse, window):
    config = HogMetricsConfig(products={"aurora": ProductSettings(name="aurora")})

    metrics = OverviewAssembler(warehouse, config).get_overview(window)

    assert list(metrics.products_metrics) == ["aurora"]
    assert metrics.total_users == 0
