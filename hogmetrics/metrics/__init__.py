"""Metric assemblers built on the query compiler."""

from hogmetrics.metrics.cumulative import CumulativeMetricsAssembler
from hogmetrics.metrics.github import GitHubStarsAssembler
from hogmetrics.metrics.journeys import FunnelAssembler
from hogmetrics.metrics.overview import OverviewAssembler
from hogmetrics.metrics.product import ProductMetricsAssembler

__all__ = [
    "CumulativeMetricsAssembler",
    "FunnelAssembler",
    "GitHubStarsAssembler",
    "OverviewAssembler",
    "ProductMetricsAssembler",
]
