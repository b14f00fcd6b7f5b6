"""Tests for funnel and journey metrics."""

import pytest

from hogmetrics.errors import ValidationError
from hogmetrics.metrics.journeys import FunnelAssembler, compute_funnel_steps


def test_step_rates():
    steps = compute_funnel_steps(["a", "b", "c"], [100, 60, 60])

    assert [s.completion_rate for s in steps] == [100, 60, 60]
    assert [s.drop_off_rate for s in steps] == [0, 40, 0]


def test_zero_counts_do_not_divide_by_zero():
    steps = compute_funnel_steps(["a", "b"], [0, 0])

    assert [s.completion_rate for s in steps] == [0, 0]
    assert [s.drop_off_rate for s in steps] == [0, 0]


def test_step_labels():
    steps = compute_funnel_steps(["moosestack_installed", "custom"], [1, 1])

    assert [s.event_label for s in steps] == ["Installed", "custom"]


def test_get_funnel(warehouse, window):
    warehouse.respond("step_1", [[100, 60, 60]])
    warehouse.respond("avg_seconds", [[3600.5]])

    metrics = FunnelAssembler(warehouse).get_funnel(window, ["a", "b", "c"])

    assert metrics.total_started == 100
    assert metrics.total_completed == 60
    assert metrics.completion_rate == 60
    assert metrics.avg_time_to_complete == 3600.5
    assert [s.user_count for s in metrics.steps] == [100, 60, 60]
    assert metrics.journey_id is None


def test_average_time_is_absent_without_completions(warehouse, window):
    warehouse.respond("step_1", [[10, 0]])
    warehouse.respond("avg_seconds", [[None]])

    metrics = FunnelAssembler(warehouse).get_funnel(window, ["a", "b"])

    assert metrics.avg_time_to_complete is None
    assert metrics.completion_rate == 0


def test_get_journey(warehouse, window):
    warehouse.respond("step_1", [[5, 4, 3, 2, 1]])

    metrics = FunnelAssembler(warehouse).get_journey(window, "moosestack-discovery")

    assert metrics.journey_id == "moosestack-discovery"
    assert metrics.product == "moosestack"
    assert metrics.steps[0].event_name == "moosestack_docs_landing"


def test_unknown_journey(warehouse, window):
    with pytest.raises(ValidationError):
        FunnelAssembler(warehouse).get_journey(window, "nope")


def test_empty_funnel(warehouse, window):
    with pytest.raises(ValidationError):
        FunnelAssembler(warehouse).get_funnel(window, [])
    assert warehouse.queries == []
