"""Tests for top-N breakdown collapsing."""

from hogmetrics.core.breakdown import (
    BreakdownPoint,
    BreakdownSeries,
    collapse_breakdowns,
    combine_series,
    order_breakdowns,
)


def _flat(value):
    return {"2024-01-01": value}


def test_collapse_keeps_top_n_and_merges_rest():
    result = collapse_breakdowns(
        {"a": _flat(100), "b": _flat(80), "c": _flat(60), "d": _flat(40), "e": _flat(20)},
        top_n=3,
    )

    assert [s.breakdown for s in result.series] == ["a", "b", "c", "other"]
    assert result.series[-1].total == 60
    assert result.grand_total == 300


def test_grand_total_is_preserved_by_collapsing():
    series = {f"org_{i}": {"2024-01-01": i, "2024-01-02": i * 2} for i in range(1, 11)}
    full = collapse_breakdowns(series, top_n=0)
    collapsed = collapse_breakdowns(series, top_n=2)

    assert collapsed.grand_total == full.grand_total == sum(i * 2 for i in range(1, 11))


def test_ties_are_broken_by_name():
    result = collapse_breakdowns({"zeta": _flat(5), "alpha": _flat(5), "mid": _flat(9)}, top_n=10)

    assert [s.breakdown for s in result.series] == ["mid", "alpha", "zeta"]


def test_unknown_sorts_after_real_breakdowns():
    result = collapse_breakdowns({"unknown": _flat(500), "a": _flat(1)}, top_n=10)

    assert [s.breakdown for s in result.series] == ["a", "unknown"]


def test_incoming_other_is_merged_not_duplicated():
    result = collapse_breakdowns({"other": _flat(7), "a": _flat(3), "b": _flat(2)}, top_n=1)

    assert [s.breakdown for s in result.series] == ["a", "other"]
    assert result.series[-1].total == 9


def test_non_positive_top_n_keeps_everything():
    result = collapse_breakdowns({"a": _flat(1), "b": _flat(2)}, top_n=0)

    assert len(result.series) == 2
    assert all(s.breakdown != "other" for s in result.series)


def test_cumulative_total_is_last_value():
    result = collapse_breakdowns({"a": {"2024-01-01": 3, "2024-01-02": 5}}, top_n=5)

    assert result.series[0].total == 5


def test_direct_total_is_sum():
    result = collapse_breakdowns({"a": {"2024-01-01": 3, "2024-01-02": 5}}, top_n=5, cumulative=False)

    assert result.series[0].total == 8


def test_merged_other_sums_per_date():
    result = collapse_breakdowns(
        {
            "a": {"2024-01-01": 10, "2024-01-02": 10},
            "b": {"2024-01-01": 1, "2024-01-02": 2},
            "c": {"2024-01-01": 3, "2024-01-02": 4},
        },
        top_n=1,
    )
    other = result.series[-1]

    assert [(p.date, p.cumulative_total) for p in other.data_points] == [("2024-01-01", 4), ("2024-01-02", 6)]
    assert other.total == 6


def test_empty_input():
    result = collapse_breakdowns({}, top_n=3)

    assert result.series == []
    assert result.grand_total == 0


def test_order_breakdowns_puts_other_last():
    series = [
        BreakdownSeries(breakdown="other", total=1000),
        BreakdownSeries(breakdown="unknown", total=500),
        BreakdownSeries(breakdown="a", total=1),
    ]

    assert [s.breakdown for s in order_breakdowns(series)] == ["a", "unknown", "other"]


def test_combine_series():
    series = [
        BreakdownSeries(breakdown="moose", data_points=[BreakdownPoint(date="2024-01-01", cumulative_total=3)]),
        BreakdownSeries(breakdown="aurora", data_points=[BreakdownPoint(date="2024-01-01", cumulative_total=2)]),
    ]

    assert combine_series(series, ["2024-01-01", "2024-01-02"]) == [("2024-01-01", 5), ("2024-01-02", 0)]


def test_tie_at_cutoff_keeps_both_leaders():
    result = collapse_breakdowns({"a": _flat(50), "b": _flat(50), "c": _flat(30), "d": _flat(10)}, top_n=2)

    assert [(s.breakdown, s.total) for s in result.series] == [("a", 50), ("b", 50), ("other", 40)]
    assert result.grand_total == 140


def test_merged_sparse_running_totals_hold_last_value():
    result = collapse_breakdowns(
        {
            "a": {"2024-01-01": 100},
            "b": {"2024-01-01": 2},
            "c": {"2024-01-02": 5},
        },
        top_n=1,
    )
    other = result.series[-1]

    assert [(p.date, p.cumulative_total) for p in other.data_points] == [("2024-01-01", 2), ("2024-01-02", 7)]
    assert other.total == other.data_points[-1].cumulative_total == 7
