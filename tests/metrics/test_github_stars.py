"""Tests for GitHub star metrics."""

from hogmetrics.metrics.github import GitHubStarsAssembler, net_star_series


def test_net_stars_can_go_negative(warehouse, window):
    warehouse.respond("notEquals(properties.action", [["2024-01-01", 5]])
    warehouse.respond("equals(properties.action", [["2024-01-01", 3], ["2024-01-03", 5]])

    metrics = GitHubStarsAssembler(warehouse).get_stars(window)

    assert [p.stars for p in metrics.time_series] == [2, 2, -3]
    assert metrics.current_stars == -3
    assert metrics.stars_added == 5
    assert metrics.stars_removed == 8
    assert metrics.net_stars == -3


def test_star_queries_share_one_calendar(warehouse, window):
    GitHubStarsAssembler(warehouse).get_stars(window)

    assert len(warehouse.queries) == 2
    assert all(q.values["action"] == "deleted" for q in warehouse.queries)
    assert all(q.values["event"] == "GitHub Star" for q in warehouse.queries)


def test_no_stars(warehouse, window):
    metrics = GitHubStarsAssembler(warehouse).get_stars(window)

    assert metrics.current_stars == 0
    assert len(metrics.time_series) == 3


def test_net_star_series():
    points = net_star_series(["2024-01-01"], [4], [1])

    assert points[0].date == "2024-01-01"
    assert points[0].stars == 3
