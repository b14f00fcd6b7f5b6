"""CLI for hogmetrics query compilation and metric assembly."""

import json
import logging
from pathlib import Path

import typer

from hogmetrics import __version__
from hogmetrics.config import HogMetricsConfig, apply_env, find_config, load_config
from hogmetrics.core.filters import FilterOptions
from hogmetrics.core.journeys import JOURNEYS, journeys_for_product
from hogmetrics.core.time_window import TimeWindow
from hogmetrics.db.cache import ClientCache
from hogmetrics.db.posthog import PostHogClient
from hogmetrics.errors import AnalyticsError
from hogmetrics.metrics.cumulative import SERIES_METRICS, CumulativeMetricsAssembler
from hogmetrics.metrics.github import GitHubStarsAssembler
from hogmetrics.metrics.journeys import FunnelAssembler
from hogmetrics.metrics.overview import OverviewAssembler
from hogmetrics.metrics.product import ProductMetricsAssembler


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"hogmetrics {__version__}")
        raise typer.Exit()


app = typer.Typer(
    help="hogmetrics: product analytics metrics over PostHog HogQL",
    no_args_is_help=True,
)

# Global state for config (set in callback, used in commands)
_loaded_config: HogMetricsConfig | None = None

START_OPTION = typer.Option(..., "--start", "-s", help="Window start (ISO 8601 date or datetime)")
END_OPTION = typer.Option(..., "--end", "-e", help="Window end (ISO 8601 date or datetime)")
NO_FILTERS_OPTION = typer.Option(False, "--include-internal", help="Keep internal and developer traffic")


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True, help="Show version"
    ),
    config: Path = typer.Option(None, "--config", "-c", help="Path to config file (hogmetrics.yaml)"),
    verbose: bool = typer.Option(False, "--verbose", help="Log queries and timings to stderr"),
):
    """hogmetrics CLI.

    You can use a config file (hogmetrics.yaml or hogmetrics.json) to set default values.
    POSTHOG_HOST, POSTHOG_PROJECT_ID and POSTHOG_API_KEY override the file's connection settings.
    """
    global _loaded_config

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    config_path = config or find_config()
    _loaded_config = None
    if config_path:
        try:
            _loaded_config = load_config(config_path)
            typer.echo(f"Loaded config from: {config_path}", err=True)
        except Exception as e:
            typer.echo(f"Warning: Failed to load config: {e}", err=True)


def _config() -> HogMetricsConfig:
    return apply_env(_loaded_config or HogMetricsConfig())


def _window(start: str, end: str) -> TimeWindow:
    try:
        return TimeWindow.from_strings(start, end)
    except AnalyticsError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)


def _filters(include_internal: bool) -> FilterOptions | None:
    return FilterOptions.none() if include_internal else None


def _run(assembler_class, method: str, *args, **kwargs):
    """Build an assembler over a cached PostHog client, call it and print JSON."""
    config = _config()
    cache = ClientCache(lambda: PostHogClient.from_config(config.connection), ttl_seconds=config.client_ttl_seconds)
    try:
        assembler = assembler_class(cache, config)
        metrics = getattr(assembler, method)(*args, **kwargs)
    except AnalyticsError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)
    finally:
        cache.invalidate()
    typer.echo(metrics.model_dump_json(indent=2))


@app.command()
def compile(
    metric: str = typer.Argument(..., help=f"Metric to compile: {', '.join(SERIES_METRICS)}"),
    start: str = START_OPTION,
    end: str = END_OPTION,
    interval: str = typer.Option(None, "--interval", "-i", help="Bucket width: day, week or month"),
    breakdown: str = typer.Option(None, "--breakdown", "-b", help="Field path to split series by"),
    top_n: int = typer.Option(None, "--top-n", "-n", help="Breakdowns kept before collapsing into 'other'"),
    strategy: str = typer.Option(None, "--strategy", help="in_process or warehouse"),
    include_internal: bool = NO_FILTERS_OPTION,
):
    """
    Compile a metric query to HogQL without running it.

    Prints the query text and its placeholder values.

    Examples:
      hogmetrics compile installs --start 2024-01-01 --end 2024-01-31
      hogmetrics compile commands -s 2024-01-01 -e 2024-03-31 --strategy warehouse
    """
    config = _config()
    if strategy:
        config = config.model_copy(update={"query_strategy": strategy})

    time_window = _window(start, end)
    try:
        assembler = CumulativeMetricsAssembler(None, config)
        query = assembler.compile_metric(
            metric,
            time_window,
            interval=interval,
            breakdown=breakdown,
            top_n=top_n,
            filter_options=_filters(include_internal),
        )
    except AnalyticsError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)

    typer.echo(query.sql)
    typer.echo(json.dumps(query.values, indent=2, default=str))


@app.command()
def installs(
    start: str = START_OPTION,
    end: str = END_OPTION,
    interval: str = typer.Option(None, "--interval", "-i", help="Bucket width (default: day)"),
    top_n: int = typer.Option(None, "--top-n", "-n", help="CLIs kept before collapsing into 'other'"),
    include_internal: bool = NO_FILTERS_OPTION,
):
    """Cumulative CLI installs per CLI."""
    _run(
        CumulativeMetricsAssembler,
        "get_installs",
        _window(start, end),
        interval=interval,
        top_n=top_n,
        filter_options=_filters(include_internal),
    )


@app.command()
def projects(
    start: str = START_OPTION,
    end: str = END_OPTION,
    interval: str = typer.Option(None, "--interval", "-i", help="Bucket width (default: month)"),
    top_n: int = typer.Option(None, "--top-n", "-n", help="Organizations kept before collapsing into 'other'"),
):
    """Cumulative projects per organization."""
    _run(CumulativeMetricsAssembler, "get_projects", _window(start, end), interval=interval, top_n=top_n)


@app.command()
def deployments(
    start: str = START_OPTION,
    end: str = END_OPTION,
    interval: str = typer.Option(None, "--interval", "-i", help="Bucket width (default: month)"),
    status: str = typer.Option(None, "--status", help="Only count deployments with this status"),
    top_n: int = typer.Option(None, "--top-n", "-n", help="Organizations kept before collapsing into 'other'"),
):
    """Cumulative deployments per organization, plus the most recent deployments."""
    _run(
        CumulativeMetricsAssembler,
        "get_deployments",
        _window(start, end),
        interval=interval,
        status=status,
        top_n=top_n,
    )


@app.command()
def commands(
    start: str = START_OPTION,
    end: str = END_OPTION,
    interval: str = typer.Option(None, "--interval", "-i", help="Bucket width (default: week)"),
    top_n: int = typer.Option(None, "--top-n", "-n", help="Commands kept before collapsing into 'other'"),
    include_internal: bool = NO_FILTERS_OPTION,
):
    """CLI command usage per bucket."""
    _run(
        CumulativeMetricsAssembler,
        "get_commands",
        _window(start, end),
        interval=interval,
        top_n=top_n,
        filter_options=_filters(include_internal),
    )


@app.command()
def stars(
    start: str = START_OPTION,
    end: str = END_OPTION,
    include_internal: bool = NO_FILTERS_OPTION,
):
    """Cumulative net GitHub stars."""
    _run(GitHubStarsAssembler, "get_stars", _window(start, end), filter_options=_filters(include_internal))


@app.command()
def journey(
    journey_id: str = typer.Argument(..., help="Journey ID (see `hogmetrics journeys`)"),
    start: str = START_OPTION,
    end: str = END_OPTION,
    include_internal: bool = NO_FILTERS_OPTION,
):
    """Funnel metrics for a codified user journey."""
    _run(FunnelAssembler, "get_journey", _window(start, end), journey_id, filter_options=_filters(include_internal))


@app.command()
def journeys(
    product: str = typer.Option(None, "--product", "-p", help="Only list journeys for this product"),
):
    """List the codified user journeys."""
    catalog = journeys_for_product(product) if product else list(JOURNEYS.values())
    if not catalog:
        typer.echo("No journeys found")
        raise typer.Exit(0)

    for definition in catalog:
        typer.echo(f"● {definition.id}")
        typer.echo(f"  Name: {definition.name}")
        typer.echo(f"  Product: {definition.product}")
        typer.echo(f"  Steps: {' → '.join(definition.events)}")
        typer.echo()


@app.command()
def product(
    name: str = typer.Argument(..., help="Configured product key, e.g. boreal"),
    start: str = START_OPTION,
    end: str = END_OPTION,
    include_internal: bool = NO_FILTERS_OPTION,
):
    """Usage metrics for one product."""
    _run(ProductMetricsAssembler, "get_product", name, _window(start, end), filter_options=_filters(include_internal))


@app.command()
def overview(
    start: str = START_OPTION,
    end: str = END_OPTION,
    include_internal: bool = NO_FILTERS_OPTION,
):
    """Overall users and events with per-product DAU and MAU."""
    _run(OverviewAssembler, "get_overview", _window(start, end), filter_options=_filters(include_internal))


if __name__ == "__main__":
    app()
