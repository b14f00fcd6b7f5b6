"""Configuration file format for hogmetrics."""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

DEFAULT_POSTHOG_HOST = "https://app.posthog.com"

# Office egress addresses
INTERNAL_IPS = ["131.226.35.186", "64.226.133.85"]

# Cohort of internal developer accounts; bump the version when the cohort is
# recalculated so stale snapshots stop matching.
DEVELOPER_COHORT_ID = 172499
DEVELOPER_COHORT_VERSION = 40

DEVELOPER_FLAGS = ["is_moose_developer", "is_developer"]
LOCALHOST_PATTERN = r"^(localhost|127\.0\.0\.1)($|:)"
STUDIO_PATH_PATTERN = "%/studio%"
INTERNAL_DOMAIN_PATTERN = "%commercial-company%"
INTERNAL_EMAIL_PATTERN = "%fiveonefour.com%"

QueryStrategy = Literal["in_process", "warehouse"]


class PostHogConnection(BaseModel):
    """PostHog query API connection configuration."""

    host: str = Field(default=DEFAULT_POSTHOG_HOST, description="PostHog instance URL")
    project_id: str | None = Field(default=None, description="PostHog project ID")
    api_key: str | None = Field(default=None, description="Personal API key (prefer POSTHOG_API_KEY)")
    timeout: float = Field(default=30.0, description="Request timeout in seconds")


class TrafficFilterSettings(BaseModel):
    """Constants used by the internal traffic exclusion predicates."""

    internal_ips: list[str] = Field(default_factory=lambda: list(INTERNAL_IPS))
    developer_cohort_id: int = Field(default=DEVELOPER_COHORT_ID)
    developer_cohort_version: int = Field(default=DEVELOPER_COHORT_VERSION)
    developer_flags: list[str] = Field(
        default_factory=lambda: list(DEVELOPER_FLAGS),
        description="Person/event boolean properties marking developer traffic",
    )
    localhost_pattern: str = Field(default=LOCALHOST_PATTERN, description="Regex matched against $host")
    studio_path_pattern: str = Field(default=STUDIO_PATH_PATTERN, description="ILIKE pattern for $pathname")
    internal_domain_pattern: str = Field(
        default=INTERNAL_DOMAIN_PATTERN, description="ILIKE pattern for $referring_domain"
    )
    internal_email_pattern: str = Field(
        default=INTERNAL_EMAIL_PATTERN, description="ILIKE pattern for person email"
    )


class ProductSettings(BaseModel):
    """Per-product event conventions."""

    name: str = Field(..., description="Product key, also the event name prefix")
    conversion_patterns: list[str] = Field(
        default_factory=list, description="Event LIKE patterns that count as a converted user"
    )
    counters: dict[str, str] = Field(
        default_factory=dict, description="Product specific counter name -> event LIKE pattern"
    )
    distinct_counters: dict[str, str] = Field(
        default_factory=dict, description="Counter name -> property whose distinct values are counted"
    )
    include_github_stars: bool = Field(default=False, description="Attach the GitHub star count to product metrics")

    def conversion_event_patterns(self) -> list[str]:
        """Conversion patterns, defaulting to the production/active event families."""
        if self.conversion_patterns:
            return list(self.conversion_patterns)
        return [f"{self.name}_production%", f"{self.name}_active%"]


def _default_products() -> dict[str, ProductSettings]:
    return {
        "boreal": ProductSettings(
            name="boreal",
            counters={"deployments": "boreal_deployment"},
            distinct_counters={"active_projects": "properties.project_id"},
        ),
        "moosestack": ProductSettings(
            name="moosestack",
            counters={
                "installs": "moosestack_installed",
                "doc_views": "moosestack_docs_read",
                "builds": "%build%",
            },
            include_github_stars=True,
        ),
    }


class HogMetricsConfig(BaseModel):
    """hogmetrics configuration file format.

    Can be saved as hogmetrics.yaml or hogmetrics.json. Secrets are better
    supplied through POSTHOG_API_KEY than written to the file.

    Example YAML:
        connection:
          host: https://eu.posthog.com
          project_id: "12345"
        default_top_n: 10
        query_strategy: warehouse
        filters:
          internal_ips:
            - 10.0.0.1
    """

    connection: PostHogConnection = Field(default_factory=PostHogConnection)
    filters: TrafficFilterSettings = Field(default_factory=TrafficFilterSettings)
    products: dict[str, ProductSettings] = Field(default_factory=_default_products)
    default_top_n: int = Field(default=25, description="Breakdowns kept before collapsing into 'other'")
    query_strategy: QueryStrategy = Field(
        default="in_process", description="Where top-N collapsing and fill-forward happen"
    )
    client_ttl_seconds: float = Field(default=3600.0, description="Lifetime of a cached warehouse client")
    max_workers: int = Field(default=4, description="Thread pool size for concurrent sub-queries")

    def get_product(self, product: str) -> ProductSettings:
        """Look up product settings.

        Raises:
            KeyError: If the product is not configured
        """
        return self.products[product]


def apply_env(config: HogMetricsConfig, environ: dict[str, str] | None = None) -> HogMetricsConfig:
    """Overlay POSTHOG_* environment variables onto the connection settings.

    Args:
        config: Loaded configuration
        environ: Environment mapping (defaults to os.environ)

    Returns:
        New config with environment values applied
    """
    env = os.environ if environ is None else environ
    overrides = {}
    if env.get("POSTHOG_HOST"):
        overrides["host"] = env["POSTHOG_HOST"]
    if env.get("POSTHOG_PROJECT_ID"):
        overrides["project_id"] = env["POSTHOG_PROJECT_ID"]
    if env.get("POSTHOG_API_KEY"):
        overrides["api_key"] = env["POSTHOG_API_KEY"]

    if not overrides:
        return config
    connection = config.connection.model_copy(update=overrides)
    return config.model_copy(update={"connection": connection})


def load_config(config_path: Path) -> HogMetricsConfig:
    """Load configuration from YAML or JSON file.

    Args:
        config_path: Path to config file (hogmetrics.yaml or hogmetrics.json)

    Returns:
        Loaded and validated configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file format is invalid
    """
    import json

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    if suffix in {".yaml", ".yml"}:
        import yaml

        with open(config_path) as f:
            data = yaml.safe_load(f)
    elif suffix == ".json":
        with open(config_path) as f:
            data = json.load(f)
    else:
        raise ValueError(f"Unsupported config format: {suffix}. Use .yaml, .yml, or .json")

    return HogMetricsConfig(**(data or {}))


def find_config(start_dir: Path | None = None) -> Path | None:
    """Find config file by searching up the directory tree.

    Searches for hogmetrics.yaml, hogmetrics.yml, or hogmetrics.json.

    Args:
        start_dir: Directory to start searching from (defaults to cwd)

    Returns:
        Path to config file if found, None otherwise
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        for name in ["hogmetrics.yaml", "hogmetrics.yml", "hogmetrics.json"]:
            config_path = current / name
            if config_path.exists():
                return config_path

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None
