"""Typed metric results returned by the assemblers."""

from pydantic import BaseModel, ConfigDict, Field

from hogmetrics.core.breakdown import BreakdownSeries
from hogmetrics.core.time_window import TimeWindow


class MetricModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class CumulativeDataPoint(MetricModel):
    """Total across all breakdowns at one date."""

    date: str
    total: float
    breakdown: str | None = None


class CumulativeMetrics(MetricModel):
    """Cumulative series split by a breakdown.

    ``total`` is the sum of each series' final value, never a re-summation of
    raw counts.
    """

    time_window: TimeWindow
    total: float = 0
    data_points: list[CumulativeDataPoint] = Field(default_factory=list)
    breakdown_series: list[BreakdownSeries] = Field(default_factory=list)


class InstallMetrics(CumulativeMetrics):
    total_installs: float = 0


class ProjectMetrics(CumulativeMetrics):
    total_projects: float = 0
    total_organizations: int = Field(default=0, description="Distinct organizations, excluding unknown")


class RecentDeployment(MetricModel):
    deploy_id: str | None = None
    project_name: str | None = None
    repo_url: str | None = None
    status: str | None = None
    created_at: str | None = None
    org_id: str | None = None


class DeploymentMetrics(CumulativeMetrics):
    total_deployments: float = 0
    total_organizations: int = Field(default=0, description="Distinct organizations, excluding unknown")
    recent_deployments: list[RecentDeployment] = Field(default_factory=list)


class CommandMetrics(MetricModel):
    """Per-bucket CLI command usage."""

    time_window: TimeWindow
    total_commands: float = 0
    top_commands: list[BreakdownSeries] = Field(default_factory=list)


class StarDataPoint(MetricModel):
    date: str
    stars: float


class GitHubStarMetrics(MetricModel):
    """Net GitHub stars. ``current_stars`` may be negative when removals outnumber additions."""

    time_window: TimeWindow
    current_stars: float = 0
    stars_added: float = 0
    stars_removed: float = 0
    net_stars: float = 0
    time_series: list[StarDataPoint] = Field(default_factory=list)


class FunnelStep(MetricModel):
    event_name: str
    event_label: str
    user_count: float = 0
    completion_rate: float = Field(default=0, description="Percent of step 1 users")
    drop_off_rate: float = Field(default=0, description="Percent lost since the previous step")


class FunnelMetrics(MetricModel):
    time_window: TimeWindow
    journey_id: str | None = None
    journey_name: str | None = None
    product: str | None = None
    total_started: float = 0
    total_completed: float = 0
    completion_rate: float = 0
    avg_time_to_complete: float | None = Field(default=None, description="Seconds, when any person completed")
    steps: list[FunnelStep] = Field(default_factory=list)


class DailyUsers(MetricModel):
    date: str
    users: float


class ProductMetrics(MetricModel):
    product: str
    time_window: TimeWindow
    dau: float = Field(default=0, description="Average daily distinct users")
    mau: float = Field(default=0, description="Distinct users over the window")
    conversion_rate: float = Field(default=0, description="Percent of users with a conversion event")
    engagement_score: float = Field(default=0, description="Events per user")
    specific_metrics: dict[str, float] = Field(default_factory=dict)
    chart_data: list[DailyUsers] = Field(default_factory=list)
    github_stars: float | None = None


class ProductSummary(MetricModel):
    dau: float = 0
    mau: float = 0


class OverviewMetrics(MetricModel):
    time_window: TimeWindow
    total_users: float = 0
    total_active_users: float = 0
    total_events: float = 0
    products_metrics: dict[str, ProductSummary] = Field(default_factory=dict)
