"""Codified user journeys (ordered event funnels) per product."""

from pydantic import BaseModel, ConfigDict, Field

from hogmetrics.errors import ValidationError


class JourneyDefinition(BaseModel):
    """An ordered sequence of events describing a user progression."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    product: str
    events: list[str] = Field(..., min_length=1)
    expected_duration: str | None = None
    success_criteria: str | None = None


BOREAL_JOURNEYS = [
    JourneyDefinition(
        id="boreal-onboarding",
        name="Boreal Onboarding",
        description="User journey from signup to first deployment and domain configuration",
        product="boreal",
        events=["boreal_signup", "boreal_project_created", "boreal_first_deployment", "boreal_domain_configured"],
        expected_duration="2 hours",
        success_criteria="User completes domain configuration within 24 hours of signup",
    ),
    JourneyDefinition(
        id="boreal-activation",
        name="Boreal Activation",
        description="User journey from account creation to production traffic",
        product="boreal",
        events=[
            "boreal_account_created",
            "boreal_environment_setup",
            "boreal_app_deployed",
            "boreal_production_traffic",
        ],
        expected_duration="1 day",
        success_criteria="User receives production traffic within 3 days",
    ),
    JourneyDefinition(
        id="boreal-retention",
        name="Boreal Retention",
        description="User retention journey tracking activity over 3 months",
        product="boreal",
        events=["boreal_first_deploy", "boreal_week_1_activity", "boreal_week_4_activity", "boreal_month_3_active"],
        expected_duration="3 months",
        success_criteria="User remains active after 3 months",
    ),
]

MOOSESTACK_JOURNEYS = [
    JourneyDefinition(
        id="moosestack-discovery",
        name="Moosestack Discovery",
        description="User journey from documentation to installation",
        product="moosestack",
        events=["moosestack_docs_landing", "moosestack_docs_read", "moosestack_install_viewed", "moosestack_installed"],
        expected_duration="1 hour",
        success_criteria="User installs Moosestack after viewing documentation",
    ),
    JourneyDefinition(
        id="moosestack-first-value",
        name="Moosestack First Value",
        description="User journey from installation to running dev server",
        product="moosestack",
        events=["moosestack_installed", "moosestack_init_project", "moosestack_first_build", "moosestack_dev_server"],
        expected_duration="30 minutes",
        success_criteria="User starts dev server within 1 hour of installation",
    ),
    JourneyDefinition(
        id="moosestack-adoption",
        name="Moosestack Adoption",
        description="User journey from first project to production and repeat usage",
        product="moosestack",
        events=[
            "moosestack_first_project",
            "moosestack_feature_used",
            "moosestack_production_build",
            "moosestack_repeat_usage",
        ],
        expected_duration="1 week",
        success_criteria="User builds for production and continues using Moosestack",
    ),
]

JOURNEYS: dict[str, JourneyDefinition] = {j.id: j for j in BOREAL_JOURNEYS + MOOSESTACK_JOURNEYS}

EVENT_LABELS: dict[str, str] = {
    "boreal_signup": "Sign Up",
    "boreal_project_created": "Project Created",
    "boreal_first_deployment": "First Deployment",
    "boreal_domain_configured": "Domain Configured",
    "boreal_account_created": "Account Created",
    "boreal_environment_setup": "Environment Setup",
    "boreal_app_deployed": "App Deployed",
    "boreal_production_traffic": "Production Traffic",
    "boreal_first_deploy": "First Deploy",
    "boreal_week_1_activity": "Week 1 Activity",
    "boreal_week_4_activity": "Week 4 Activity",
    "boreal_month_3_active": "Month 3 Active",
    "moosestack_docs_landing": "Docs Landing",
    "moosestack_docs_read": "Docs Read",
    "moosestack_install_viewed": "Install Viewed",
    "moosestack_installed": "Installed",
    "moosestack_init_project": "Init Project",
    "moosestack_first_build": "First Build",
    "moosestack_dev_server": "Dev Server Started",
    "moosestack_first_project": "First Project",
    "moosestack_feature_used": "Feature Used",
    "moosestack_production_build": "Production Build",
    "moosestack_repeat_usage": "Repeat Usage",
}


def get_journey(journey_id: str) -> JourneyDefinition:
    """Look up a journey by id.

    Raises:
        ValidationError: If the journey is unknown
    """
    journey = JOURNEYS.get(journey_id)
    if journey is None:
        raise ValidationError(
            f"Unknown journey: '{journey_id}'. Available: {', '.join(sorted(JOURNEYS))}",
            details={"journey_id": journey_id},
        )
    return journey


def journeys_for_product(product: str) -> list[JourneyDefinition]:
    return [journey for journey in JOURNEYS.values() if journey.product == product]


def event_label(event: str) -> str:
    """Human readable label for an event, falling back to the event name."""
    return EVENT_LABELS.get(event, event)
