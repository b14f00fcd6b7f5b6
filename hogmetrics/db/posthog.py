"""PostHog query API client."""

import logging
from typing import Any

import requests

from hogmetrics.config import DEFAULT_POSTHOG_HOST, PostHogConnection
from hogmetrics.core.dialect import CompiledQuery
from hogmetrics.db.base import BaseWarehouseClient, QueryResult
from hogmetrics.errors import ConfigurationError, ExternalAPIError

logger = logging.getLogger(__name__)


class PostHogClient(BaseWarehouseClient):
    """Runs HogQL queries through the PostHog query endpoint.

    Example:
        >>> client = PostHogClient(project_id="12345", api_key="phx_...")
        >>> result = client.execute(compiled_query)
        >>> result.results
    """

    def __init__(
        self,
        project_id: str | None,
        api_key: str | None,
        host: str = DEFAULT_POSTHOG_HOST,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        """Initialize the client.

        Args:
            project_id: PostHog project ID
            api_key: Personal API key with query read access
            host: PostHog instance URL
            timeout: Request timeout in seconds
            session: Optional pre-configured requests session

        Raises:
            ConfigurationError: If project_id or api_key is missing
        """
        missing = [name for name, value in (("project_id", project_id), ("api_key", api_key)) if not value]
        if missing:
            raise ConfigurationError(
                f"PostHog connection is missing: {', '.join(missing)}. "
                f"Set POSTHOG_PROJECT_ID and POSTHOG_API_KEY or add them to hogmetrics.yaml.",
                details={"missing": missing},
            )

        self.project_id = str(project_id)
        self.host = host.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    @classmethod
    def from_config(cls, connection: PostHogConnection, session: requests.Session | None = None) -> "PostHogClient":
        return cls(
            project_id=connection.project_id,
            api_key=connection.api_key,
            host=connection.host,
            timeout=connection.timeout,
            session=session,
        )

    @property
    def name(self) -> str:
        return "PostHog"

    @property
    def query_url(self) -> str:
        return f"{self.host}/api/projects/{self.project_id}/query/"

    def execute(self, query: CompiledQuery) -> QueryResult:
        """POST the query payload and return its rows."""
        logger.debug(f"Executing HogQL query: {query.sql}")
        try:
            response = self.session.post(self.query_url, json={"query": query.to_payload()}, timeout=self.timeout)
        except requests.RequestException as e:
            raise ExternalAPIError(self.name, f"Request failed: {e}") from e

        if not response.ok:
            raise ExternalAPIError(
                self.name,
                f"{response.status_code} {response.reason}: {_error_detail(response)}",
                details={"status": response.status_code},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ExternalAPIError(self.name, "Response was not valid JSON") from e

        results = body.get("results") or []
        logger.debug(f"HogQL query returned {len(results)} rows")
        return QueryResult(results=results, columns=body.get("columns") or [])

    def close(self) -> None:
        self.session.close()


def _error_detail(response: requests.Response) -> str:
    try:
        body: Any = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)
