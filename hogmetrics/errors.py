"""Error taxonomy for query construction and metric assembly."""

from typing import Any


class AnalyticsError(Exception):
    """Base class for all hogmetrics errors.

    Carries an HTTP-style status code and a machine-readable error code so the
    caller (usually an API route layer) can translate failures without
    inspecting messages.
    """

    status_code: int = 500
    code: str = "ANALYTICS_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for an API response body."""
        payload: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(AnalyticsError):
    """Raised when a required parameter is missing or invalid before a query is built."""

    status_code = 400
    code = "VALIDATION_ERROR"


class ConfigurationError(AnalyticsError):
    """Raised when required connection parameters are absent.

    Not retryable: it needs operator action and is never wrapped.
    """

    status_code = 500
    code = "CONFIGURATION_ERROR"


class ExternalAPIError(AnalyticsError):
    """Raised when an external service call fails or returns a non-success status."""

    status_code = 502
    code = "EXTERNAL_API_ERROR"

    def __init__(
        self,
        service: str,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            f"{service} API Error: {message}",
            status_code=status_code,
            details={"service": service, **(details or {})},
        )
        self.service = service


class ResultParseError(AnalyticsError):
    """Raised when a warehouse row cannot be decoded."""

    status_code = 502
    code = "RESULT_PARSE_ERROR"
