"""Time windows, interval units and bucket calendars."""

from datetime import date, datetime, timedelta, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hogmetrics.errors import ValidationError

IntervalUnit = Literal["day", "week", "month"]
INTERVAL_UNITS: tuple[str, ...] = ("day", "week", "month")

HOGQL_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_instant(value: str | datetime | date) -> datetime:
    """Parse an ISO-8601 instant into an aware UTC datetime.

    Naive values are treated as UTC. Dates become midnight UTC.

    Raises:
        ValidationError: If the value is not a parseable instant
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(value.strip())
        except (AttributeError, ValueError) as e:
            raise ValidationError(f"Invalid instant: {value!r}") from e

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_hogql_datetime(value: str | datetime | date) -> str:
    """Format an instant as ``YYYY-MM-DD HH:MM:SS`` in UTC.

    No offset and no fractional seconds: this is the literal format the query
    engine expects.

    Example:
        format_hogql_datetime("2024-03-15T08:30:00.000Z") -> "2024-03-15 08:30:00"
    """
    return parse_instant(value).strftime(HOGQL_DATETIME_FORMAT)


def validate_interval(interval: str) -> IntervalUnit:
    """Check an interval unit against the supported set.

    Raises:
        ValidationError: If the unit is not day, week or month
    """
    if interval not in INTERVAL_UNITS:
        raise ValidationError(
            f"Unsupported interval: '{interval}'. Use one of: {', '.join(INTERVAL_UNITS)}",
            details={"interval": interval},
        )
    return interval  # type: ignore[return-value]


def floor_to_interval(value: datetime | date, interval: IntervalUnit) -> date:
    """Floor an instant to the start of its bucket.

    Weeks start on Sunday, matching ``toStartOfWeek`` in its default mode.
    """
    day = parse_instant(value).date() if isinstance(value, datetime) else value
    if interval == "day":
        return day
    if interval == "week":
        # date.weekday(): Monday=0 ... Sunday=6
        return day - timedelta(days=(day.weekday() + 1) % 7)
    if interval == "month":
        return day.replace(day=1)
    validate_interval(interval)
    raise AssertionError("unreachable")


def _next_bucket(day: date, interval: IntervalUnit) -> date:
    if interval == "day":
        return day + timedelta(days=1)
    if interval == "week":
        return day + timedelta(weeks=1)
    if day.month == 12:
        return day.replace(year=day.year + 1, month=1, day=1)
    return day.replace(month=day.month + 1, day=1)


def bucket_dates(start: datetime | date, end: datetime | date, interval: IntervalUnit) -> list[date]:
    """Dense list of bucket starts spanning ``[floor(start), floor(end)]`` inclusive.

    Args:
        start: Window start
        end: Window end
        interval: Bucket width

    Returns:
        Ascending list of bucket start dates (empty if end precedes start)
    """
    validate_interval(interval)
    current = floor_to_interval(start, interval)
    last = floor_to_interval(end, interval)

    dates = []
    while current <= last:
        dates.append(current)
        current = _next_bucket(current, interval)
    return dates


def bucket_key(value: str | datetime | date) -> str:
    """Canonical ``YYYY-MM-DD`` key for a bucket boundary.

    Warehouse rows return bucket starts as ``2024-03-15``,
    ``2024-03-15 00:00:00`` or ``2024-03-15T00:00:00-07:00``; they all map to
    the same key. Bucket starts are already in the project timezone, so the
    offset is ignored rather than converted.

    Raises:
        ValueError: If the value does not start with an ISO date
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    return date.fromisoformat(text[:10]).isoformat()


def _is_date_only(value: str) -> bool:
    try:
        date.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        return False
    return True


class ComparisonPeriod(BaseModel):
    """Named comparison period, carried through unchanged."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    start_date: datetime
    end_date: datetime


class TimeWindow(BaseModel):
    """Query range for one metric request.

    Example:
        TimeWindow(start_date="2024-03-01T00:00:00Z", end_date="2024-03-31T23:59:59Z")
    """

    model_config = ConfigDict(frozen=True)

    start_date: datetime = Field(..., description="Inclusive start instant")
    end_date: datetime = Field(..., description="Inclusive end instant")
    comparison_periods: list[ComparisonPeriod] = Field(default_factory=list)

    @field_validator("start_date", "end_date", mode="after")
    @classmethod
    def normalize_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def check_order(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

    @classmethod
    def from_strings(cls, start: str, end: str) -> "TimeWindow":
        """Build a window from ISO-8601 strings.

        A date-only end covers that whole day, so "2024-01-31" ends at 23:59:59.

        Raises:
            ValidationError: If either value is unparseable or start > end
        """
        start_dt = parse_instant(start)
        end_dt = parse_instant(end)
        if _is_date_only(end):
            end_dt = end_dt.replace(hour=23, minute=59, second=59)
        if start_dt > end_dt:
            raise ValidationError(
                "start_date must not be after end_date",
                details={"start_date": start, "end_date": end},
            )
        return cls(start_date=start_dt, end_date=end_dt)

    @property
    def start(self) -> str:
        """Start formatted for HogQL."""
        return format_hogql_datetime(self.start_date)

    @property
    def end(self) -> str:
        """End formatted for HogQL."""
        return format_hogql_datetime(self.end_date)

    def buckets(self, interval: IntervalUnit) -> list[date]:
        return bucket_dates(self.start_date, self.end_date, interval)
