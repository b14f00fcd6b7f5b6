"""Decode warehouse result rows into time series points.

The query endpoint returns ``results`` as a list of rows, each row a list of
columns. Two row shapes are produced by the compiler:

- array rows: ``[bucket_dates[], values[], breakdown]``, one row per breakdown
- scalar rows: ``[bucket_date, breakdown, value]``, one row per (date, breakdown)

Each shape has its own decoder. ``parse_rows`` picks the decoder from the
query's declared shape, or from the first column of each row when no shape
is given.
"""

from dataclasses import dataclass
from typing import Any, Sequence

from hogmetrics.core.time_window import bucket_key
from hogmetrics.errors import ResultParseError, ValidationError

NULL_BREAKDOWN_TOKEN = "$$_posthog_breakdown_null_$$"
OTHER_BREAKDOWN_TOKEN = "$$_posthog_breakdown_other_$$"

# Public labels; the warehouse tokens above never leave this module.
OTHER_BREAKDOWN = "other"
UNKNOWN_BREAKDOWN = "unknown"


@dataclass(frozen=True)
class TimeSeriesDataPoint:
    """One bucket value, optionally tagged with a breakdown."""

    date: str
    value: float
    breakdown: str | None = None


def to_number(value: Any) -> float:
    """Coerce a numeric or numeric-string cell. Null counts as 0.

    Raises:
        ResultParseError: If the value is not numeric
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ResultParseError(f"Expected a number, got {value!r}") from e
    return int(number) if number.is_integer() else number


def decode_breakdown(value: Any) -> str | None:
    """Normalize a breakdown cell to a label or None.

    Accepts a scalar, a single-element list, or nothing. Empty strings and the
    null token mean "absent"; the other token becomes ``"other"``.
    """
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    label = str(value)
    if label == "" or label == NULL_BREAKDOWN_TOKEN:
        return None
    if label == OTHER_BREAKDOWN_TOKEN:
        return OTHER_BREAKDOWN
    return label


def decode_date(value: Any) -> str:
    """Normalize a bucket date cell to ``YYYY-MM-DD``.

    Raises:
        ResultParseError: If the date is null or unparseable
    """
    if value is None or value == "":
        raise ResultParseError("Result row has a null bucket date")
    try:
        return bucket_key(value)
    except (ValueError, ValidationError) as e:
        raise ResultParseError(f"Unparseable bucket date: {value!r}") from e


class ArrayRow:
    """Decoder for ``[dates[], values[], breakdown?]`` rows."""

    shape = "array"

    @staticmethod
    def matches(row: Sequence[Any]) -> bool:
        return bool(row) and isinstance(row[0], (list, tuple))

    @staticmethod
    def decode(row: Sequence[Any]) -> list[TimeSeriesDataPoint]:
        if len(row) < 2:
            raise ResultParseError(f"Array row needs dates and values, got {len(row)} columns")
        dates, values = row[0], row[1]
        if not isinstance(values, (list, tuple)):
            raise ResultParseError("Array row values column is not an array")
        if len(dates) != len(values):
            raise ResultParseError(f"Array row has {len(dates)} dates but {len(values)} values")

        breakdown = decode_breakdown(row[2]) if len(row) > 2 else None
        return [
            TimeSeriesDataPoint(date=decode_date(d), value=to_number(v), breakdown=breakdown)
            for d, v in zip(dates, values)
        ]


class ScalarRow:
    """Decoder for ``[date, breakdown, value]`` rows (or ``[date, value]``)."""

    shape = "scalar"

    @staticmethod
    def matches(row: Sequence[Any]) -> bool:
        return bool(row) and not isinstance(row[0], (list, tuple))

    @staticmethod
    def decode(row: Sequence[Any]) -> list[TimeSeriesDataPoint]:
        if len(row) == 2:
            return [TimeSeriesDataPoint(date=decode_date(row[0]), value=to_number(row[1]))]
        if len(row) < 3:
            raise ResultParseError(f"Scalar row needs at least 2 columns, got {len(row)}")
        return [
            TimeSeriesDataPoint(
                date=decode_date(row[0]),
                value=to_number(row[2]),
                breakdown=decode_breakdown(row[1]),
            )
        ]


_DECODERS = {"array": ArrayRow, "scalar": ScalarRow}


def parse_rows(rows: Sequence[Sequence[Any]] | None, shape: str | None = None) -> list[TimeSeriesDataPoint]:
    """Flatten result rows into time series points.

    Args:
        rows: Raw ``results`` from the warehouse (None is treated as empty)
        shape: "array" or "scalar"; detected per row when omitted

    Returns:
        Points in row order

    Raises:
        ResultParseError: If a row cannot be decoded
    """
    if shape is not None and shape not in _DECODERS:
        raise ResultParseError(f"Unknown row shape: {shape}")

    points: list[TimeSeriesDataPoint] = []
    for row in rows or []:
        if not row:
            continue
        if shape is not None:
            decoder = _DECODERS[shape]
        else:
            decoder = ArrayRow if ArrayRow.matches(row) else ScalarRow
        points.extend(decoder.decode(row))
    return points


def group_by_breakdown(
    points: list[TimeSeriesDataPoint], unknown_label: str = UNKNOWN_BREAKDOWN
) -> dict[str, dict[str, float]]:
    """Group points into breakdown -> {date: value}.

    Points without a breakdown are grouped under ``unknown_label``. Repeated
    (breakdown, date) pairs are summed.
    """
    grouped: dict[str, dict[str, float]] = {}
    for point in points:
        key = point.breakdown if point.breakdown is not None else unknown_label
        series = grouped.setdefault(key, {})
        series[point.date] = series.get(point.date, 0) + point.value
    return grouped


def scalar_value(rows: Sequence[Sequence[Any]] | None, row: int = 0, column: int = 0) -> float:
    """Read one numeric cell from an aggregate result, defaulting to 0."""
    if not rows or len(rows) <= row or len(rows[row]) <= column:
        return 0
    return to_number(rows[row][column])
