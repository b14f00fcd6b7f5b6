"""Funnel and journey metrics."""

import logging

from hogmetrics.core.filters import FilterOptions
from hogmetrics.core.journeys import JourneyDefinition, event_label, get_journey
from hogmetrics.core.results import scalar_value, to_number
from hogmetrics.core.time_window import TimeWindow
from hogmetrics.errors import ValidationError
from hogmetrics.metrics.base import Assembler, error_boundary
from hogmetrics.metrics.models import FunnelMetrics, FunnelStep

logger = logging.getLogger(__name__)


def _percent(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0


def compute_funnel_steps(events: list[str], counts: list[float]) -> list[FunnelStep]:
    """Per-step completion and drop-off rates.

    Completion is relative to step 1's count. Drop-off is relative to the
    previous step's count; step 1's drop-off is 0.

    Example:
        compute_funnel_steps(["a", "b", "c"], [100, 60, 60])
        -> completion 100/60/60, drop-off 0/40/0
    """
    started = counts[0] if counts else 0
    steps = []
    for index, event in enumerate(events):
        count = counts[index] if index < len(counts) else 0
        if index == 0:
            drop_off = 0.0
        else:
            previous = counts[index - 1] if index - 1 < len(counts) else 0
            drop_off = _percent(previous - count, previous)
        steps.append(
            FunnelStep(
                event_name=event,
                event_label=event_label(event),
                user_count=count,
                completion_rate=_percent(count, started),
                drop_off_rate=drop_off,
            )
        )
    return steps


class FunnelAssembler(Assembler):
    """Builds funnel metrics for ad-hoc event lists or codified journeys."""

    def get_funnel(
        self,
        time_window: TimeWindow,
        events: list[str],
        *,
        filter_options: FilterOptions | None = None,
        journey: JourneyDefinition | None = None,
    ) -> FunnelMetrics:
        """Compute funnel metrics for an ordered list of events.

        Args:
            time_window: Query range
            events: Ordered funnel events
            filter_options: Internal traffic toggles
            journey: Journey the events come from, for labelling

        Returns:
            FunnelMetrics

        Raises:
            ValidationError: If no events are given
        """
        if not events:
            raise ValidationError("A funnel needs at least one event")

        with error_boundary("journey metrics"):
            counts_query = self.compiler.compile_funnel(time_window, events, filter_options=filter_options)
            duration_query = self.compiler.compile_funnel_duration(time_window, events, filter_options=filter_options)
            counts_result, duration_result = self.execute_many([counts_query, duration_query])

            row = counts_result.results[0] if counts_result.results else []
            counts = [to_number(row[i]) if i < len(row) else 0 for i in range(len(events))]
            steps = compute_funnel_steps(events, counts)

            avg_time = None
            if duration_result.results and duration_result.results[0] and duration_result.results[0][0] is not None:
                avg_time = scalar_value(duration_result.results)

            total_started = counts[0]
            total_completed = counts[-1]
            logger.debug(f"Funnel of {len(events)} steps: {total_started} started, {total_completed} completed")
            return FunnelMetrics(
                time_window=time_window,
                journey_id=journey.id if journey else None,
                journey_name=journey.name if journey else None,
                product=journey.product if journey else None,
                total_started=total_started,
                total_completed=total_completed,
                completion_rate=_percent(total_completed, total_started),
                avg_time_to_complete=avg_time,
                steps=steps,
            )

    def get_journey(
        self,
        time_window: TimeWindow,
        journey_id: str,
        *,
        filter_options: FilterOptions | None = None,
    ) -> FunnelMetrics:
        """Funnel metrics for a codified journey.

        Raises:
            ValidationError: If the journey is unknown
        """
        journey = get_journey(journey_id)
        return self.get_funnel(time_window, journey.events, filter_options=filter_options, journey=journey)
