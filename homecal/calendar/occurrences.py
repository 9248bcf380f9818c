"""Concrete occurrence listing for a date range.

Used by callers that need the effective occurrences of an event rather
than the raw rule instants, such as the ``occurrences`` CLI command.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..core.timezone_utils import canonical_instant
from . import rrule_expander
from .exception_resolver import Deleted, ExceptionIndex, Overridden
from .models import CalendarEvent, CalendarOccurrence, OneOffSchedule, RecurringSchedule

logger = logging.getLogger(__name__)


def _base_occurrence(event: CalendarEvent, start: datetime, end: datetime, original_start: datetime | None) -> CalendarOccurrence:
    return CalendarOccurrence(
        event_id=event.id,
        title=event.title,
        description=event.description,
        location=event.location,
        start=start,
        end=end,
        is_all_day=event.is_all_day,
        original_start=original_start,
        members=list(event.members),
    )


def expand_event_occurrences(
    event: CalendarEvent,
    range_start: datetime,
    range_end: datetime,
) -> list[CalendarOccurrence]:
    """List the effective occurrences of ``event`` overlapping a range.

    A non-recurring event yields exactly one occurrence regardless of the
    range; the caller has already selected it. Recurring occurrences are
    those whose rule-generated span overlaps ``[range_start, range_end)``,
    cut at the series-end, with deleted occurrences dropped and overrides
    applied field by field.

    Raises:
        MalformedRuleError: If the event's rule cannot be parsed
    """
    schedule = event.schedule
    if isinstance(schedule, OneOffSchedule):
        return [_base_occurrence(event, schedule.start, schedule.end, None)]
    return _expand_recurring(event, schedule, range_start, range_end)


def _expand_recurring(
    event: CalendarEvent,
    schedule: RecurringSchedule,
    range_start: datetime,
    range_end: datetime,
) -> list[CalendarOccurrence]:
    duration = schedule.duration
    # Widen the lower bound so occurrences already running at range_start are included
    window = rrule_expander.expand(
        schedule.start,
        schedule.end,
        schedule.rule,
        range_start - duration,
        range_end,
    )
    index = ExceptionIndex(event.exceptions)
    lower = canonical_instant(range_start)

    occurrences: list[CalendarOccurrence] = []
    for original_start in window:
        if not rrule_expander.before_series_end(original_start, schedule.series_end):
            break
        if duration and original_start + duration <= lower:
            continue
        if not duration and original_start < lower:
            continue

        resolution = index.resolve(original_start)
        if isinstance(resolution, Deleted):
            continue
        if isinstance(resolution, Overridden):
            start = resolution.effective_start or original_start
            occurrences.append(
                CalendarOccurrence(
                    event_id=event.id,
                    title=resolution.effective_title or event.title,
                    description=resolution.description if resolution.description is not None else event.description,
                    location=resolution.location if resolution.location is not None else event.location,
                    start=start,
                    end=resolution.effective_end or start + duration,
                    is_all_day=resolution.is_all_day if resolution.is_all_day is not None else event.is_all_day,
                    original_start=original_start,
                    members=list(event.members),
                )
            )
        else:
            occurrences.append(_base_occurrence(event, original_start, original_start + duration, original_start))

    logger.debug(
        "Expanded event %s into %d occurrence(s) for %s..%s",
        event.id,
        len(occurrences),
        range_start.isoformat(),
        range_end.isoformat(),
    )
    return occurrences
