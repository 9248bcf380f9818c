"""iCalendar feed rendering.

One VEVENT per selected event, keyed by the event id. Recurrence is carried
by the event's own RRULE (bounded by the series-end as ``UNTIL``) plus one
EXDATE per deleted occurrence, so subscribing clients re-derive occurrences
themselves. Output is deterministic for identical input.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from collections.abc import Iterable
from typing import Optional, Union

from icalendar import Alarm, Calendar, Event, vRecur

from ..calendar import rrule_expander
from ..calendar.exception_resolver import ExceptionIndex
from ..calendar.models import CalendarEvent, CalendarEventException
from ..core.config_loader import Config
from ..core.exceptions import MalformedRuleError
from ..core.protocols import CalendarStore
from ..core.timezone_utils import canonical_instant, ensure_utc

logger = logging.getLogger(__name__)

ICS_CONTENT_TYPE = "text/calendar"


def _ical_value(value: datetime.datetime, all_day: bool) -> Union[datetime.date, datetime.datetime]:
    value = canonical_instant(value)
    return value.date() if all_day else value


def _all_day_end(start: datetime.datetime, end: datetime.datetime) -> datetime.date:
    # DTEND of a DATE event is exclusive; always cover at least the start day
    start_day = ensure_utc(start).date()
    end_day = ensure_utc(end).date()
    return end_day if end_day > start_day else start_day + datetime.timedelta(days=1)


def select_feed_events(
    events: Iterable[CalendarEvent],
    user_id: uuid.UUID,
    range_start: datetime.datetime,
    range_end: datetime.datetime,
) -> list[CalendarEvent]:
    """Events the user belongs to that can appear in ``[range_start, range_end)``.

    Any membership counts. Non-recurring events must overlap the range;
    recurring events must start before its end and not have a series-end at
    or before its start. Result is ordered by (start, id).
    """
    range_start = ensure_utc(range_start)
    range_end = ensure_utc(range_end)
    selected = []
    for event in events:
        if not event.has_member(user_id):
            continue
        if event.start >= range_end:
            continue
        if event.is_recurring:
            if event.recurrence_end is not None and event.recurrence_end <= range_start:
                continue
        elif event.end <= range_start:
            continue
        selected.append(event)
    selected.sort(key=lambda e: (e.start, str(e.id)))
    return selected


def _base_vevent(event: CalendarEvent) -> Event:
    vevent = Event()
    vevent.add("uid", str(event.id))
    vevent.add("dtstamp", event.last_modified)
    vevent.add("summary", event.title)
    if event.description:
        vevent.add("description", event.description)
    if event.location:
        vevent.add("location", event.location)
    if event.is_all_day:
        vevent.add("dtstart", ensure_utc(event.start).date())
        vevent.add("dtend", _all_day_end(event.start, event.end))
    else:
        vevent.add("dtstart", canonical_instant(event.start))
        vevent.add("dtend", canonical_instant(event.end))
    vevent.add("created", event.created_at)
    vevent.add("last-modified", event.last_modified)
    return vevent


def _add_alarm(vevent: Event, event: CalendarEvent) -> None:
    if not event.has_reminder:
        return
    alarm = Alarm()
    alarm.add("action", "DISPLAY")
    alarm.add("description", event.title)
    alarm.add("trigger", datetime.timedelta(minutes=-(event.reminder_minutes_before or 0)))
    vevent.add_component(alarm)


def _add_recurrence(vevent: Event, event: CalendarEvent, index: ExceptionIndex) -> None:
    """Attach RRULE and EXDATEs. Raises MalformedRuleError before touching ``vevent``."""
    rule = event.recurrence_rule or ""
    series_end = event.recurrence_end
    rrule_expander.validate_rule(rule, event.start)
    bounded = rrule_expander.bound_rule(rule, event.start, series_end, all_day=event.is_all_day)
    try:
        recur = vRecur.from_ical(bounded)
    except ValueError as e:
        raise MalformedRuleError(rule, str(e)) from e

    excluded = list(index.deleted_starts())
    # UNTIL is inclusive in iCalendar while the series-end is not; all-day UNTIL already stops short
    if series_end is not None and not event.is_all_day and rrule_expander.occurs_at(rule, event.start, series_end):
        cut = canonical_instant(series_end)
        if cut not in excluded:
            excluded.append(cut)

    vevent.add("rrule", recur)
    for original_start in sorted(excluded):
        vevent.add("exdate", _ical_value(original_start, event.is_all_day))


def _override_vevent(event: CalendarEvent, exc: CalendarEventException) -> Event:
    duration = event.end - event.start
    start = exc.override_start or exc.original_start
    end = exc.override_end or start + duration
    all_day = exc.override_is_all_day if exc.override_is_all_day is not None else event.is_all_day

    vevent = Event()
    vevent.add("uid", str(event.id))
    vevent.add("recurrence-id", _ical_value(exc.original_start, event.is_all_day))
    vevent.add("dtstamp", event.last_modified)
    vevent.add("summary", exc.override_title or event.title)
    description = exc.override_description if exc.override_description is not None else event.description
    location = exc.override_location if exc.override_location is not None else event.location
    if description:
        vevent.add("description", description)
    if location:
        vevent.add("location", location)
    if all_day:
        vevent.add("dtstart", ensure_utc(start).date())
        vevent.add("dtend", _all_day_end(start, end))
    else:
        vevent.add("dtstart", canonical_instant(start))
        vevent.add("dtend", canonical_instant(end))
    vevent.add("last-modified", event.last_modified)
    return vevent


def _override_applies(event: CalendarEvent, exc: CalendarEventException) -> bool:
    # An exception off the rule's grid, or past the series-end, is inert
    if not rrule_expander.before_series_end(exc.original_start, event.recurrence_end):
        return False
    return rrule_expander.occurs_at(event.recurrence_rule or "", event.start, exc.original_start)


def render_event(event: CalendarEvent, include_overrides: bool = False) -> list[Event]:
    """VEVENT components for one event: the master, then any override records.

    A malformed rule degrades the event to its base occurrence with a
    warning; the rest of the document is unaffected.
    """
    vevent = _base_vevent(event)
    components = [vevent]

    if event.is_recurring:
        index = ExceptionIndex(event.exceptions)
        try:
            _add_recurrence(vevent, event, index)
        except MalformedRuleError as e:
            logger.warning(
                "Rendering event %s without recurrence; malformed rule %r: %s", event.id, e.rule, e.reason
            )
        else:
            if include_overrides:
                for exc in index.overrides():
                    if _override_applies(event, exc):
                        components.append(_override_vevent(event, exc))

    _add_alarm(vevent, event)
    return components


def render_calendar(
    events: Iterable[CalendarEvent],
    calendar_name: str = "Home Calendar",
    product_id: str = "-//HomeCal//Household Calendar//EN",
    include_overrides: bool = False,
) -> bytes:
    """Serialize already-selected events into an iCalendar document."""
    cal = Calendar()
    cal.add("prodid", product_id)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("x-wr-calname", calendar_name)
    cal.add("x-wr-timezone", "UTC")

    count = 0
    for event in events:
        for component in render_event(event, include_overrides):
            cal.add_component(component)
        count += 1

    logger.debug("Rendered feed with %d event(s)", count)
    return cal.to_ical()


class FeedRenderer:
    """Renders a user's feed from a calendar store."""

    def __init__(self, store: CalendarStore, config: Optional[Config] = None) -> None:
        self._store = store
        self._config = config or Config()

    def default_range(self, now: datetime.datetime) -> tuple[datetime.datetime, datetime.datetime]:
        """Rolling window around ``now`` from the configured past/future days."""
        now = ensure_utc(now)
        return (
            now - datetime.timedelta(days=self._config.feed_past_days),
            now + datetime.timedelta(days=self._config.feed_future_days),
        )

    async def render(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
    ) -> bytes:
        """Feed document of ``user_id``'s events in ``[range_start, range_end)``."""
        events = await self._store.get_feed_events(tenant_id, user_id, range_start, range_end)
        selected = select_feed_events(events, user_id, range_start, range_end)
        logger.info("Rendering feed for user %s: %d of %d event(s)", user_id, len(selected), len(events))
        return render_calendar(
            selected,
            calendar_name=self._config.feed_calendar_name,
            product_id=self._config.feed_product_id,
            include_overrides=self._config.feed_include_overrides,
        )
