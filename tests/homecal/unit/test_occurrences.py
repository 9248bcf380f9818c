"""Tests for homecal.calendar.occurrences."""

from datetime import datetime, timedelta, timezone

import pytest

from homecal.calendar.models import CalendarEventException
from homecal.calendar.occurrences import expand_event_occurrences
from homecal.core.exceptions import MalformedRuleError

pytestmark = pytest.mark.unit

UTC = timezone.utc
FIRST = datetime(2025, 3, 3, 9, 0, tzinfo=UTC)


def test_one_off_event_yields_single_occurrence_without_original_start(make_event) -> None:
    event = make_event(start=FIRST, location="Studio")

    result = expand_event_occurrences(event, FIRST - timedelta(days=30), FIRST + timedelta(days=30))

    assert len(result) == 1
    assert result[0].start == FIRST
    assert result[0].end == FIRST + timedelta(hours=1)
    assert result[0].original_start is None
    assert result[0].location == "Studio"
    assert len(result[0].members) == 3


def test_daily_series_lists_occurrences_in_range(make_event) -> None:
    event = make_event(start=FIRST, recurrence_rule="FREQ=DAILY")

    result = expand_event_occurrences(event, FIRST + timedelta(days=2), FIRST + timedelta(days=5))

    assert [o.start for o in result] == [FIRST + timedelta(days=n) for n in (2, 3, 4)]
    assert all(o.original_start == o.start for o in result)
    assert all(o.end - o.start == timedelta(hours=1) for o in result)


def test_occurrence_running_at_range_start_is_included(make_event) -> None:
    event = make_event(start=FIRST, recurrence_rule="FREQ=DAILY")
    range_start = FIRST + timedelta(days=1, minutes=30)

    result = expand_event_occurrences(event, range_start, range_start + timedelta(hours=2))

    assert [o.start for o in result] == [FIRST + timedelta(days=1)]


def test_occurrence_ending_exactly_at_range_start_is_excluded(make_event) -> None:
    event = make_event(start=FIRST, recurrence_rule="FREQ=DAILY")
    range_start = FIRST + timedelta(days=1, hours=1)

    result = expand_event_occurrences(event, range_start, range_start + timedelta(hours=2))

    assert result == []


def test_series_end_cuts_expansion(make_event) -> None:
    event = make_event(
        start=FIRST,
        recurrence_rule="FREQ=DAILY",
        recurrence_end=FIRST + timedelta(days=3),
    )

    result = expand_event_occurrences(event, FIRST, FIRST + timedelta(days=10))

    assert [o.start for o in result] == [FIRST + timedelta(days=n) for n in range(3)]


def test_deleted_and_overridden_occurrences(make_event) -> None:
    second = FIRST + timedelta(days=1)
    third = FIRST + timedelta(days=2)
    event = make_event(
        start=FIRST,
        recurrence_rule="FREQ=DAILY;COUNT=3",
        description="Bring sheet music",
        exceptions=[
            CalendarEventException(original_start=second, is_deleted=True),
            CalendarEventException(
                original_start=third,
                override_start=third + timedelta(hours=3),
                override_title="Rescheduled lesson",
            ),
        ],
    )

    result = expand_event_occurrences(event, FIRST, FIRST + timedelta(days=7))

    assert [o.original_start for o in result] == [FIRST, third]
    moved = result[1]
    assert moved.title == "Rescheduled lesson"
    assert moved.start == third + timedelta(hours=3)
    assert moved.end == third + timedelta(hours=4)
    assert moved.description == "Bring sheet music"


def test_override_with_explicit_end_uses_it(make_event) -> None:
    new_end = FIRST + timedelta(hours=3)
    event = make_event(
        start=FIRST,
        recurrence_rule="FREQ=DAILY;COUNT=2",
        exceptions=[CalendarEventException(original_start=FIRST, override_end=new_end)],
    )

    result = expand_event_occurrences(event, FIRST, FIRST + timedelta(days=2))

    assert result[0].start == FIRST
    assert result[0].end == new_end
    assert result[0].title == "Piano lesson"


def test_zero_duration_occurrence_before_range_is_excluded(make_event) -> None:
    event = make_event(start=FIRST, end=FIRST, recurrence_rule="FREQ=DAILY")

    result = expand_event_occurrences(event, FIRST + timedelta(seconds=1), FIRST + timedelta(days=2))

    assert [o.start for o in result] == [FIRST + timedelta(days=1)]


def test_malformed_rule_raises(make_event) -> None:
    event = make_event(start=FIRST, recurrence_rule="FREQ=HOURLY;BYDAY=ZZ")

    with pytest.raises(MalformedRuleError):
        expand_event_occurrences(event, FIRST, FIRST + timedelta(days=1))
