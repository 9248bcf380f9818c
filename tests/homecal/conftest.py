"""Shared fixtures for homecal tests."""

import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from homecal.calendar.models import CalendarEvent, CalendarEventMember, ParticipationType
from homecal.core.config_loader import Config
from homecal.storage.memory_store import InMemoryCalendarStore

TENANT_ID = uuid.UUID("0b5e6a4c-0000-4000-8000-00000000000a")
OTHER_TENANT_ID = uuid.UUID("0b5e6a4c-0000-4000-8000-00000000000b")
USER_A = uuid.UUID("a0000000-0000-4000-8000-000000000001")
USER_B = uuid.UUID("b0000000-0000-4000-8000-000000000002")
USER_C = uuid.UUID("c0000000-0000-4000-8000-000000000003")
CREATED_AT = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Ensure HOMECAL_TEST_TIME and logging env overrides do not leak between tests."""
    for name in ("HOMECAL_TEST_TIME", "HOMECAL_DEBUG", "HOMECAL_LOG_LEVEL", "HOMECAL_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def tenant_id() -> uuid.UUID:
    return TENANT_ID


@pytest.fixture
def other_tenant_id() -> uuid.UUID:
    return OTHER_TENANT_ID


@pytest.fixture
def user_a() -> uuid.UUID:
    return USER_A


@pytest.fixture
def user_b() -> uuid.UUID:
    return USER_B


@pytest.fixture
def user_c() -> uuid.UUID:
    return USER_C


@pytest.fixture
def config() -> Config:
    """Default configuration (5 minute polling, 24h dedupe lookback)."""
    return Config()


@pytest.fixture
def make_event() -> Callable[..., CalendarEvent]:
    """Factory for CalendarEvent with sensible defaults.

    Defaults: one-hour non-recurring event on Monday 2025-03-03 09:00 UTC,
    60 minute reminder, USER_A and USER_B involved, USER_C aware.
    Keyword arguments override any field.
    """

    def _make(**overrides: Any) -> CalendarEvent:
        start = overrides.pop("start", datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc))
        data: dict[str, Any] = {
            "id": uuid.uuid4(),
            "tenant_id": TENANT_ID,
            "title": "Piano lesson",
            "start": start,
            "end": start + timedelta(hours=1),
            "reminder_minutes_before": 60,
            "members": [
                CalendarEventMember(user_id=USER_A, participation_type=ParticipationType.INVOLVED),
                CalendarEventMember(user_id=USER_B, participation_type=ParticipationType.INVOLVED),
                CalendarEventMember(user_id=USER_C, participation_type=ParticipationType.AWARE),
            ],
            "created_at": CREATED_AT,
        }
        data.update(overrides)
        return CalendarEvent(**data)

    return _make


HOUSEHOLD_EVENT_ID = uuid.UUID("e0000000-0000-4000-8000-0000000000e1")
HOUSEHOLD_TOKEN = "tok-alex"

HOUSEHOLD_YAML = f"""
tenants:
  - id: {TENANT_ID}
    users:
      - id: {USER_A}
        email: alex@example.com
        display_name: Alex
      - id: {USER_B}
        display_name: Blake
        is_active: false
    preferences:
      - user_id: {USER_A}
        email_enabled: true
        in_app_enabled: true
    feed_tokens:
      {HOUSEHOLD_TOKEN}: {USER_A}
    events:
      - id: {HOUSEHOLD_EVENT_ID}
        title: Piano lesson
        start: 2025-03-03T09:00:00Z
        end: 2025-03-03T10:00:00Z
        recurrence_rule: FREQ=WEEKLY;BYDAY=MO
        reminder_minutes_before: 60
        created_at: 2025-01-01T12:00:00Z
        members:
          - user_id: {USER_A}
            participation_type: involved
          - user_id: {USER_B}
            participation_type: involved
  - id: {OTHER_TENANT_ID}
"""


@pytest.fixture
def household_file(tmp_path: Any) -> str:
    """YAML data file with one weekly Monday 09:00 event for USER_A (active) and USER_B (inactive)."""
    path = tmp_path / "household.yaml"
    path.write_text(HOUSEHOLD_YAML, encoding="utf-8")
    return str(path)


@pytest.fixture
def household_token() -> str:
    return HOUSEHOLD_TOKEN


@pytest.fixture
def household_event_id() -> uuid.UUID:
    return HOUSEHOLD_EVENT_ID


@pytest.fixture
def store() -> InMemoryCalendarStore:
    """Empty in-memory store with the default tenant registered."""
    s = InMemoryCalendarStore()
    s.add_tenant(TENANT_ID)
    return s
