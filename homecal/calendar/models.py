"""Data models for household calendar events, exceptions and reminders."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

from ..core.exceptions import InvalidEventError
from ..core.timezone_utils import ensure_utc


class ParticipationType(str, Enum):
    """How a member takes part in an event. Only involved members get reminders."""

    INVOLVED = "involved"
    AWARE = "aware"
    OPTIONAL = "optional"


class NotificationType(str, Enum):
    """Notification kinds produced by homecal."""

    CALENDAR_REMINDER = "calendar_reminder"


class CalendarEventMember(BaseModel):
    """A user attached to an event."""

    user_id: uuid.UUID = Field(..., description="Member user ID")
    participation_type: ParticipationType = Field(
        default=ParticipationType.INVOLVED, description="Participation tag"
    )


class CalendarEventException(BaseModel):
    """Per-occurrence deletion or override of a recurring event.

    Keyed by the instant the unmodified rule would have produced for the
    occurrence. When ``is_deleted`` is set the override fields are ignored.
    """

    original_start: datetime = Field(..., description="Rule-generated start being modified")
    is_deleted: bool = Field(default=False, description="Suppress this occurrence")
    override_start: Optional[datetime] = Field(default=None, description="Rescheduled start")
    override_end: Optional[datetime] = Field(default=None, description="Rescheduled end")
    override_title: Optional[str] = Field(default=None, description="Replacement title")
    override_description: Optional[str] = Field(default=None, description="Replacement description")
    override_location: Optional[str] = Field(default=None, description="Replacement location")
    override_is_all_day: Optional[bool] = Field(default=None, description="Replacement all-day flag")

    @field_validator("original_start", "override_start", "override_end")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else ensure_utc(value)


@dataclass(frozen=True)
class OneOffSchedule:
    """Schedule of a non-recurring event."""

    start: datetime
    end: datetime


@dataclass(frozen=True)
class RecurringSchedule:
    """Schedule of a recurring event: first occurrence, rule and optional series-end."""

    start: datetime
    end: datetime
    rule: str
    series_end: Optional[datetime] = None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


Schedule = Union[OneOffSchedule, RecurringSchedule]


class CalendarEvent(BaseModel):
    """Household calendar event, optionally recurring.

    All instants are normalised to aware UTC on construction.
    """

    id: uuid.UUID = Field(..., description="Event ID")
    tenant_id: uuid.UUID = Field(..., description="Owning tenant")
    title: str = Field(..., description="Event title")
    description: Optional[str] = Field(default=None, description="Event description")
    location: Optional[str] = Field(default=None, description="Event location")

    start: datetime = Field(..., description="Start instant (UTC)")
    end: datetime = Field(..., description="End instant (UTC)")
    is_all_day: bool = Field(default=False, description="All-day event flag")

    recurrence_rule: Optional[str] = Field(default=None, description="RRULE text, e.g. FREQ=WEEKLY;BYDAY=MO")
    recurrence_end: Optional[datetime] = Field(default=None, description="Series-end instant")
    reminder_minutes_before: Optional[int] = Field(
        default=None, ge=0, description="Reminder offset in minutes; 0 or None disables"
    )

    members: list[CalendarEventMember] = Field(default_factory=list)
    exceptions: list[CalendarEventException] = Field(default_factory=list)

    created_at: datetime = Field(..., description="Creation time")
    updated_at: Optional[datetime] = Field(default=None, description="Last modification time")

    @field_validator("start", "end", "recurrence_end", "created_at", "updated_at")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else ensure_utc(value)

    @field_validator("recurrence_rule")
    @classmethod
    def _blank_rule_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    @model_validator(mode="after")
    def _check_bounds(self) -> "CalendarEvent":
        if self.end < self.start:
            raise InvalidEventError(f"event {self.id} ends before it starts")
        if self.recurrence_rule and self.recurrence_end is not None and self.recurrence_end < self.start:
            raise InvalidEventError(f"event {self.id} series ends before its first occurrence")
        return self

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_rule is not None

    @property
    def schedule(self) -> Schedule:
        """Tagged view of the event's timing."""
        if self.recurrence_rule is None:
            return OneOffSchedule(start=self.start, end=self.end)
        return RecurringSchedule(
            start=self.start,
            end=self.end,
            rule=self.recurrence_rule,
            series_end=self.recurrence_end,
        )

    @property
    def last_modified(self) -> datetime:
        return self.updated_at or self.created_at

    @property
    def has_reminder(self) -> bool:
        return bool(self.reminder_minutes_before)

    def involved_user_ids(self) -> list[uuid.UUID]:
        """User IDs of involved members, in member order without duplicates."""
        seen: list[uuid.UUID] = []
        for member in self.members:
            if member.participation_type == ParticipationType.INVOLVED and member.user_id not in seen:
                seen.append(member.user_id)
        return seen

    def has_member(self, user_id: uuid.UUID) -> bool:
        return any(member.user_id == user_id for member in self.members)


class CalendarOccurrence(BaseModel):
    """One concrete occurrence of an event after exceptions are applied."""

    event_id: uuid.UUID
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    start: datetime
    end: datetime
    is_all_day: bool = False
    original_start: Optional[datetime] = Field(
        default=None, description="Rule-generated start; None for non-recurring events"
    )
    members: list[CalendarEventMember] = Field(default_factory=list)

    @field_serializer("start", "end", "original_start", when_used="unless-none")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat()


class NotificationItem(BaseModel):
    """A reminder ready to hand to dispatchers. Not persisted by homecal."""

    user_id: uuid.UUID
    type: NotificationType = NotificationType.CALENDAR_REMINDER
    title: str
    summary: str
    deep_link_url: str
    email_subject: str
    email_html_body: str
    email_text_body: str

    @property
    def dedupe_key(self) -> tuple[str, str]:
        return (str(self.user_id), self.deep_link_url)


class NotificationPreference(BaseModel):
    """Per-user, per-kind channel switches. Missing preferences mean all channels on."""

    user_id: uuid.UUID
    notification_type: NotificationType = NotificationType.CALENDAR_REMINDER
    email_enabled: bool = True
    push_enabled: bool = True
    in_app_enabled: bool = True


class HouseholdUser(BaseModel):
    """The slice of a user record the dispatch pipeline needs."""

    id: uuid.UUID
    email: Optional[str] = None
    display_name: Optional[str] = None
    is_active: bool = True


class FeedPrincipal(BaseModel):
    """Identity a feed token resolves to."""

    user_id: uuid.UUID
    tenant_id: uuid.UUID
