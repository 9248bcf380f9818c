"""In-memory household calendar store with optional YAML fixture loading.

Implements every storage-side collaborator protocol in
``homecal.core.protocols`` for development servers and tests. State is held
per tenant behind a ``threading.Lock``.
"""

from __future__ import annotations

import datetime
import logging
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from ..calendar.models import (
    CalendarEvent,
    FeedPrincipal,
    HouseholdUser,
    NotificationItem,
    NotificationPreference,
    NotificationType,
)
from ..core.timezone_utils import ensure_utc

logger = logging.getLogger(__name__)


@dataclass
class RecordedNotification:
    tenant_id: uuid.UUID
    item: NotificationItem
    created_at: datetime.datetime


@dataclass
class SentEmail:
    to_address: str
    subject: str
    html_body: str
    text_body: str


@dataclass
class _Tenant:
    events: dict[uuid.UUID, CalendarEvent] = field(default_factory=dict)
    users: dict[uuid.UUID, HouseholdUser] = field(default_factory=dict)
    preferences: dict[tuple[uuid.UUID, NotificationType], NotificationPreference] = field(default_factory=dict)


class InMemoryCalendarStore:
    """CalendarStore, UserDirectory, PreferenceStore, NotificationSink and FeedTokenResolver."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tenants: dict[uuid.UUID, _Tenant] = {}
        self._tokens: dict[str, FeedPrincipal] = {}
        self.notifications: list[RecordedNotification] = []

    def _tenant(self, tenant_id: uuid.UUID) -> _Tenant:
        return self._tenants.setdefault(tenant_id, _Tenant())

    # Writes

    def add_tenant(self, tenant_id: uuid.UUID) -> None:
        with self._lock:
            self._tenant(tenant_id)

    def add_event(self, event: CalendarEvent) -> None:
        with self._lock:
            self._tenant(event.tenant_id).events[event.id] = event

    def remove_event(self, tenant_id: uuid.UUID, event_id: uuid.UUID) -> bool:
        with self._lock:
            return self._tenant(tenant_id).events.pop(event_id, None) is not None

    def add_user(self, tenant_id: uuid.UUID, user: HouseholdUser) -> None:
        with self._lock:
            self._tenant(tenant_id).users[user.id] = user

    def set_preference(self, tenant_id: uuid.UUID, preference: NotificationPreference) -> None:
        with self._lock:
            key = (preference.user_id, preference.notification_type)
            self._tenant(tenant_id).preferences[key] = preference

    def issue_feed_token(self, token: str, tenant_id: uuid.UUID, user_id: uuid.UUID) -> None:
        with self._lock:
            self._tokens[token] = FeedPrincipal(user_id=user_id, tenant_id=tenant_id)

    def revoke_feed_token(self, token: str) -> bool:
        with self._lock:
            return self._tokens.pop(token, None) is not None

    # CalendarStore

    async def get_tenant_ids(self) -> list[uuid.UUID]:
        with self._lock:
            return list(self._tenants)

    async def get_reminder_candidates(self, tenant_id: uuid.UUID, now: datetime.datetime) -> list[CalendarEvent]:
        now = ensure_utc(now)
        with self._lock:
            events = list(self._tenant(tenant_id).events.values())
        candidates = []
        for event in events:
            if not event.has_reminder or not event.involved_user_ids():
                continue
            if event.is_recurring:
                if event.recurrence_end is not None and event.recurrence_end <= now:
                    continue
            elif event.end <= now:
                continue
            candidates.append(event)
        return candidates

    async def get_feed_events(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
    ) -> list[CalendarEvent]:
        with self._lock:
            events = list(self._tenant(tenant_id).events.values())
        return [event for event in events if event.has_member(user_id)]

    async def get_recent_notification_keys(
        self, tenant_id: uuid.UUID, since: datetime.datetime
    ) -> set[tuple[str, str]]:
        since = ensure_utc(since)
        with self._lock:
            return {
                record.item.dedupe_key
                for record in self.notifications
                if record.tenant_id == tenant_id
                and record.item.type == NotificationType.CALENDAR_REMINDER
                and record.created_at >= since
            }

    # UserDirectory / PreferenceStore

    async def get_user(self, tenant_id: uuid.UUID, user_id: uuid.UUID) -> Optional[HouseholdUser]:
        with self._lock:
            return self._tenant(tenant_id).users.get(user_id)

    async def get_preference(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        notification_type: NotificationType,
    ) -> Optional[NotificationPreference]:
        with self._lock:
            return self._tenant(tenant_id).preferences.get((user_id, notification_type))

    # NotificationSink

    async def record_notification(
        self, tenant_id: uuid.UUID, item: NotificationItem, created_at: datetime.datetime
    ) -> None:
        with self._lock:
            self.notifications.append(RecordedNotification(tenant_id, item, ensure_utc(created_at)))

    # FeedTokenResolver

    async def resolve_token(self, token: str) -> Optional[FeedPrincipal]:
        with self._lock:
            return self._tokens.get(token)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> InMemoryCalendarStore:
        """Build a store from a YAML fixture.

        Layout::

            tenants:
              - id: <uuid>
                users: [{id, email, display_name, is_active}]
                preferences: [{user_id, email_enabled, in_app_enabled, push_enabled}]
                feed_tokens: {<token>: <user uuid>}
                events: [<CalendarEvent fields without tenant_id>]

        Raises:
            ValueError: If the document is not a mapping or an entry is invalid
        """
        p = Path(path)
        loaded = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Data file {p} must contain a mapping at top level")
        store = cls()
        for tenant_data in loaded.get("tenants") or []:
            store._load_tenant(tenant_data)
        logger.info("Loaded %d tenant(s) from %s", len(store._tenants), p)
        return store

    def _load_tenant(self, data: dict[str, Any]) -> None:
        tenant_id = uuid.UUID(str(data["id"]))
        self.add_tenant(tenant_id)
        for user in data.get("users") or []:
            self.add_user(tenant_id, HouseholdUser.model_validate(user))
        for pref in data.get("preferences") or []:
            self.set_preference(tenant_id, NotificationPreference.model_validate(pref))
        for token, user_id in (data.get("feed_tokens") or {}).items():
            self.issue_feed_token(str(token), tenant_id, uuid.UUID(str(user_id)))
        for event in data.get("events") or []:
            self.add_event(CalendarEvent.model_validate({**event, "tenant_id": tenant_id}))


class OutboxEmailSender:
    """EmailSender that keeps messages in memory instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[SentEmail] = []

    async def send_email(self, to_address: str, subject: str, html_body: str, text_body: str) -> None:
        logger.debug("Queued email %r to %s", subject, to_address)
        self.sent.append(SentEmail(to_address, subject, html_body, text_body))


class NoopCalendarSync:
    """ExternalCalendarSync with no subscriptions; counts invocations per tenant."""

    def __init__(self) -> None:
        self.calls: dict[uuid.UUID, int] = {}

    async def sync_due_subscriptions(self, tenant_id: uuid.UUID) -> int:
        self.calls[tenant_id] = self.calls.get(tenant_id, 0) + 1
        return 0
