"""Protocol definitions for homecal's external collaborators.

Storage, user lookup, channel delivery and feed-token validation live
outside homecal. These Protocols are the narrow contracts the evaluator,
renderer, dispatch pipeline and scheduler are written against;
``homecal.storage.memory_store`` provides an in-process implementation.
"""

from __future__ import annotations

import datetime
import uuid
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from ..calendar.models import (
        CalendarEvent,
        FeedPrincipal,
        HouseholdUser,
        NotificationItem,
        NotificationPreference,
        NotificationType,
    )


class TimeProvider(Protocol):
    """Protocol for time provider callables."""

    def __call__(self) -> datetime.datetime:
        """Return current UTC time.

        Returns:
            Current UTC datetime
        """
        ...


class CalendarStore(Protocol):
    """Read interface to stored events and prior notifications."""

    async def get_tenant_ids(self) -> list[uuid.UUID]:
        """Return every tenant identifier."""
        ...

    async def get_reminder_candidates(
        self, tenant_id: uuid.UUID, now: datetime.datetime
    ) -> list[CalendarEvent]:
        """Events of a tenant that may need a reminder.

        Args:
            tenant_id: Tenant to query
            now: Evaluation instant

        Returns:
            Events with a positive reminder offset and at least one involved
            member that are not fully past: non-recurring events ending after
            ``now``, recurring events whose series-end is unset or after
            ``now``. Members and exceptions are loaded.
        """
        ...

    async def get_feed_events(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
    ) -> list[CalendarEvent]:
        """Events of a tenant the user is a member of, with members and exceptions.

        Implementations may over-select; the feed renderer applies the
        range filter itself.
        """
        ...

    async def get_recent_notification_keys(
        self, tenant_id: uuid.UUID, since: datetime.datetime
    ) -> set[tuple[str, str]]:
        """(user id, deep link) pairs of reminders recorded at or after ``since``."""
        ...


class UserDirectory(Protocol):
    """Lookup of household users."""

    async def get_user(self, tenant_id: uuid.UUID, user_id: uuid.UUID) -> Optional[HouseholdUser]:
        """Return the user, or None if unknown."""
        ...


class PreferenceStore(Protocol):
    """Per-user notification channel preferences."""

    async def get_preference(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        notification_type: NotificationType,
    ) -> Optional[NotificationPreference]:
        """Return the stored preference, or None when the user never set one."""
        ...


class NotificationSink(Protocol):
    """Persists in-app notifications. Recorded items feed the dedupe query."""

    async def record_notification(
        self, tenant_id: uuid.UUID, item: NotificationItem, created_at: datetime.datetime
    ) -> None:
        ...


class EmailSender(Protocol):
    """Outbound email delivery."""

    async def send_email(self, to_address: str, subject: str, html_body: str, text_body: str) -> None:
        ...


class NotificationDispatcher(Protocol):
    """One notification channel."""

    name: str

    async def dispatch(
        self,
        tenant_id: uuid.UUID,
        item: NotificationItem,
        user: HouseholdUser,
        preference: NotificationPreference,
    ) -> None:
        """Deliver ``item`` if ``preference`` enables this channel.

        Raises:
            DispatchFailureError: If delivery fails
        """
        ...


class FeedTokenResolver(Protocol):
    """Validates opaque feed tokens."""

    async def resolve_token(self, token: str) -> Optional[FeedPrincipal]:
        """Return the owner of ``token``, or None if unknown or revoked."""
        ...


class ExternalCalendarSync(Protocol):
    """Pulls subscribed external calendars into the store."""

    async def sync_due_subscriptions(self, tenant_id: uuid.UUID) -> int:
        """Sync the tenant's subscriptions that are due; return how many ran."""
        ...
