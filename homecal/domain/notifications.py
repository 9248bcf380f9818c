"""Reminder message composition and deep links."""

from __future__ import annotations

import html
import uuid
from datetime import datetime
from typing import Optional

from ..calendar.models import NotificationItem, NotificationType
from ..core.timezone_utils import ensure_utc, format_utc

EVENT_LINK_PREFIX = "/calendar/events/"


def event_deep_link(event_id: uuid.UUID, original_start: Optional[datetime] = None) -> str:
    """Deep link for an event, or for one occurrence of a recurring event.

    The occurrence is identified by its original rule-generated start so the
    link stays stable when the occurrence is rescheduled.
    """
    link = f"{EVENT_LINK_PREFIX}{event_id}"
    if original_start is not None:
        link = f"{link}?date={format_utc(original_start)}"
    return link


def build_reminder_notification(
    user_id: uuid.UUID,
    title: str,
    start: datetime,
    deep_link: str,
) -> NotificationItem:
    """Compose the reminder for one user and one occurrence.

    Args:
        user_id: Recipient
        title: Effective title of the occurrence
        start: Effective start of the occurrence
        deep_link: Link built by ``event_deep_link``
    """
    start = ensure_utc(start)
    time_text = start.strftime("%H:%M UTC")
    date_text = start.strftime("%Y-%m-%d")

    return NotificationItem(
        user_id=user_id,
        type=NotificationType.CALENDAR_REMINDER,
        title=f"Upcoming: {title}",
        summary=f"Starts at {time_text} on {date_text}",
        deep_link_url=deep_link,
        email_subject=f"Reminder: {title}",
        email_html_body=(
            "<h2>Calendar Reminder</h2>"
            f"<p>Your event <strong>{html.escape(title)}</strong> starts at {time_text} on {date_text}.</p>"
        ),
        email_text_body=f'Calendar Reminder\n\nYour event "{title}" starts at {time_text} on {date_text}.',
    )
