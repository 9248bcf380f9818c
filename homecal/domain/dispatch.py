"""Reminder dispatch: evaluate a tenant, then hand each item to every channel."""

from __future__ import annotations

import asyncio
import datetime
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from ..calendar.models import HouseholdUser, NotificationItem, NotificationPreference, NotificationType
from ..core.exceptions import DispatchFailureError
from ..core.protocols import (
    EmailSender,
    NotificationDispatcher,
    NotificationSink,
    PreferenceStore,
    TimeProvider,
    UserDirectory,
)
from ..core.timezone_utils import ensure_utc, now_utc
from .reminder_evaluator import ReminderEvaluator

logger = logging.getLogger(__name__)


class InAppNotificationDispatcher:
    """Records the reminder as an in-app notification."""

    name = "in_app"

    def __init__(self, sink: NotificationSink, time_provider: Optional[TimeProvider] = None) -> None:
        self._sink = sink
        self._time_provider = time_provider or now_utc

    async def dispatch(
        self,
        tenant_id: uuid.UUID,
        item: NotificationItem,
        user: HouseholdUser,
        preference: NotificationPreference,
    ) -> None:
        if not preference.in_app_enabled:
            return
        try:
            await self._sink.record_notification(tenant_id, item, self._time_provider())
        except Exception as e:
            raise DispatchFailureError(self.name, user.id, f"in-app record failed: {e}") from e


class EmailNotificationDispatcher:
    """Sends the reminder's email rendering to the user's address."""

    name = "email"

    def __init__(self, sender: EmailSender) -> None:
        self._sender = sender

    async def dispatch(
        self,
        tenant_id: uuid.UUID,
        item: NotificationItem,
        user: HouseholdUser,
        preference: NotificationPreference,
    ) -> None:
        if not preference.email_enabled:
            return
        if not user.email:
            logger.debug("User %s has no email address; skipping email reminder", user.id)
            return
        try:
            await self._sender.send_email(user.email, item.email_subject, item.email_html_body, item.email_text_body)
        except Exception as e:
            raise DispatchFailureError(self.name, user.id, f"email send failed: {e}") from e


@dataclass
class DispatchReport:
    """Outcome of one tenant's reminder pass."""

    tenant_id: uuid.UUID
    evaluated: int = 0
    delivered: int = 0
    skipped_users: int = 0
    failures: list[str] = field(default_factory=list)


class ReminderDispatchPipeline:
    """Evaluates a tenant's reminders and delivers them through each dispatcher.

    A dispatcher failure is logged and does not stop the remaining
    dispatchers or items. Cancellation is honoured between items.
    """

    def __init__(
        self,
        evaluator: ReminderEvaluator,
        users: UserDirectory,
        preferences: PreferenceStore,
        dispatchers: Sequence[NotificationDispatcher],
    ) -> None:
        self._evaluator = evaluator
        self._users = users
        self._preferences = preferences
        self._dispatchers = list(dispatchers)

    async def _preference_for(self, tenant_id: uuid.UUID, user_id: uuid.UUID) -> NotificationPreference:
        preference = await self._preferences.get_preference(tenant_id, user_id, NotificationType.CALENDAR_REMINDER)
        if preference is None:
            return NotificationPreference(user_id=user_id)
        return preference

    async def process_tenant(
        self, tenant_id: uuid.UUID, now: Optional[datetime.datetime] = None
    ) -> DispatchReport:
        """Evaluate and dispatch reminders for one tenant.

        Storage errors from evaluation or user lookup propagate to the caller.
        """
        items = await self._evaluator.evaluate(tenant_id, ensure_utc(now) if now else None)
        report = DispatchReport(tenant_id=tenant_id, evaluated=len(items))

        for item in items:
            # Give cancellation a chance between items
            await asyncio.sleep(0)

            user = await self._users.get_user(tenant_id, item.user_id)
            if user is None or not user.is_active:
                logger.debug("Skipping reminder for missing or inactive user %s", item.user_id)
                report.skipped_users += 1
                continue

            preference = await self._preference_for(tenant_id, user.id)
            succeeded = False
            for dispatcher in self._dispatchers:
                try:
                    await dispatcher.dispatch(tenant_id, item, user, preference)
                    succeeded = True
                except DispatchFailureError as e:
                    logger.error("Dispatcher %s failed for user %s: %s", e.dispatcher, e.user_id, e)
                    report.failures.append(f"{e.dispatcher}:{e.user_id}")
                except Exception:
                    logger.exception("Dispatcher %s raised for user %s", dispatcher.name, user.id)
                    report.failures.append(f"{dispatcher.name}:{user.id}")
            if succeeded:
                report.delivered += 1

        if items:
            logger.info(
                "Dispatched %d of %d reminder(s) for tenant %s (%d failure(s))",
                report.delivered,
                report.evaluated,
                tenant_id,
                len(report.failures),
            )
        return report
