"""Reminder window evaluation.

Decides, for one tenant at one instant, which involved members are owed a
reminder for which occurrence. A reminder for an occurrence starting at
``S`` with offset ``O`` is due iff ``S - O <= now < S``.

Recurring events are expanded over ``[now - O, now + O + slack)``, where
``slack`` is the scheduler's polling interval, so an occurrence whose
reminder opens between two cycles is still seen by the earlier one.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from collections.abc import Iterable
from typing import Optional

from ..calendar import rrule_expander
from ..calendar.exception_resolver import Deleted, ExceptionIndex, Overridden
from ..calendar.models import CalendarEvent, NotificationItem, OneOffSchedule, RecurringSchedule
from ..core.config_loader import Config
from ..core.exceptions import MalformedRuleError
from ..core.protocols import CalendarStore, TimeProvider
from ..core.timezone_utils import ensure_utc, now_utc
from .notifications import build_reminder_notification, event_deep_link

logger = logging.getLogger(__name__)

DedupeKeys = set[tuple[str, str]]


def is_reminder_due(start: datetime.datetime, offset: datetime.timedelta, now: datetime.datetime) -> bool:
    """True iff ``start - offset <= now < start``."""
    return start - offset <= now < start


def is_candidate(event: CalendarEvent, now: datetime.datetime) -> bool:
    """Whether ``event`` can still produce a reminder at ``now``.

    Requires a positive offset, at least one involved member and an event
    that is not fully past.
    """
    if not event.has_reminder or not event.involved_user_ids():
        return False
    schedule = event.schedule
    if isinstance(schedule, OneOffSchedule):
        return schedule.end > now
    return schedule.series_end is None or schedule.series_end > now


def _emit(
    event: CalendarEvent,
    title: str,
    start: datetime.datetime,
    deep_link: str,
    dedupe_keys: DedupeKeys,
) -> list[NotificationItem]:
    items: list[NotificationItem] = []
    for user_id in event.involved_user_ids():
        key = (str(user_id), deep_link)
        if key in dedupe_keys:
            logger.debug("Reminder %s for user %s already sent; skipping", deep_link, user_id)
            continue
        dedupe_keys.add(key)
        items.append(build_reminder_notification(user_id, title, start, deep_link))
    return items


def _evaluate_one_off(
    event: CalendarEvent,
    schedule: OneOffSchedule,
    offset: datetime.timedelta,
    now: datetime.datetime,
    dedupe_keys: DedupeKeys,
) -> list[NotificationItem]:
    if not is_reminder_due(schedule.start, offset, now):
        return []
    return _emit(event, event.title, schedule.start, event_deep_link(event.id), dedupe_keys)


def _evaluate_recurring(
    event: CalendarEvent,
    schedule: RecurringSchedule,
    offset: datetime.timedelta,
    now: datetime.datetime,
    polling_slack: datetime.timedelta,
    dedupe_keys: DedupeKeys,
) -> list[NotificationItem]:
    window = rrule_expander.expand(
        schedule.start,
        schedule.end,
        schedule.rule,
        now - offset,
        now + offset + polling_slack,
    )
    index = ExceptionIndex(event.exceptions)

    items: list[NotificationItem] = []
    for original_start in window:
        # Rule output is ascending, so nothing later can be inside the series either
        if not rrule_expander.before_series_end(original_start, schedule.series_end):
            break

        resolution = index.resolve(original_start)
        if isinstance(resolution, Deleted):
            continue

        start = original_start
        title = event.title
        if isinstance(resolution, Overridden):
            start = resolution.effective_start or original_start
            title = resolution.effective_title or event.title

        if not is_reminder_due(start, offset, now):
            continue

        deep_link = event_deep_link(event.id, original_start)
        items.extend(_emit(event, title, start, deep_link, dedupe_keys))
    return items


def evaluate_events(
    events: Iterable[CalendarEvent],
    dedupe_keys: Iterable[tuple[str, str]],
    now: datetime.datetime,
    polling_slack: datetime.timedelta,
) -> list[NotificationItem]:
    """Reminders due at ``now`` for ``events``.

    Pure with respect to its inputs. ``dedupe_keys`` is copied; the caller's
    set is not modified.

    Args:
        events: Events of one tenant, with members and exceptions
        dedupe_keys: (user id, deep link) pairs already notified
        now: Evaluation instant
        polling_slack: Extra lookahead for recurring expansion

    Returns:
        One item per involved member per due occurrence, never None. Items of
        one event are in ascending occurrence order.
    """
    now = ensure_utc(now)
    seen: DedupeKeys = set(dedupe_keys)
    items: list[NotificationItem] = []

    for event in events:
        if not is_candidate(event, now):
            continue
        offset = datetime.timedelta(minutes=event.reminder_minutes_before or 0)
        schedule = event.schedule
        try:
            if isinstance(schedule, OneOffSchedule):
                items.extend(_evaluate_one_off(event, schedule, offset, now, seen))
            else:
                items.extend(_evaluate_recurring(event, schedule, offset, now, polling_slack, seen))
        except MalformedRuleError as e:
            logger.warning("Skipping event %s with malformed recurrence rule %r: %s", event.id, e.rule, e.reason)
        except Exception:
            logger.exception("Failed to evaluate reminders for event %s", event.id)

    return items


class ReminderEvaluator:
    """Evaluates reminders for a tenant against a calendar store."""

    def __init__(
        self,
        store: CalendarStore,
        config: Optional[Config] = None,
        time_provider: Optional[TimeProvider] = None,
    ) -> None:
        self._store = store
        self._config = config or Config()
        self._time_provider = time_provider or now_utc

    @property
    def polling_slack(self) -> datetime.timedelta:
        return datetime.timedelta(minutes=self._config.reminder_check_interval_minutes)

    @property
    def dedupe_lookback(self) -> datetime.timedelta:
        return datetime.timedelta(hours=self._config.dedupe_lookback_hours)

    async def evaluate(self, tenant_id: uuid.UUID, now: Optional[datetime.datetime] = None) -> list[NotificationItem]:
        """Reminders due for ``tenant_id`` at ``now`` (defaults to the time provider).

        Storage errors propagate; the scheduler contains them per tenant.
        """
        now = ensure_utc(now or self._time_provider())
        events = await self._store.get_reminder_candidates(tenant_id, now)
        if not events:
            logger.debug("No reminder candidates for tenant %s", tenant_id)
            return []

        dedupe_keys = await self._store.get_recent_notification_keys(tenant_id, now - self.dedupe_lookback)
        items = evaluate_events(events, dedupe_keys, now, self.polling_slack)
        logger.info(
            "Produced %d reminder(s) for tenant %s from %d candidate event(s)",
            len(items),
            tenant_id,
            len(events),
        )
        return items
