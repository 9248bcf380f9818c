"""Integration tests for reminder evaluation plus dispatch against the in-memory store."""

from datetime import datetime, timezone

import pytest

from homecal.calendar.models import HouseholdUser, NotificationPreference
from homecal.core.config_loader import Config
from homecal.core.exceptions import DispatchFailureError
from homecal.domain.dispatch import (
    EmailNotificationDispatcher,
    InAppNotificationDispatcher,
    ReminderDispatchPipeline,
)
from homecal.domain.notifications import build_reminder_notification
from homecal.domain.reminder_evaluator import ReminderEvaluator
from homecal.storage.memory_store import OutboxEmailSender

pytestmark = pytest.mark.integration

NOW = datetime(2025, 3, 3, 8, 30, tzinfo=timezone.utc)


class FailingSender:
    async def send_email(self, to_address, subject, html_body, text_body) -> None:
        raise ConnectionError("smtp unreachable")


class ExplodingDispatcher:
    name = "push"

    async def dispatch(self, tenant_id, item, user, preference) -> None:
        raise RuntimeError("push gateway bug")


def _pipeline(store, sender=None, extra=()):
    evaluator = ReminderEvaluator(store, Config(), time_provider=lambda: NOW)
    dispatchers = [
        InAppNotificationDispatcher(store, time_provider=lambda: NOW),
        EmailNotificationDispatcher(sender or OutboxEmailSender()),
        *extra,
    ]
    return ReminderDispatchPipeline(evaluator, users=store, preferences=store, dispatchers=dispatchers)


@pytest.fixture
def household(store, make_event, tenant_id, user_a, user_b):
    store.add_user(tenant_id, HouseholdUser(id=user_a, email="alex@example.com"))
    store.add_user(tenant_id, HouseholdUser(id=user_b, email=None))
    store.add_event(make_event())
    return store


@pytest.mark.asyncio
async def test_due_reminder_recorded_in_app_and_emailed(household, tenant_id, user_a, user_b) -> None:
    sender = OutboxEmailSender()

    report = await _pipeline(household, sender).process_tenant(tenant_id)

    assert report.evaluated == 2
    assert report.delivered == 2
    assert report.failures == []
    assert sorted(r.item.user_id for r in household.notifications) == sorted([user_a, user_b])
    assert all(r.created_at == NOW for r in household.notifications)
    assert [e.to_address for e in sender.sent] == ["alex@example.com"]
    assert sender.sent[0].subject == "Reminder: Piano lesson"


@pytest.mark.asyncio
async def test_second_cycle_sends_nothing_new(household, tenant_id) -> None:
    sender = OutboxEmailSender()
    pipeline = _pipeline(household, sender)

    await pipeline.process_tenant(tenant_id)
    second = await pipeline.process_tenant(tenant_id)

    assert second.evaluated == 0
    assert len(household.notifications) == 2
    assert len(sender.sent) == 1


@pytest.mark.asyncio
async def test_missing_and_inactive_users_skipped(store, make_event, tenant_id, user_a, user_b) -> None:
    store.add_user(tenant_id, HouseholdUser(id=user_a, email="alex@example.com", is_active=False))
    store.add_event(make_event())

    report = await _pipeline(store).process_tenant(tenant_id)

    assert report.evaluated == 2
    assert report.skipped_users == 2
    assert report.delivered == 0
    assert store.notifications == []


@pytest.mark.asyncio
async def test_preferences_switch_channels_off(household, tenant_id, user_a) -> None:
    household.set_preference(
        tenant_id, NotificationPreference(user_id=user_a, email_enabled=False, in_app_enabled=True)
    )
    sender = OutboxEmailSender()

    await _pipeline(household, sender).process_tenant(tenant_id)

    assert sender.sent == []
    assert user_a in {r.item.user_id for r in household.notifications}


@pytest.mark.asyncio
async def test_failing_dispatchers_do_not_block_others(household, tenant_id, caplog) -> None:
    report = await _pipeline(household, FailingSender(), extra=[ExplodingDispatcher()]).process_tenant(tenant_id)

    assert len(household.notifications) == 2
    assert report.delivered == 2
    assert any(f.startswith("email:") for f in report.failures)
    assert sum(f.startswith("push:") for f in report.failures) == 2
    assert "smtp unreachable" in caplog.text


@pytest.mark.asyncio
async def test_item_not_counted_delivered_when_every_dispatcher_fails(household, tenant_id) -> None:
    evaluator = ReminderEvaluator(household, Config(), time_provider=lambda: NOW)
    pipeline = ReminderDispatchPipeline(
        evaluator, users=household, preferences=household, dispatchers=[ExplodingDispatcher()]
    )

    report = await pipeline.process_tenant(tenant_id)

    assert report.evaluated == 2
    assert report.delivered == 0
    assert len(report.failures) == 2


@pytest.mark.asyncio
async def test_email_dispatcher_wraps_sender_errors(user_a, tenant_id) -> None:
    item = build_reminder_notification(user_a, "Swim", NOW, "/calendar/events/x")
    dispatcher = EmailNotificationDispatcher(FailingSender())

    with pytest.raises(DispatchFailureError) as exc_info:
        await dispatcher.dispatch(
            tenant_id, item, HouseholdUser(id=user_a, email="a@example.com"), NotificationPreference(user_id=user_a)
        )

    assert exc_info.value.dispatcher == "email"
    assert exc_info.value.user_id == user_a


@pytest.mark.asyncio
async def test_other_tenant_untouched(household, other_tenant_id) -> None:
    household.add_tenant(other_tenant_id)

    report = await _pipeline(household).process_tenant(other_tenant_id)

    assert report.evaluated == 0
    assert household.notifications == []
