"""Periodic, lock-gated background jobs.

Each job sleeps for its interval, tries a cooperative lock, and on success
runs a per-tenant callable for every tenant. A failing tenant is logged and
the loop moves on; cancellation is checked between tenants.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .config_loader import Config
from .locking import CooperativeLock
from .protocols import CalendarStore, ExternalCalendarSync

logger = logging.getLogger(__name__)

REMINDER_LOCK_KEY = "calendar-reminder-check"
SYNC_LOCK_KEY = "external-calendar-sync"

TenantTask = Callable[[uuid.UUID], Awaitable[Any]]


@dataclass
class CycleResult:
    """Outcome of one job cycle."""

    job: str
    started_at: float
    lock_acquired: bool
    tenants_processed: int = 0
    tenants_failed: int = 0
    cancelled: bool = False
    duration_seconds: float = 0.0
    failed_tenants: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job": self.job,
            "started_at": self.started_at,
            "lock_acquired": self.lock_acquired,
            "tenants_processed": self.tenants_processed,
            "tenants_failed": self.tenants_failed,
            "cancelled": self.cancelled,
            "duration_s": round(self.duration_seconds, 3),
        }


class PeriodicJob:
    """A lock-gated job run over all tenants on a fixed interval."""

    def __init__(
        self,
        name: str,
        lock_key: str,
        interval_seconds: float,
        lock_ttl_seconds: float,
        lock: CooperativeLock,
        store: CalendarStore,
        tenant_task: TenantTask,
    ) -> None:
        self.name = name
        self.lock_key = lock_key
        self.interval_seconds = interval_seconds
        self.lock_ttl_seconds = lock_ttl_seconds
        self._lock = lock
        self._store = store
        self._tenant_task = tenant_task
        self._stop_event: Optional[asyncio.Event] = None
        self.last_result: Optional[CycleResult] = None
        self.cycles_run = 0

    def _stopping(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    async def run_cycle(self) -> CycleResult:
        """Run one cycle now: acquire the lock, then process every tenant."""
        started = time.time()
        handle = await self._lock.try_acquire(self.lock_key, self.lock_ttl_seconds)
        if handle is None:
            logger.info("%s: lock %s held elsewhere; skipping cycle", self.name, self.lock_key)
            result = CycleResult(job=self.name, started_at=started, lock_acquired=False)
            self.last_result = result
            return result

        result = CycleResult(job=self.name, started_at=started, lock_acquired=True)
        try:
            tenant_ids = await self._store.get_tenant_ids()
            for tenant_id in tenant_ids:
                if self._stopping():
                    logger.info("%s: stop requested; abandoning remaining tenants", self.name)
                    result.cancelled = True
                    break
                try:
                    await self._tenant_task(tenant_id)
                    result.tenants_processed += 1
                except asyncio.CancelledError:
                    result.cancelled = True
                    raise
                except Exception:
                    logger.exception("%s: processing tenant %s failed", self.name, tenant_id)
                    result.tenants_failed += 1
                    result.failed_tenants.append(str(tenant_id))
        except asyncio.CancelledError:
            result.cancelled = True
            raise
        except Exception:
            logger.exception("%s: cycle failed before tenant processing", self.name)
        finally:
            await handle.release()
            result.duration_seconds = time.time() - started
            self.last_result = result
            self.cycles_run += 1

        logger.debug(
            "%s: cycle done (%d ok, %d failed) in %.2fs",
            self.name,
            result.tenants_processed,
            result.tenants_failed,
            result.duration_seconds,
        )
        return result

    async def run(self, stop_event: asyncio.Event) -> None:
        """Loop until ``stop_event`` is set: wait one interval, then run a cycle."""
        self._stop_event = stop_event
        logger.info("%s: starting with interval %.0f seconds", self.name, self.interval_seconds)
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s: unexpected error in job loop", self.name)
        logger.info("%s: stopped", self.name)

    def status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "interval_s": self.interval_seconds,
            "cycles_run": self.cycles_run,
            "last_cycle": self.last_result.to_dict() if self.last_result else None,
        }


def build_reminder_job(
    config: Config,
    lock: CooperativeLock,
    store: CalendarStore,
    process_tenant: TenantTask,
) -> PeriodicJob:
    """Reminder job; ``process_tenant`` is usually ``ReminderDispatchPipeline.process_tenant``."""
    return PeriodicJob(
        name="reminder-check",
        lock_key=REMINDER_LOCK_KEY,
        interval_seconds=config.reminder_check_interval_minutes * 60,
        lock_ttl_seconds=config.reminder_lock_ttl_minutes * 60,
        lock=lock,
        store=store,
        tenant_task=process_tenant,
    )


def build_sync_job(
    config: Config,
    lock: CooperativeLock,
    store: CalendarStore,
    sync: ExternalCalendarSync,
) -> PeriodicJob:
    return PeriodicJob(
        name="external-sync",
        lock_key=SYNC_LOCK_KEY,
        interval_seconds=config.external_sync_interval_minutes * 60,
        lock_ttl_seconds=config.external_sync_lock_ttl_minutes * 60,
        lock=lock,
        store=store,
        tenant_task=sync.sync_due_subscriptions,
    )
