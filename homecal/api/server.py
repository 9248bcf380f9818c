"""homecal HTTP server and background job runner.

Serves the ICS feed and health endpoints over aiohttp and runs the reminder
and external-sync jobs alongside it until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import time
from dataclasses import dataclass
from typing import Optional

from aiohttp import web

from ..core.config_loader import Config
from ..core.locking import CooperativeLock, InMemoryLock
from ..core.protocols import EmailSender, ExternalCalendarSync, TimeProvider
from ..core.scheduler import PeriodicJob, build_reminder_job, build_sync_job
from ..core.timezone_utils import now_utc
from ..domain.dispatch import EmailNotificationDispatcher, InAppNotificationDispatcher, ReminderDispatchPipeline
from ..domain.reminder_evaluator import ReminderEvaluator
from ..feed.renderer import FeedRenderer
from ..storage.memory_store import InMemoryCalendarStore, NoopCalendarSync, OutboxEmailSender
from .routes import register_feed_routes, register_health_routes

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Wired collaborators shared by the HTTP app and the background jobs."""

    config: Config
    store: InMemoryCalendarStore
    renderer: FeedRenderer
    evaluator: ReminderEvaluator
    pipeline: ReminderDispatchPipeline
    reminder_job: PeriodicJob
    sync_job: PeriodicJob
    time_provider: TimeProvider

    @property
    def jobs(self) -> list[PeriodicJob]:
        return [self.reminder_job, self.sync_job]


def build_services(
    config: Config,
    store: Optional[InMemoryCalendarStore] = None,
    lock: Optional[CooperativeLock] = None,
    email_sender: Optional[EmailSender] = None,
    calendar_sync: Optional[ExternalCalendarSync] = None,
    time_provider: TimeProvider = now_utc,
) -> Services:
    """Wire store, evaluator, dispatch pipeline, renderer and jobs from config."""
    if store is None:
        if config.data_file:
            store = InMemoryCalendarStore.from_file(config.data_file)
        else:
            logger.info("No data_file configured; starting with an empty store")
            store = InMemoryCalendarStore()
    if email_sender is None:
        logger.info("No email sender configured; reminder emails are kept in memory")
        email_sender = OutboxEmailSender()
    lock = lock or InMemoryLock()
    calendar_sync = calendar_sync or NoopCalendarSync()

    evaluator = ReminderEvaluator(store, config, time_provider)
    pipeline = ReminderDispatchPipeline(
        evaluator,
        users=store,
        preferences=store,
        dispatchers=[
            InAppNotificationDispatcher(store, time_provider),
            EmailNotificationDispatcher(email_sender),
        ],
    )
    return Services(
        config=config,
        store=store,
        renderer=FeedRenderer(store, config),
        evaluator=evaluator,
        pipeline=pipeline,
        reminder_job=build_reminder_job(config, lock, store, pipeline.process_tenant),
        sync_job=build_sync_job(config, lock, store, calendar_sync),
        time_provider=time_provider,
    )


def make_app(services: Services, started_at: Optional[float] = None) -> web.Application:
    """Create the aiohttp application with feed and health routes."""
    app = web.Application()
    register_feed_routes(
        app,
        renderer=services.renderer,
        token_resolver=services.store,
        config=services.config,
        time_provider=services.time_provider,
    )
    register_health_routes(
        app,
        jobs=services.jobs,
        time_provider=services.time_provider,
        started_at=started_at if started_at is not None else time.time(),
    )

    async def _shutdown(_app: web.Application) -> None:
        logger.info("Application shutdown requested")

    app.on_shutdown.append(_shutdown)
    return app


async def _serve(
    config: Config,
    services: Optional[Services] = None,
    external_stop_event: Optional[asyncio.Event] = None,
) -> None:
    """Run the server and background jobs until signalled to stop.

    Args:
        config: Server configuration
        services: Prewired services; built from ``config`` when omitted
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers will NOT be registered (caller owns signal handling).
    """
    services = services or build_services(config)
    stop_event = external_stop_event or asyncio.Event()

    app = make_app(services)
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host=config.server_bind, port=config.server_port)
    try:
        await site.start()
    except OSError:
        logger.exception("Failed to start server on %s:%d", config.server_bind, config.server_port)
        await runner.cleanup()
        raise
    logger.info("Server started on %s:%d", config.server_bind, config.server_port)

    job_tasks = [asyncio.create_task(job.run(stop_event), name=job.name) for job in services.jobs]

    loop = asyncio.get_running_loop()
    if external_stop_event is None:

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)
    else:
        logger.debug("Using external stop event - skipping signal handler registration")

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    for task in job_tasks:
        task.cancel()
    for task in job_tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning("Job %s error during shutdown: %s", task.get_name(), e)

    await runner.cleanup()
    logger.info("Server shutdown complete")


def start_server(config: Config) -> None:
    """Run the event loop and HTTP server; blocks until SIGINT/SIGTERM."""
    from ..logging_config import configure_logging

    configure_logging(debug_mode=config.debug_logging)
    logger.info("Logging configuration applied: debug_mode=%s", config.debug_logging)

    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
