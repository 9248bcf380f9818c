"""Health endpoint for homecal."""

from __future__ import annotations

import os
import time
from collections.abc import Sequence
from typing import Any

from aiohttp import web

from ...core.protocols import TimeProvider
from ...core.scheduler import PeriodicJob
from ...logging_config import get_logging_status


def register_health_routes(
    app: web.Application,
    jobs: Sequence[PeriodicJob],
    time_provider: TimeProvider,
    started_at: float,
) -> None:
    """Register ``GET /api/health``.

    Status is "degraded" when any job's last cycle had tenant failures.
    """

    async def health_check(_request: web.Request) -> Any:
        job_status = [job.status() for job in jobs]
        degraded = any(job.last_result is not None and job.last_result.tenants_failed for job in jobs)
        health_data = {
            "status": "degraded" if degraded else "ok",
            "server_time_iso": time_provider().isoformat(),
            "server_status": {
                "uptime_s": int(time.time() - started_at),
                "pid": os.getpid(),
            },
            "background_tasks": job_status,
            "logging": get_logging_status(),
        }
        return web.json_response(health_data, status=200)

    app.router.add_get("/api/health", health_check)
