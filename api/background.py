"""
api/background.py -- Periodic maintenance jobs started by the API lifespan.

Each job runs as its own asyncio task so it can be cancelled independently:

  cache-warmup     every 30 minutes, retry after 5 minutes
                   stores the statistics payload in the cache
  database-cleanup daily at 02:00 local time, retry after 1 hour
                   purges expired cache entries
  health-sampling  every 5 minutes, retry after 1 minute
                   runs the health checks and logs anything not Healthy

run_periodic() is the shared loop: await the job, sleep the interval; if the
job raises, log it and sleep the retry delay instead. CancelledError from
task.cancel() during shutdown propagates out of asyncio.sleep and unwinds the
coroutine. A cancel that lands while a job is running waits for that run to
finish first, so awaiting a cancelled task means no job thread is still
touching the database or cache.

Jobs are synchronous functions (SQLAlchemy and the cache are blocking), so
the loop runs them in a worker thread via asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import FastAPI

from cache.store import CacheKeys, CacheService
from core.health import HealthCheckService, HealthStatus
from fleet.repository import Database

logger = logging.getLogger("fleetadmin.jobs")

WARMUP_INTERVAL = 30 * 60
WARMUP_RETRY = 5 * 60
CLEANUP_HOUR = 2
CLEANUP_RETRY = 60 * 60
HEALTH_INTERVAL = 5 * 60
HEALTH_RETRY = 60


def seconds_until_hour(hour: int, now: Optional[datetime] = None) -> float:
    """Seconds from now until the next HH:00:00 (tomorrow if already past)."""
    now = now or datetime.now()
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def run_periodic(
    name: str,
    job: Callable[[], Any],
    interval: float | Callable[[], float],
    retry_delay: float,
    first_delay: float | Callable[[], float] = 0,
) -> None:
    """Run job forever with a fixed delay between runs and after failures.

    interval and first_delay may be callables so schedules pinned to a wall
    clock hour can recompute the delay every cycle.
    """
    logger.info("Background job %s started", name)
    delay = first_delay() if callable(first_delay) else first_delay
    if delay > 0:
        await asyncio.sleep(delay)
    while True:
        running = asyncio.ensure_future(asyncio.to_thread(job))
        try:
            await asyncio.shield(running)
        except asyncio.CancelledError:
            # The worker thread cannot be interrupted; it must finish before
            # shutdown closes the database and cache it uses.
            await asyncio.wait([running])
            if not running.cancelled() and running.exception() is not None:
                logger.error("Background job %s failed during shutdown: %s", name, running.exception())
            logger.info("Background job %s stopped", name)
            raise
        except Exception:
            logger.exception("Background job %s failed; retrying in %ss", name, retry_delay)
            await asyncio.sleep(retry_delay)
            continue
        await asyncio.sleep(interval() if callable(interval) else interval)


# ---------------------------------------------------------------------------
# Job bodies
# ---------------------------------------------------------------------------


def build_statistics(database: Database, version: str) -> dict[str, Any]:
    """Counts and metadata served by GET /api/estatisticas."""
    with database.unit_of_work() as uow:
        vehicles = uow.vehicles.count()
        administrators = uow.administrators.count()
    return {
        "totalVeiculos": vehicles,
        "totalAdministradores": administrators,
        "versaoAPI": version,
        "dataConsulta": datetime.now().isoformat(),
        "funcionalidadesDisponiveis": [
            "Vehicle management",
            "JWT authentication",
            "Role-based access control",
            "Paginated listings",
            "Automatic validation",
        ],
    }


def warm_cache(database: Database, cache: CacheService, version: str) -> None:
    logger.info("Warming cache")
    cache.set(CacheKeys.STATISTICS, build_statistics(database, version), expiry=timedelta(hours=1))


def clean_up(cache: CacheService) -> None:
    removed = cache.purge_expired()
    logger.info("Cleanup removed %d expired cache entries", removed)


def sample_health(health: HealthCheckService) -> None:
    report = health.run()
    if report.status is not HealthStatus.HEALTHY:
        degraded = [e.name for e in report.entries if e.result.status is not HealthStatus.HEALTHY]
        logger.warning("System health is %s (checks: %s)", report.status.value, ", ".join(degraded))


def start_background_jobs(app: FastAPI) -> list[asyncio.Task]:
    """Create one task per job from the resources on app.state."""
    state = app.state
    version = state.settings.api_version
    return [
        asyncio.create_task(
            run_periodic(
                "cache-warmup",
                lambda: warm_cache(state.database, state.cache, version),
                WARMUP_INTERVAL,
                WARMUP_RETRY,
            )
        ),
        asyncio.create_task(
            run_periodic(
                "database-cleanup",
                lambda: clean_up(state.cache),
                lambda: seconds_until_hour(CLEANUP_HOUR),
                CLEANUP_RETRY,
                first_delay=lambda: seconds_until_hour(CLEANUP_HOUR),
            )
        ),
        asyncio.create_task(
            run_periodic(
                "health-sampling",
                lambda: sample_health(state.health),
                HEALTH_INTERVAL,
                HEALTH_RETRY,
            )
        ),
    ]
