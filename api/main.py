"""
api/main.py -- FastAPI application entry point for FleetAdmin.

Vehicle registry API: administrators log in with email/password, receive a
signed token and manage the vehicle fleet according to their role.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. log_requests          -- one access log line per request with latency
  2. SlowAPIMiddleware     -- enforces default/application rate limits

Lifespan handles startup (database, cache, health checks, seed administrator,
background jobs) and shutdown (cancel jobs, close cache and database)
symmetrically.

Every error leaves the API in the same shape, built by core.errors:
    {"title", "status", "detail", "instance", "timestamp", "errors"?}
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.background import start_background_jobs
from api.limiter import limiter, rate_limit_exceeded_handler
from api.routes.administrators import router as administrators_router
from api.routes.health import router as health_router
from api.routes.home import router as home_router
from api.routes.vehicles import router as vehicles_router
from auth.tokens import hash_password
from cache.store import build_cache
from core.config import Settings, get_settings
from core.errors import (
    STATUS_TITLES,
    EntityValidationError,
    InvalidOperationError,
    NotFoundError,
    UnauthorizedError,
    error_body,
    problem_details,
)
from core.health import build_health_service
from fleet.models import Administrator, Role
from fleet.repository import Database

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("fleetadmin.api")

_settings = get_settings()


def seed_administrator(database: Database, settings: Settings) -> bool:
    """Create the first administrator from SEED_ADMIN_* when the table is empty.

    Returns True when an account was created. Without SEED_ADMIN_EMAIL and
    SEED_ADMIN_PASSWORD nothing happens, and nobody can log in until an
    administrator row exists.
    """
    if not (settings.seed_admin_email and settings.seed_admin_password):
        return False
    with database.unit_of_work() as uow:
        if uow.administrators.count() > 0:
            return False
        role = Role.parse(settings.seed_admin_role) or Role.ADMIN
        uow.administrators.add(
            Administrator(
                email=settings.seed_admin_email,
                password_hash=hash_password(settings.seed_admin_password),
                role=role.value,
            )
        )
        uow.save_changes()
    logger.info("Seeded administrator %s (%s)", settings.seed_admin_email, role.value)
    return True


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Database first -- tables are created here; everything else reads it.
      2. Cache and health checks -- the database probe needs the Database.
      3. Background jobs last -- they reference everything above via app.state.
    """
    # Startup
    logger.info("FleetAdmin API starting up")
    app.state.settings = _settings
    app.state.database = Database(_settings.database_url)
    logger.info("Database initialized")
    app.state.cache = build_cache(_settings)
    logger.info("Cache initialized (%s)", _settings.cache_backend)
    app.state.health = build_health_service(app.state.database, _settings.memory_threshold_mb)
    seed_administrator(app.state.database, _settings)
    app.state.jobs = start_background_jobs(app) if _settings.background_jobs_enabled else []

    yield

    # Shutdown. Cancelled jobs finish their current run before gather returns,
    # so nothing is still using the cache or database when they close.
    for task in app.state.jobs:
        task.cancel()
    await asyncio.gather(*app.state.jobs, return_exceptions=True)
    app.state.cache.close()
    app.state.database.close()
    logger.info("FleetAdmin API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="FleetAdmin API",
    description="Vehicle registry with role-based administrator access.",
    version=_settings.api_version,
    lifespan=lifespan,
)

# Attach the shared limiter to app.state so SlowAPIMiddleware can locate it.
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(home_router)
app.include_router(administrators_router)
app.include_router(vehicles_router)
app.include_router(health_router)


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same error envelope so API clients can parse errors
# uniformly. Field-level 400s from the routes ({"mensagens": [...]}) are
# ordinary responses, not exceptions, and do not pass through here.
# ---------------------------------------------------------------------------

# SlowAPIMiddleware calls this handler synchronously, so it must not be async.
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed JSON, wrong types or bad path/query parameters -> 400."""
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body") or "body"
        errors.setdefault(field, []).append(error.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=400,
        content=error_body(
            400,
            EntityValidationError.default_detail,
            EntityValidationError.title,
            request.url.path,
            errors,
        ),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """401/403 from the auth dependencies, unknown routes and wrong methods."""
    detail = exc.detail if isinstance(exc.detail, str) else STATUS_TITLES.get(exc.status_code, "Error")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, detail, instance=request.url.path),
        headers=getattr(exc, "headers", None),
    )


async def app_error_handler(request: Request, exc: Exception) -> JSONResponse:
    body = problem_details(exc, request.url.path)
    return JSONResponse(status_code=body["status"], content=body)


for _error in (EntityValidationError, InvalidOperationError, UnauthorizedError, NotFoundError, TimeoutError):
    app.add_exception_handler(_error, app_error_handler)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is logged, never written to the response body; the
    client receives only the generic detail.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=problem_details(exc, request.url.path))
