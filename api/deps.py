"""
api/deps.py -- Request-scoped resources for route handlers.

Shared resources live on app.state (set up by the lifespan in api/main.py);
these dependencies hand them to handlers. get_uow() opens one unit of work per
request and closes it when the response is done, discarding any write the
handler did not save.
"""

from collections.abc import Iterator

from fastapi import Request

from cache.store import CacheService
from core.config import Settings
from fleet.repository import Database, UnitOfWork


def get_uow(request: Request) -> Iterator[UnitOfWork]:
    database: Database = request.app.state.database
    with database.unit_of_work() as uow:
        yield uow


def get_cache(request: Request) -> CacheService:
    return request.app.state.cache


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
