"""
api/routes/home.py -- Landing, statistics and simple health endpoints.

Routes:
  GET /                  -- welcome message and docs link (public)
  GET /api/estatisticas  -- vehicle/administrator totals (any authenticated role)
  GET /api/health        -- {"status": "Healthy", ...}; liveness only (public)

Statistics are read through the cache (key statistics:general, 30 minutes);
the cache-warmup background job refreshes the same entry.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from api.background import build_statistics
from api.deps import get_cache
from api.limiter import limiter
from api.models import HealthResponse, HomeResponse, StatisticsResponse
from auth.dependencies import get_current_principal
from cache.store import CacheKeys, CacheService

router = APIRouter(tags=["Home"])


@router.get("/", response_model=HomeResponse)
def home() -> HomeResponse:
    return HomeResponse()


@router.get(
    "/api/estatisticas",
    response_model=StatisticsResponse,
    dependencies=[Depends(get_current_principal)],
)
def statistics(request: Request, cache: CacheService = Depends(get_cache)) -> StatisticsResponse:
    cached = cache.get(CacheKeys.STATISTICS, model=StatisticsResponse)
    if cached is not None:
        return cached
    stats = StatisticsResponse.model_validate(
        build_statistics(request.app.state.database, request.app.state.settings.api_version)
    )
    cache.set(CacheKeys.STATISTICS, stats.model_dump(by_alias=True))
    return stats


@router.get("/api/health", response_model=HealthResponse, tags=["Health"])
@limiter.exempt
def api_health(request: Request) -> HealthResponse:
    return HealthResponse(
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=request.app.state.settings.api_version,
    )
