"""
api/routes/health.py -- Probe endpoints backed by core.health.

  GET /health        -- every registered check; always 200, status in the body
  GET /health/ready  -- checks tagged "ready" (the database); 503 when Unhealthy
  GET /health/live   -- no checks; 200 while the process is serving requests

None of these require authentication or count against rate limits: load
balancers and orchestrators poll them continuously.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from core.health import HealthCheckService, HealthStatus

router = APIRouter(prefix="/health", tags=["Health"])


def _service(request: Request) -> HealthCheckService:
    return request.app.state.health


@router.get("")
@limiter.exempt
def health(request: Request) -> JSONResponse:
    report = _service(request).run()
    return JSONResponse(status_code=200, content=report.to_dict())


@router.get("/ready")
@limiter.exempt
def ready(request: Request) -> JSONResponse:
    report = _service(request).run(lambda name, tags: "ready" in tags)
    status_code = 503 if report.status is HealthStatus.UNHEALTHY else 200
    return JSONResponse(status_code=status_code, content=report.to_dict())


@router.get("/live")
@limiter.exempt
def live(request: Request) -> JSONResponse:
    report = _service(request).run(lambda name, tags: False)
    return JSONResponse(status_code=200, content=report.to_dict())
