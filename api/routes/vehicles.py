"""
api/routes/vehicles.py -- Vehicle CRUD endpoints.

Routes:
  POST   /veiculos         -- create (Adm, Editor)
  GET    /veiculos         -- list, ?pagina=N (any authenticated role)
  GET    /veiculos/{id}    -- detail, served through the cache (Adm, Editor)
  PUT    /veiculos/{id}    -- replace name/brand/year (Adm only)
  DELETE /veiculos/{id}    -- delete (Adm only)

Writes drop the cached detail entry and the statistics entry so the next
read sees the database.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from api.deps import get_app_settings, get_cache, get_uow
from api.limiter import limiter
from api.models import ValidationErrors, VehicleResponse, VehicleWrite
from auth.dependencies import get_current_principal, require_admin, require_admin_or_editor
from cache.store import CacheKeys, CacheService
from core.config import Settings, get_settings
from core.errors import NotFoundError
from fleet.models import Vehicle
from fleet.repository import UnitOfWork
from fleet.validators import flatten, validate_vehicle

logger = logging.getLogger("fleetadmin.vehicles")

_settings = get_settings()

router = APIRouter(prefix="/veiculos", tags=["Vehicles"])


def _invalid(body: VehicleWrite) -> Optional[JSONResponse]:
    errors = validate_vehicle(body.name, body.brand, body.year)
    if not errors:
        return None
    return JSONResponse(status_code=400, content=ValidationErrors(mensagens=flatten(errors)).model_dump())


@router.post(
    "",
    response_model=VehicleResponse,
    status_code=201,
    dependencies=[Depends(require_admin_or_editor)],
)
@limiter.limit(_settings.create_rate_limit)
def create_vehicle(
    request: Request,
    body: VehicleWrite,
    uow: UnitOfWork = Depends(get_uow),
    cache: CacheService = Depends(get_cache),
) -> JSONResponse:
    invalid = _invalid(body)
    if invalid is not None:
        return invalid

    vehicle = uow.vehicles.add(Vehicle(name=body.name, brand=body.brand, year=body.year))
    uow.save_changes()
    cache.remove(CacheKeys.STATISTICS)
    logger.info("Vehicle %d created", vehicle.id)
    return JSONResponse(
        status_code=201,
        content=VehicleResponse.from_entity(vehicle).model_dump(),
        headers={"Location": f"/veiculos/{vehicle.id}"},
    )


@router.get("", response_model=list[VehicleResponse], dependencies=[Depends(get_current_principal)])
def list_vehicles(
    pagina: Optional[int] = Query(default=None, ge=1, description="1-based page number; omit for all"),
    uow: UnitOfWork = Depends(get_uow),
    settings: Settings = Depends(get_app_settings),
) -> list[VehicleResponse]:
    if pagina is None:
        vehicles = uow.vehicles.get_all()
    else:
        vehicles = uow.vehicles.get_paged(pagina, settings.page_size)
    return [VehicleResponse.from_entity(v) for v in vehicles]


@router.get("/{vehicle_id}", response_model=VehicleResponse, dependencies=[Depends(require_admin_or_editor)])
def get_vehicle(
    vehicle_id: int,
    uow: UnitOfWork = Depends(get_uow),
    cache: CacheService = Depends(get_cache),
) -> VehicleResponse:
    key = CacheKeys.VEHICLE_BY_ID.format(vehicle_id)
    cached = cache.get(key, model=VehicleResponse)
    if cached is not None:
        return cached

    vehicle = uow.vehicles.get_by_id(vehicle_id)
    if vehicle is None:
        raise NotFoundError()
    response = VehicleResponse.from_entity(vehicle)
    cache.set(key, response)
    return response


@router.put("/{vehicle_id}", response_model=VehicleResponse, dependencies=[Depends(require_admin)])
def update_vehicle(
    vehicle_id: int,
    body: VehicleWrite,
    uow: UnitOfWork = Depends(get_uow),
    cache: CacheService = Depends(get_cache),
) -> JSONResponse:
    """Replace a vehicle's fields. A missing id is 404 even when the body is invalid."""
    vehicle = uow.vehicles.get_by_id(vehicle_id)
    if vehicle is None:
        raise NotFoundError()
    invalid = _invalid(body)
    if invalid is not None:
        return invalid

    vehicle.name, vehicle.brand, vehicle.year = body.name, body.brand, body.year
    uow.vehicles.update(vehicle)
    uow.save_changes()
    cache.remove(CacheKeys.VEHICLE_BY_ID.format(vehicle_id))
    return JSONResponse(status_code=200, content=VehicleResponse.from_entity(vehicle).model_dump())


@router.delete("/{vehicle_id}", status_code=204, dependencies=[Depends(require_admin)])
def delete_vehicle(
    vehicle_id: int,
    uow: UnitOfWork = Depends(get_uow),
    cache: CacheService = Depends(get_cache),
) -> Response:
    if not uow.vehicles.delete(vehicle_id):
        raise NotFoundError()
    uow.save_changes()
    cache.remove(CacheKeys.VEHICLE_BY_ID.format(vehicle_id))
    cache.remove(CacheKeys.STATISTICS)
    logger.info("Vehicle %d deleted", vehicle_id)
    return Response(status_code=204)
