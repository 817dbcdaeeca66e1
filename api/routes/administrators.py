"""
api/routes/administrators.py -- Login and administrator management endpoints.

Routes:
  POST /administradores/login   -- email/password login; returns a JWT (public)
  GET  /administradores         -- list administrators, ?pagina=N (Adm only)
  GET  /administradores/{id}    -- administrator detail (Adm only)
  POST /administradores         -- create administrator (Adm only)

Security:
  POST /login is rate-limited (LOGIN_RATE_LIMIT, 5/minute by default) per
  client identity.
  authenticate_administrator() provides timing equalization -- use it, never
  inline get_by_email() + verify_password().
  Wrong email and wrong password produce the same bare 401.
  Cache-Control: no-store on login responses.
  Responses never include password hashes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.deps import get_app_settings, get_uow
from api.limiter import limiter
from api.models import (
    AdministratorCreate,
    AdministratorResponse,
    LoginRequest,
    LoginResponse,
    ValidationErrors,
)
from auth.dependencies import require_admin
from auth.tokens import authenticate_administrator, create_access_token, hash_password
from cache.store import CacheKeys
from core.config import Settings, get_settings
from core.errors import NotFoundError, error_body
from fleet.models import Administrator, Role
from fleet.repository import UnitOfWork
from fleet.validators import flatten, validate_administrator

_settings = get_settings()

_DUPLICATE_EMAIL = "Email is already registered"

# Auth policy:
# - POST /administradores/login: public -- login endpoint must be unauthenticated
# - everything else: Adm role (require_admin)
router = APIRouter(prefix="/administradores", tags=["Administrators"])


def _validation_response(messages: list[str]) -> JSONResponse:
    return JSONResponse(status_code=400, content=ValidationErrors(mensagens=messages).model_dump())


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/login", response_model=LoginResponse)
@limiter.limit(_settings.login_rate_limit)
def login(request: Request, body: LoginRequest, uow: UnitOfWork = Depends(get_uow)) -> JSONResponse:
    """Authenticate with email and password; return a signed token.

    The token carries the Email and Perfil claims plus the standard role
    claim and expires after TOKEN_EXPIRE_SECONDS (one day).
    """
    administrator = authenticate_administrator(uow, body.email, body.password)
    if administrator is None:
        resp = JSONResponse(
            status_code=401,
            content=error_body(401, "Invalid email or password.", instance=request.url.path),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = create_access_token(administrator.email, administrator.role)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(email=administrator.email, perfil=administrator.role, token=token).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Admin-only endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=list[AdministratorResponse], dependencies=[Depends(require_admin)])
def list_administrators(
    pagina: Optional[int] = Query(default=None, ge=1, description="1-based page number; omit for all"),
    uow: UnitOfWork = Depends(get_uow),
    settings: Settings = Depends(get_app_settings),
) -> list[AdministratorResponse]:
    if pagina is None:
        administrators = uow.administrators.get_all()
    else:
        administrators = uow.administrators.get_paged(pagina, settings.page_size)
    return [AdministratorResponse.from_entity(a) for a in administrators]


@router.get("/{administrator_id}", response_model=AdministratorResponse, dependencies=[Depends(require_admin)])
def get_administrator(administrator_id: int, uow: UnitOfWork = Depends(get_uow)) -> AdministratorResponse:
    administrator = uow.administrators.get_by_id(administrator_id)
    if administrator is None:
        raise NotFoundError()
    return AdministratorResponse.from_entity(administrator)


@router.post(
    "",
    response_model=AdministratorResponse,
    status_code=201,
    dependencies=[Depends(require_admin)],
)
@limiter.limit(_settings.create_rate_limit)
def create_administrator(
    request: Request,
    body: AdministratorCreate,
    uow: UnitOfWork = Depends(get_uow),
) -> JSONResponse:
    """Create an administrator. The password is stored as a bcrypt hash."""
    errors = validate_administrator(body.email, body.password, body.role)
    if errors:
        return _validation_response(flatten(errors))
    if uow.administrators.get_by_email(body.email) is not None:
        return _validation_response([_DUPLICATE_EMAIL])

    role = Role.parse(body.role) or Role.EDITOR
    administrator = uow.administrators.add(
        Administrator(email=body.email, password_hash=hash_password(body.password), role=role.value)
    )
    try:
        uow.save_changes()
    except IntegrityError:
        # A concurrent request registered the same email first
        return _validation_response([_DUPLICATE_EMAIL])

    request.app.state.cache.remove(CacheKeys.STATISTICS)
    return JSONResponse(
        status_code=201,
        content=AdministratorResponse.from_entity(administrator).model_dump(),
        headers={"Location": f"/administradores/{administrator.id}"},
    )
