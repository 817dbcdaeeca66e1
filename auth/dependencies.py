"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Authentication is the Authorization: Bearer <token> header only. The token
is self-contained: identity and role come from its claims, so these checks
never touch the database.

try_get_current_principal() is the soft variant (returns None on failure).
get_current_principal() wraps it and raises HTTP 401 if unauthenticated.
require_roles(...) builds a dependency that also raises HTTP 403 when the
token's role is not one of the allowed roles.

Both failures are opaque: the response never says which check failed.

Layer rule: no imports from api/, cache/, or fleet/repository.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import HTTPException, Request

from auth.models import Principal
from auth.tokens import EMAIL_CLAIM, STANDARD_ROLE_CLAIM, decode_access_token
from fleet.models import Role


def try_get_current_principal(request: Request) -> Principal | None:
    """Return the Principal for a valid bearer token, None otherwise. Never raises."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    payload = decode_access_token(token.strip())
    if payload is None:
        return None
    return Principal(email=payload[EMAIL_CLAIM], role=payload[STANDARD_ROLE_CLAIM])


def get_current_principal(request: Request) -> Principal:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    principal = try_get_current_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_roles(*roles: Role) -> Callable[[Request], Principal]:
    """Build a dependency that admits only the given roles.

    401 when the token is missing or invalid, 403 when the role claim is not
    one of roles. Either way the route handler does not run.

    Use as a FastAPI dependency:
        @router.delete("/veiculos/{id}")
        def route(principal: Principal = Depends(require_roles(Role.ADMIN))): ...
    """
    allowed = {role.value for role in roles}

    def dependency(request: Request) -> Principal:
        principal = get_current_principal(request)
        if principal.role not in allowed:
            raise HTTPException(status_code=403, detail="Access denied.")
        return principal

    return dependency


require_admin = require_roles(Role.ADMIN)
require_admin_or_editor = require_roles(Role.ADMIN, Role.EDITOR)
