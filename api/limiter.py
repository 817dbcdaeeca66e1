"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware and register the 429
handler) and in the route modules (to apply per-route limits with
@limiter.limit()).

Using a single shared instance ensures all routes share the same counter
store. If this were instantiated in each module separately, each module
would get its own isolated counter and rate limits would never trigger.

Strategy: fixed window. Each accepted request increments a counter whose
expiry equals the window; once the counter reaches the limit every further
request in the window gets 429. The window resets when the counter expires.
There is no queueing or smoothing.

Client identity is the remote address plus a hash of the User-Agent, so two
clients behind the same NAT with different agents get separate windows.

Decorator order: @router.<verb>(...) must sit ABOVE @limiter.limit(...). The
router has to register the rate-limited wrapper, not the bare function;
SlowAPIMiddleware itself only enforces the default/application limits.
"""

from __future__ import annotations

import hashlib

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from core.config import get_settings
from core.errors import error_body

_settings = get_settings()

RATE_LIMIT_DETAIL = "Too many requests. Try again later."


def client_identity(request: Request) -> str:
    agent = request.headers.get("User-Agent", "")
    digest = hashlib.sha256(agent.encode("utf-8")).hexdigest()[:16]
    return f"{get_remote_address(request)}:{digest}"


limiter = Limiter(
    key_func=client_identity,
    storage_uri=_settings.rate_limit_storage_uri,
    strategy="fixed-window",
    default_limits=[_settings.default_rate_limit],
    application_limits=[_settings.global_rate_limit],
)


def _retry_after(exc: RateLimitExceeded) -> int:
    """Window length of the limit that was hit, in seconds (60 if unknown)."""
    item = getattr(getattr(exc, "limit", None), "limit", None)
    try:
        return int(item.get_expiry())
    except (AttributeError, TypeError, ValueError):
        return 60


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with the fixed message and a Retry-After header."""
    response = JSONResponse(
        status_code=429,
        content=error_body(429, RATE_LIMIT_DETAIL, instance=request.url.path),
    )
    response.headers["Retry-After"] = str(_retry_after(exc))
    return response
