"""
core/errors.py -- Exception taxonomy and the global error response shape.

Every error that leaves the API is rendered as:

    {"title": ..., "status": ..., "detail": ..., "instance": ...,
     "timestamp": ..., "errors": {...}}

Route handlers and services raise the exceptions below; api/main.py owns the
exception handlers that call problem_details() to build the body. The
mapping is:

    EntityValidationError -> 400
    InvalidOperationError -> 400
    UnauthorizedError     -> 401
    NotFoundError         -> 404
    TimeoutError          -> 408  (builtin)
    anything else         -> 500  (generic detail, never the exception text)

Layer rule: no imports from api/, auth/, fleet/, or cache/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


class AppError(Exception):
    """Base class for errors that map onto a known HTTP status."""

    status_code: int = 500
    title: str = "Internal Server Error"
    default_detail: str = "An internal error occurred. Try again later."

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class EntityValidationError(AppError):
    """One or more fields failed validation.

    errors maps a field name to the list of messages raised against it.
    """

    status_code = 400
    title = "Validation Error"
    default_detail = "One or more fields are invalid."

    def __init__(self, errors: dict[str, list[str]], detail: str | None = None) -> None:
        self.errors = errors
        super().__init__(detail)


class InvalidOperationError(AppError):
    status_code = 400
    title = "Invalid Operation"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)


class UnauthorizedError(AppError):
    status_code = 401
    title = "Unauthorized"
    default_detail = "You are not allowed to access this resource."


class NotFoundError(AppError):
    status_code = 404
    title = "Not Found"
    default_detail = "The requested resource was not found."


_TIMEOUT_TITLE = "Request Timeout"
_TIMEOUT_DETAIL = "The operation exceeded the time limit."

# Titles for statuses raised as plain HTTPException (auth dependencies, 405s).
STATUS_TITLES: dict[int, str] = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    408: _TIMEOUT_TITLE,
    429: "Too Many Requests",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def error_body(
    status: int,
    detail: str,
    title: str | None = None,
    instance: str | None = None,
    errors: dict[str, list[str]] | None = None,
) -> dict[str, Any]:
    """Build the global error response body."""
    body: dict[str, Any] = {
        "title": title or STATUS_TITLES.get(status, "Error"),
        "status": status,
        "detail": detail,
        "instance": instance,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if errors:
        body["errors"] = errors
    return body


def problem_details(exc: BaseException, instance: str | None = None) -> dict[str, Any]:
    """Map an exception onto the global error shape.

    Only AppError subclasses contribute their own detail text. Unknown
    exceptions get the generic 500 detail so internals never reach the client.
    """
    if isinstance(exc, EntityValidationError):
        return error_body(exc.status_code, exc.detail, exc.title, instance, exc.errors)
    if isinstance(exc, AppError):
        return error_body(exc.status_code, exc.detail, exc.title, instance)
    if isinstance(exc, TimeoutError):
        return error_body(408, _TIMEOUT_DETAIL, _TIMEOUT_TITLE, instance)
    return error_body(500, AppError.default_detail, AppError.title, instance)
