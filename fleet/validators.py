"""
fleet/validators.py -- Field-level validation rules for fleet entities.

Each validate_* function returns a dict mapping field name to the list of
messages raised against it. An empty dict means the input is valid. Every
rule runs, so a single response reports all violations at once (a year below
1950 is reported even when the name and brand are also wrong).

The HTTP layer flattens the dict into {"mensagens": [...]}; callers that
prefer an exception can raise EntityValidationError(errors) instead.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Optional

from fleet.models import Role

MIN_VEHICLE_YEAR = 1950

_TEXT_MIN = 2
_NAME_MAX = 150
_BRAND_MAX = 100
_EMAIL_MAX = 255
_PASSWORD_MIN = 6
_PASSWORD_MAX = 50
# bcrypt rejects or truncates anything longer.
_PASSWORD_MAX_BYTES = 72

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_NAME_RE = re.compile(r"^[a-zA-Z0-9\s\-\.]+$")
_BRAND_RE = re.compile(r"^[a-zA-Z\s\-]+$")
# At least one lower-case letter, one upper-case letter and one digit.
_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def _add(errors: dict[str, list[str]], field: str, message: str) -> None:
    errors.setdefault(field, []).append(message)


def validate_vehicle(name: Optional[str], brand: Optional[str], year: Optional[int]) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}

    if not name or not name.strip():
        _add(errors, "nome", "Name must not be empty")
    elif len(name) > _NAME_MAX:
        _add(errors, "nome", f"Name must be at most {_NAME_MAX} characters")
    else:
        if len(name) < _TEXT_MIN:
            _add(errors, "nome", f"Name must be at least {_TEXT_MIN} characters")
        if not _NAME_RE.match(name):
            _add(errors, "nome", "Name contains invalid characters")

    if not brand or not brand.strip():
        _add(errors, "marca", "Brand must not be empty")
    elif len(brand) > _BRAND_MAX:
        _add(errors, "marca", f"Brand must be at most {_BRAND_MAX} characters")
    else:
        if len(brand) < _TEXT_MIN:
            _add(errors, "marca", f"Brand must be at least {_TEXT_MIN} characters")
        if not _BRAND_RE.match(brand):
            _add(errors, "marca", "Brand contains invalid characters")

    max_year = date.today().year + 1
    if year is None or year < MIN_VEHICLE_YEAR:
        _add(errors, "ano", f"Year too old: only vehicles from {MIN_VEHICLE_YEAR} onward are accepted")
    elif year > max_year:
        _add(errors, "ano", f"Year must be between {MIN_VEHICLE_YEAR} and {max_year}")

    return errors


def validate_administrator(
    email: Optional[str], password: Optional[str], role: Optional[object]
) -> dict[str, list[str]]:
    """Validate an administrator creation request.

    The password policy applies here, before hashing; the repository only
    ever sees the hash.
    """
    errors: dict[str, list[str]] = {}

    if not email or not email.strip():
        _add(errors, "email", "Email must not be empty")
    else:
        if len(email) > _EMAIL_MAX:
            _add(errors, "email", f"Email must be at most {_EMAIL_MAX} characters")
        if not _EMAIL_RE.match(email.strip()):
            _add(errors, "email", "Email must be a valid address")

    if not password:
        _add(errors, "senha", "Password must not be empty")
    else:
        if not _PASSWORD_MIN <= len(password) <= _PASSWORD_MAX:
            _add(errors, "senha", f"Password must be between {_PASSWORD_MIN} and {_PASSWORD_MAX} characters")
        if len(password.encode("utf-8")) > _PASSWORD_MAX_BYTES:
            _add(errors, "senha", f"Password must be at most {_PASSWORD_MAX_BYTES} bytes when encoded as UTF-8")
        if not _PASSWORD_RE.match(password):
            _add(
                errors,
                "senha",
                "Password must contain at least one lower-case letter, one upper-case letter and one digit",
            )

    if role is None or (isinstance(role, str) and not role.strip()):
        _add(errors, "perfil", "Role must not be empty")
    elif Role.parse(role) is None:
        allowed = " or ".join(r.value for r in Role)
        _add(errors, "perfil", f"Role must be {allowed}")

    return errors


def flatten(errors: dict[str, list[str]]) -> list[str]:
    """Return every message in field order, as the {mensagens} body expects."""
    return [message for messages in errors.values() for message in messages]
