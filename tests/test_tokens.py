"""Unit tests for auth/tokens.py and auth/dependencies.py.

Covers:
- bcrypt hash/verify, including malformed stored hashes
- token claims, expiry and tampering
- authenticate_administrator() success and failure paths
- role gating dependency (401 vs 403)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from jose import jwt
from starlette.requests import Request

from auth.dependencies import require_admin, require_admin_or_editor, try_get_current_principal
from auth.models import Principal
from auth.tokens import (
    authenticate_administrator,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, EDITOR_EMAIL
from core.config import get_settings


def _request(token: str | None = None) -> Request:
    headers = []
    if token is not None:
        headers.append((b"authorization", f"Bearer {token}".encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def test_hash_is_not_plaintext_and_verifies():
    hashed = hash_password("Senha123")
    assert hashed != "Senha123"
    assert hashed.startswith("$2")
    assert verify_password("Senha123", hashed)
    assert not verify_password("senha123", hashed)


def test_malformed_hash_never_verifies():
    assert verify_password("Senha123", "not-a-bcrypt-hash") is False


def test_hash_rejects_more_than_72_bytes():
    with pytest.raises(ValueError):
        hash_password("Aa1" + "\u00e9" * 40)
    assert not verify_password("Aa1" + "\u00e9" * 40, hash_password("Senha123"))


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def test_token_carries_identity_claims():
    payload = decode_access_token(create_access_token("a@b.com", "Editor"))
    assert payload["sub"] == "a@b.com"
    assert payload["Email"] == "a@b.com"
    assert payload["Perfil"] == "Editor"
    assert payload["role"] == "Editor"


def test_default_lifetime_is_one_day():
    payload = decode_access_token(create_access_token("a@b.com", "Adm"))
    expires = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
    remaining = expires - datetime.now(timezone.utc)
    assert timedelta(hours=23) < remaining <= timedelta(days=1)


def test_expired_token_rejected():
    secret = get_settings().secret_key
    token = jwt.encode(
        {"Email": "a@b.com", "role": "Adm", "exp": datetime.now(timezone.utc) - timedelta(seconds=5)},
        secret,
        algorithm="HS256",
    )
    assert decode_access_token(token) is None


def test_token_signed_with_other_key_rejected():
    token = jwt.encode({"Email": "a@b.com", "role": "Adm"}, "x" * 40, algorithm="HS256")
    assert decode_access_token(token) is None


def test_token_without_role_claim_rejected():
    token = jwt.encode({"Email": "a@b.com"}, get_settings().secret_key, algorithm="HS256")
    assert decode_access_token(token) is None


# ---------------------------------------------------------------------------
# authenticate_administrator
# ---------------------------------------------------------------------------


def test_authenticate_administrator(database):
    with database.unit_of_work() as uow:
        assert authenticate_administrator(uow, ADMIN_EMAIL, ADMIN_PASSWORD).role == "Adm"
        assert authenticate_administrator(uow, ADMIN_EMAIL, "Wrong123") is None
        assert authenticate_administrator(uow, "nobody@teste.com", ADMIN_PASSWORD) is None
        assert authenticate_administrator(uow, "", "") is None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def test_principal_from_bearer_header():
    token = create_access_token(EDITOR_EMAIL, "Editor")
    assert try_get_current_principal(_request(token)) == Principal(email=EDITOR_EMAIL, role="Editor")
    assert try_get_current_principal(_request()) is None
    assert try_get_current_principal(_request("garbage")) is None


def test_role_gating():
    editor = _request(create_access_token(EDITOR_EMAIL, "Editor"))
    assert require_admin_or_editor(editor).role == "Editor"
    with pytest.raises(HTTPException) as forbidden:
        require_admin(editor)
    assert forbidden.value.status_code == 403
    with pytest.raises(HTTPException) as anonymous:
        require_admin(_request())
    assert anonymous.value.status_code == 401
