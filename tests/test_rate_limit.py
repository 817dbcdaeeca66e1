"""Tests for api/limiter.py -- client identity, fixed windows and the 429 body.

A small dedicated app with its own Limiter keeps these tests independent of
the production limits configured on api.main.app.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.requests import Request as StarletteRequest

from api.limiter import RATE_LIMIT_DETAIL, client_identity, rate_limit_exceeded_handler


def _app() -> FastAPI:
    limiter = Limiter(key_func=client_identity, strategy="fixed-window", default_limits=["2/minute"])
    app = FastAPI()
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    @app.post("/login")
    @limiter.limit("3/minute")
    def login(request: Request):
        return {"ok": True}

    @app.get("/other")
    def other(request: Request):
        return {"ok": True}

    @app.get("/probe")
    @limiter.exempt
    def probe(request: Request):
        return {"ok": True}

    return app


def _scope(agent: str) -> dict:
    return {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(b"user-agent", agent.encode())],
        "client": ("10.0.0.1", 1234),
    }


def test_identity_combines_address_and_agent():
    first = client_identity(StarletteRequest(_scope("curl/8")))
    second = client_identity(StarletteRequest(_scope("Mozilla/5.0")))
    assert first.startswith("10.0.0.1:")
    assert first != second
    assert first == client_identity(StarletteRequest(_scope("curl/8")))


def test_route_limit_returns_429_with_retry_after():
    client = TestClient(_app())
    for _ in range(3):
        assert client.post("/login").status_code == 200
    resp = client.post("/login")
    assert resp.status_code == 429
    body = resp.json()
    assert body["status"] == 429
    assert body["detail"] == RATE_LIMIT_DETAIL
    assert resp.headers["Retry-After"] == "60"


def test_windows_are_per_client_identity():
    client = TestClient(_app())
    for _ in range(3):
        client.post("/login", headers={"User-Agent": "agent-a"})
    assert client.post("/login", headers={"User-Agent": "agent-a"}).status_code == 429
    assert client.post("/login", headers={"User-Agent": "agent-b"}).status_code == 200


def test_default_limit_applies_to_undecorated_routes():
    client = TestClient(_app())
    assert client.get("/other").status_code == 200
    assert client.get("/other").status_code == 200
    assert client.get("/other").status_code == 429


def test_exempt_route_is_never_limited():
    client = TestClient(_app())
    for _ in range(5):
        assert client.get("/probe").status_code == 200
