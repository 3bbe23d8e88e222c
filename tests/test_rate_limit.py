"""
tests/test_rate_limit.py -- Rate limiting with slowapi.

The shared limiter in api/limiter.py is configured from RATE_LIMIT at import
time (raised for the test run in conftest.py), so most of these tests build a
small app with the same wiring and tight limits:
  - application-wide limit enforced by SlowAPIMiddleware
  - a per-route limit stacked with the application limit, as on POST /login
  - the 429 envelope and Retry-After header from api.main's handler

The last tests check the real app: POST /api/v1/login is registered against
the application scope and is refused once that window is used up.
"""

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from api.limiter import APPLICATION_SCOPE, limiter
from api.main import rate_limit_handler


def _make_app() -> FastAPI:
    test_limiter = Limiter(
        key_func=get_remote_address,
        application_limits=["3/minute"],
        strategy="fixed-window",
        storage_uri="memory://",
    )
    app = FastAPI()
    app.state.limiter = test_limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

    @app.get("/ping")
    def ping():
        return {"ok": True}

    @app.post("/login")
    @test_limiter.shared_limit("3/minute", scope=APPLICATION_SCOPE)
    @test_limiter.limit("1/minute")
    def login(request: Request):
        return {"ok": True}

    return app


def test_application_limit_returns_429():
    client = TestClient(_make_app())
    for _ in range(3):
        assert client.get("/ping").status_code == 200
    resp = client.get("/ping")
    assert resp.status_code == 429
    assert resp.json()["error"]["code"] == "rate_limited"
    assert int(resp.headers["Retry-After"]) > 0


def test_decorated_route_enforces_its_own_limit():
    client = TestClient(_make_app())
    assert client.post("/login").status_code == 200
    assert client.post("/login").status_code == 429
    assert client.get("/ping").status_code == 200


def test_application_limit_also_covers_decorated_route():
    client = TestClient(_make_app())
    for _ in range(3):
        assert client.get("/ping").status_code == 200
    resp = client.post("/login")
    assert resp.status_code == 429
    assert resp.json()["error"]["code"] == "rate_limited"


def test_decorated_route_consumes_application_window():
    client = TestClient(_make_app())
    assert client.post("/login").status_code == 200
    assert client.get("/ping").status_code == 200
    assert client.get("/ping").status_code == 200
    assert client.get("/ping").status_code == 429


# ---------------------------------------------------------------------------
# Real app wiring
# ---------------------------------------------------------------------------


def test_login_route_registered_under_application_scope():
    scopes = {lim.scope for lim in limiter._route_limits["api.routes.v1.auth.login"]}
    assert APPLICATION_SCOPE in scopes


def test_login_refused_once_application_window_is_spent(api_client):
    client, _, _ = api_client
    csrf = client.get("/api/v1/csrf-token").json()["csrfToken"]
    app_limit = next(iter(limiter._application_limits[0])).limit
    try:
        limiter.limiter.hit(app_limit, "testclient", APPLICATION_SCOPE, cost=app_limit.amount)
        resp = client.post(
            "/api/v1/login",
            json={"email": "a@b.com", "password": "longenough"},
            headers={"X-CSRF-Token": csrf},
        )
        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == "rate_limited"
    finally:
        limiter.reset()
