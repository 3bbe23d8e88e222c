"""
api/main.py -- FastAPI application entry point for Gatehouse.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests       -- access log line per request
  2. security_headers   -- nosniff, frame denial, CSP, HSTS in production
  3. SlowAPIMiddleware  -- application-wide rate limit from api.limiter
  4. CORSMiddleware     -- FRONTEND_URL only, credentials allowed
  5. session_middleware -- server-side session into request.session
  6. csrf_middleware    -- CSRF secret bootstrap and token verification

Lifespan opens the stores selected by DB_TYPE, builds the issuer selected by
AUTH_MODE, and starts the expired-session purge task. Shutdown reverses it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.concurrency import run_in_threadpool

from api.errors import error_response
from api.limiter import limiter
from api.middleware import csrf_middleware, log_requests, security_headers, session_middleware
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.backends import open_backends
from auth.errors import GatehouseError, InfrastructureError, StoreError, ValidationError
from auth.issuers import build_identity_issuer
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gatehouse.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired session records every 6 hours.

    MongoDB's TTL index does this on its own; the relational store relies on
    this loop. A failed purge is logged and retried on the next cycle.
    """
    while True:
        await asyncio.sleep(6 * 60 * 60)
        try:
            removed = await run_in_threadpool(app.state.session_store.purge_expired)
        except StoreError:
            logger.exception("Session purge failed")
            continue
        logger.info("Purged %d expired sessions", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Stores first -- both middleware and routes read them from app.state.
      2. Issuer second -- a bad AUTH_MODE is reported here, once, not per login.
      3. Purge task last -- references app.state.session_store.
    """
    settings = get_settings()
    logger.info("Gatehouse API starting up (environment=%s)", settings.environment)
    credential_store, session_store = open_backends(settings)
    app.state.credential_store = credential_store
    app.state.session_store = session_store
    app.state.issuer = build_identity_issuer(settings)
    logger.info("Auth initialized (db_type=%s, auth_mode=%s)", settings.db_type, settings.auth_mode)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.session_store.close()
    app.state.credential_store.close()
    logger.info("Gatehouse API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gatehouse API",
    description="User registration and login with token or server-side session identity.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette puts the most recently added middleware outermost, so registration
# runs innermost-first: CSRF, session, CORS, rate limiter, security headers,
# request logging.
# ---------------------------------------------------------------------------

app.middleware("http")(csrf_middleware)
app.middleware("http")(session_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().frontend_url],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", get_settings().csrf_header_name],
    expose_headers=[get_settings().csrf_header_name],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

app.middleware("http")(security_headers)
app.middleware("http")(log_requests)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(GatehouseError)
async def gatehouse_error_handler(request: Request, exc: GatehouseError) -> JSONResponse:
    """Render a domain error.

    Client errors carry their own message. Server-side errors were logged with
    full detail where they were raised; here they get one summary line.
    """
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.__cause__ or exc.message)
    return error_response(exc)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """A store failure that escaped a flow (e.g. in a dependency) is a 503."""
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return error_response(InfrastructureError())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc.detail),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """A body of the wrong shape is the same 400 as any other invalid input.

    The raw input is not echoed back; only the failing field locations are logged.
    """
    logger.info(
        "Malformed body on %s %s: %s",
        request.method,
        request.url.path,
        [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()],
    )
    return error_response(ValidationError("malformed request body"))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    database_ok = request.app.state.credential_store.ping()
    return HealthResponse(
        version=VERSION,
        components={"app": "ok", "database": "ok" if database_ok else "error"},
    )
