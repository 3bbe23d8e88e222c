"""
api/middleware.py -- HTTP middleware functions for the request pipeline.

Registered in api/main.py. Request order (outermost to innermost):

  log_requests      -- access log line per request
  security_headers  -- helmet-style response headers
  SlowAPIMiddleware -- rate limiting (registered in main.py)
  CORSMiddleware    -- single allowed origin (registered in main.py)
  session_middleware-- resolves the server-side session into scope["session"]
  csrf_middleware   -- CSRF secret bootstrap, verification, token issue

Pattern: Interceptor / Chain of Responsibility. Each function receives the
request and the next callable. Functions that reject a request return an
ErrorResponse envelope directly via api.errors.error_response().

Store calls are synchronous; they run in the thread pool so the event loop
is never blocked on a database round-trip.
"""

from __future__ import annotations

import logging
import time

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool

from api.errors import error_response
from auth.csrf import (
    CSRF_SECRET_KEY,
    SAFE_METHODS,
    csrf_cookie_options,
    generate_csrf_secret,
    generate_csrf_token,
    verify_csrf_token,
)
from auth.errors import CsrfError, InfrastructureError, StoreError
from auth.sessions import Session, sign_session_id, unsign_session_id
from core.config import Settings, get_settings

logger = logging.getLogger("gatehouse.api")


async def log_requests(request: Request, call_next) -> Response:
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


async def security_headers(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
    response.headers.setdefault("Content-Security-Policy", "default-src 'self'")
    if get_settings().is_production:
        response.headers.setdefault("Strict-Transport-Security", "max-age=15552000; includeSubDomains")
    return response


async def session_middleware(request: Request, call_next) -> Response:
    """Load the session named by the signed cookie and persist it afterwards.

    An unknown, expired or forged cookie yields a fresh empty session. Nothing
    is written for a request that never stored anything in its session.
    """
    settings = get_settings()
    store = request.app.state.session_store
    session_id = unsign_session_id(request.cookies.get(settings.session_cookie_name), settings.session_secret)

    data = None
    if session_id is not None:
        try:
            data = await run_in_threadpool(store.load, session_id)
        except StoreError:
            logger.exception("Session load failed")
            return error_response(InfrastructureError())

    session = Session(
        store,
        session_id=session_id if data is not None else None,
        data=data,
        max_age_seconds=settings.session_max_age_seconds,
    )
    request.scope["session"] = session

    response = await call_next(request)

    if session.destroyed and not session.is_persisted:
        response.delete_cookie(settings.session_cookie_name, path="/")
        return response
    if not session.is_persisted and not session.modified:
        return response

    try:
        if session.modified or not session.is_persisted:
            await run_in_threadpool(session.save)
        else:
            await run_in_threadpool(session.touch)
    except StoreError:
        logger.exception("Session save failed")
        return error_response(InfrastructureError())

    response.set_cookie(
        settings.session_cookie_name,
        value=sign_session_id(session.id, settings.session_secret),
        max_age=settings.session_max_age_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        path="/",
    )
    return response


async def csrf_middleware(request: Request, call_next) -> Response:
    """Bootstrap the session's CSRF secret, verify unsafe requests, issue a fresh token.

    The secret is persisted before anything else runs for this request. If
    that write fails the request stops here with a 503.
    """
    settings = get_settings()
    session: Session = request.scope["session"]

    if CSRF_SECRET_KEY not in session:
        session[CSRF_SECRET_KEY] = generate_csrf_secret()
        try:
            await run_in_threadpool(session.save)
        except StoreError:
            logger.exception("Could not persist CSRF secret")
            return error_response(InfrastructureError())

    secret = session[CSRF_SECRET_KEY]
    if request.method not in SAFE_METHODS:
        if not verify_csrf_token(
            secret,
            request.headers.get(settings.csrf_header_name),
            request.cookies.get(settings.csrf_cookie_name),
        ):
            logger.warning("CSRF check failed: %s %s", request.method, request.url.path)
            response = error_response(CsrfError("invalid csrf token"))
            _attach_csrf_token(response, secret, settings)
            return response

    token, cookie_value = generate_csrf_token(secret, settings.csrf_token_size)
    request.state.csrf_token = token

    response = await call_next(request)

    # Logout destroys the session and its secret with it; the next request
    # bootstraps a new one.
    if CSRF_SECRET_KEY in session:
        response.set_cookie(settings.csrf_cookie_name, value=cookie_value, **csrf_cookie_options(settings))
        response.headers[settings.csrf_header_name] = token
    else:
        response.delete_cookie(settings.csrf_cookie_name, path="/")
    return response


def _attach_csrf_token(response: Response, secret: str, settings: Settings) -> None:
    token, cookie_value = generate_csrf_token(secret, settings.csrf_token_size)
    response.set_cookie(settings.csrf_cookie_name, value=cookie_value, **csrf_cookie_options(settings))
    response.headers[settings.csrf_header_name] = token
