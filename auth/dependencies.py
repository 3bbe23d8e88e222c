"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two identity sources are checked in priority order:
  1. Authorization: Bearer <token> header -- token-mode clients.
  2. The server-side session's "user" entry -- session-mode browsers.

Both converge on a UserRecord re-read from the credential store, so a deleted
account stops authenticating immediately.

try_get_current_user() is the soft variant (returns None when unauthenticated).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: may import from fastapi (this module is part of the dependency
injection system) and core/. No imports from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.issuers import SESSION_USER_KEY
from auth.models import UserRecord
from auth.store import CredentialStore
from auth.tokens import decode_access_token
from core.config import get_settings


def try_get_current_user(request: Request) -> UserRecord | None:
    """Authenticate the request via Bearer token or session.

    Returns None when neither identifies a user. A store outage during the
    lookup propagates as StoreUnavailableError (rendered as 503 by api.main).
    """
    store: CredentialStore = request.app.state.credential_store

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        payload = decode_access_token(auth_header[7:], get_settings().jwt_secret)
        if payload:
            return store.get_by_id(payload["user_id"])

    session = request.scope.get("session")
    if session is not None:
        identity = session.get(SESSION_USER_KEY)
        if identity and identity.get("id"):
            return store.get_by_id(identity["id"])

    return None


def get_current_user(request: Request) -> UserRecord:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: UserRecord = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user
