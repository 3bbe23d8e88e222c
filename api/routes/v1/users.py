"""
api/routes/v1/users.py -- Account registration endpoint.

Routes:
  POST /api/v1/users -- register a new account; 201 + sanitized user

Public (no authentication), but like every unsafe method it needs a valid
CSRF token (enforced by api.middleware.csrf_middleware before this runs).
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from api.models import UserCreate, UserResponse
from auth.accounts import register
from auth.store import CredentialStore

router = APIRouter()


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(request: Request, body: UserCreate) -> UserResponse:
    """Register a new account.

    Validation, uniqueness and storage errors are raised by register() as
    GatehouseError subclasses and rendered by the handler in api/main.py.
    The response model has no password field, so the hash cannot leak even
    if the flow returned one.
    """
    store: CredentialStore = request.app.state.credential_store
    created = register(store, body.to_registration())
    return UserResponse(**created)
