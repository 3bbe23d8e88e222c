"""
api/routes/v1/auth.py -- Login, logout and identity endpoints.

Routes:
  POST /api/v1/login       -- password login; {token} or {message} by AUTH_MODE
  POST /api/v1/logout      -- destroys the session (session mode); 200
  GET  /api/v1/me          -- current user (requires auth)
  GET  /api/v1/csrf-token  -- the CSRF token minted for this response

Security:
  POST /login counts against both LOGIN_RATE_LIMIT and the application limit.
  authenticate() provides timing equalization -- never inline the lookup.
  Cache-Control: no-store on login responses.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import application_limit, limiter
from api.models import CsrfTokenResponse, LoginRequest, LoginTokenResponse, MessageResponse, UserResponse
from auth.accounts import login as login_user
from auth.dependencies import get_current_user
from auth.issuers import IdentityIssuer
from auth.models import TokenCredential, UserRecord, sanitize_user
from auth.store import CredentialStore
from core.config import get_settings

# Auth policy:
# - POST /api/v1/login:       public -- login endpoint must be unauthenticated
# - POST /api/v1/logout:      public -- ending a session needs no prior auth
# - GET  /api/v1/csrf-token:  public -- clients fetch a token before their first POST
# - GET  /api/v1/me:          requires auth (get_current_user)
router = APIRouter()


# No `from __future__ import annotations` in this module: FastAPI resolves the
# wrapped signature against slowapi's globals, so annotations must be real types.
@router.post("/login")
@application_limit()
@limiter.limit(get_settings().login_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Token mode answers {"token": ...}; session mode stores {id, email} in the
    server-side session and answers {"message": ...}. Unknown email and wrong
    password both produce the same 401 so account existence does not leak.
    """
    store: CredentialStore = request.app.state.credential_store
    issuer: IdentityIssuer = request.app.state.issuer
    credential = login_user(store, issuer, body.email, body.password, session=request.scope.get("session"))

    if isinstance(credential, TokenCredential):
        content = LoginTokenResponse(token=credential.token).model_dump()
    else:
        content = MessageResponse(message=credential.message).model_dump()
    resp = JSONResponse(status_code=200, content=content)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request) -> MessageResponse:
    """End the session. Tokens are stateless; token-mode clients just drop theirs."""
    session = request.scope.get("session")
    if session is not None and session.is_persisted:
        session.destroy()
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=UserResponse)
def me(current_user: UserRecord = Depends(get_current_user)) -> UserResponse:
    """Return the currently authenticated user."""
    return UserResponse(**sanitize_user(current_user))


@router.get("/csrf-token", response_model=CsrfTokenResponse)
async def csrf_token(request: Request) -> CsrfTokenResponse:
    """Return the token the CSRF middleware minted for this response.

    The matching cookie is set on the same response, so the value is valid
    for the client's next unsafe request.
    """
    return CsrfTokenResponse(csrf_token=request.state.csrf_token)
