"""
auth/issuers.py -- Identity issuance after a successful password check.

Pattern: Strategy. IdentityIssuer has one operation, issue(user, session).
build_identity_issuer() reads AUTH_MODE once at startup and returns:

  TokenIssuer         AUTH_MODE=JWT      signed HS256 token, 1h by default,
                                         nothing stored server-side.
  SessionIssuer       AUTH_MODE=session  {id, email} written into the
                                         request's server-side session, which
                                         moves to a fresh id.
  MisconfiguredIssuer anything else      every issue() raises
                                         ConfigurationError (HTTP 500).

The login route never inspects AUTH_MODE itself.

Layer rule: may import from core/. No imports from api/.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from jose import JWTError

from auth.errors import ConfigurationError, InfrastructureError, StoreError
from auth.models import SessionCredential, SessionUser, TokenCredential, UserRecord
from auth.sessions import Session
from auth.tokens import create_access_token
from core.config import Settings

logger = logging.getLogger("gatehouse.auth.issuers")

SESSION_USER_KEY = "user"


class IdentityIssuer(ABC):
    mode: str = ""

    @abstractmethod
    def issue(self, user: UserRecord, session: Session | None = None) -> TokenCredential | SessionCredential:
        """Produce the credential that proves `user` authenticated."""


class TokenIssuer(IdentityIssuer):
    mode = "JWT"

    def __init__(self, secret: str, expire_seconds: int = 3600) -> None:
        self._secret = secret
        self.expire_seconds = expire_seconds

    def issue(self, user: UserRecord, session: Session | None = None) -> TokenCredential:
        try:
            token, issued_at, expires_at = create_access_token(
                user.id, user.email, self._secret, expire_seconds=self.expire_seconds
            )
        except JWTError as exc:
            logger.exception("Token signing failed for user %s", user.id)
            raise InfrastructureError() from exc
        return TokenCredential(token=token, issued_at=issued_at, expires_at=expires_at)


class SessionIssuer(IdentityIssuer):
    mode = "session"

    def issue(self, user: UserRecord, session: Session | None = None) -> SessionCredential:
        if session is None:
            raise ConfigurationError("server misconfigured")
        session[SESSION_USER_KEY] = SessionUser(id=user.id, email=user.email).to_session()
        try:
            session.regenerate()
        except StoreError as exc:
            logger.error("Could not persist session for user %s: %s", user.id, exc)
            raise InfrastructureError() from exc
        return SessionCredential()


class MisconfiguredIssuer(IdentityIssuer):
    def __init__(self, configured_mode: str) -> None:
        self.mode = configured_mode

    def issue(self, user: UserRecord, session: Session | None = None) -> TokenCredential | SessionCredential:
        logger.error("Login refused: AUTH_MODE %r is not a supported authentication mode", self.mode)
        raise ConfigurationError("server misconfigured")


def build_identity_issuer(settings: Settings) -> IdentityIssuer:
    mode = settings.auth_mode.strip().lower()
    if mode == "jwt":
        return TokenIssuer(settings.jwt_secret, expire_seconds=settings.token_expire_seconds)
    if mode == "session":
        return SessionIssuer()
    logger.error('Invalid AUTH_MODE %r. Must be "JWT" or "session"; logins will fail with 500.', settings.auth_mode)
    return MisconfiguredIssuer(settings.auth_mode)
