"""
auth/csrf.py -- CSRF secret lifecycle and double-submit token derivation.

Each session owns one secret (32 random bytes, hex), generated on the first
request and never regenerated while the session lives. Every response gets a
fresh token derived from it:

    token  = CSRF_TOKEN_SIZE random hex characters
    cookie = "<token>|HMAC-SHA256(secret, token)"

The raw token reaches the client in the X-CSRF-Token response header (and
GET /csrf-token). On any method outside SAFE_METHODS the client must echo it
in the X-CSRF-Token request header. verify_csrf_token() accepts the request
only when the header equals the token half of the cookie AND the cookie's
HMAC verifies against the session's secret. A cookie minted for another
session, or a header lifted from another tab's stale response, both fail.

The cookie is httponly and samesite=strict, and secure in production.

Layer rule: may import from core/. No imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

from core.config import Settings

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

CSRF_SECRET_KEY = "csrf_secret"


def generate_csrf_secret() -> str:
    return secrets.token_hex(32)


def _sign(secret: str, token: str) -> str:
    return hmac.new(secret.encode(), token.encode(), hashlib.sha256).hexdigest()


def generate_csrf_token(secret: str, size: int = 64) -> tuple[str, str]:
    """Return (token, cookie_value) for a fresh token bound to `secret`."""
    token = secrets.token_hex(size // 2)
    return token, f"{token}|{_sign(secret, token)}"


def verify_csrf_token(secret: str | None, header_token: str | None, cookie_value: str | None) -> bool:
    if not secret or not header_token or not cookie_value:
        return False
    cookie_token, sep, signature = cookie_value.partition("|")
    if not sep or not cookie_token or not signature:
        return False
    if not hmac.compare_digest(header_token.encode(), cookie_token.encode()):
        return False
    return hmac.compare_digest(signature.encode(), _sign(secret, cookie_token).encode())


def csrf_cookie_options(settings: Settings) -> dict:
    """Keyword arguments for Response.set_cookie() on the CSRF cookie."""
    return {
        "httponly": True,
        "samesite": "strict",
        "secure": settings.is_production,
        "path": "/",
    }
