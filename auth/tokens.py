"""
auth/tokens.py -- JWT encode/decode for token-mode authentication.

python-jose with HS256. Tokens are signed with JWT_SECRET and carry the user
id (as both `sub` and `user_id`), the email, `iat` and `exp`. Both timestamps
come from the same clock reading, so exp - iat is exactly the configured
lifetime.

Verification returns None on any failure -- the dependency layer turns that
into a 401.

Layer rule: no imports from api/. The secret is passed in by the caller.
"""

from __future__ import annotations

import time

from jose import JWTError, jwt

ALGORITHM = "HS256"


def create_access_token(user_id: str, email: str, secret: str, expire_seconds: int = 3600) -> tuple[str, int, int]:
    """Encode a signed JWT for the given identity.

    Returns (token, issued_at, expires_at) with both timestamps in epoch seconds.
    """
    issued_at = int(time.time())
    expires_at = issued_at + expire_seconds
    payload = {
        "sub": str(user_id),
        "user_id": str(user_id),
        "email": email,
        "iat": issued_at,
        "exp": expires_at,
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM), issued_at, expires_at


def decode_access_token(token: str, secret: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if "user_id" not in payload or "email" not in payload:
        return None
    return payload
