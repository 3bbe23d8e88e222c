"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection builds a password longer than 72 bytes, which current bcrypt
releases reject. Registration refuses passwords over MAX_PASSWORD_BYTES so
hash_password() never sees one.

Layer rule: stdlib + bcrypt only.
"""

from __future__ import annotations

import bcrypt

MAX_PASSWORD_BYTES = 72


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash or an over-long candidate is a mismatch, not an
    error: login must answer "invalid credentials" either way.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash.
# Computed once at import so the first login attempt is not measurably slower
# than later ones. authenticate() checks against it when the email is unknown,
# so a missing account costs the same bcrypt work as a wrong password.
DUMMY_HASH: str = hash_password("gatehouse_timing_dummy")
