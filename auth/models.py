"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class. Dataclasses own domain shape; stores, issuers and routes
do the work. UserRecord.check_password() is the single exception: it is the
comparison capability a stored credential exposes to the login flow.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from auth.passwords import verify_password

# Upper bounds on stored profile fields. The SQL schema sizes its columns from
# these and registration rejects longer input, so a strict-mode MySQL server
# never sees a value it would refuse.
FIELD_MAX_LENGTHS = {
    "email": 255,
    "name": 100,
    "surname": 100,
    "bio": 2048,
    "profile_picture": 2048,
    "birth_date": 10,
    "role": 30,
}


@dataclass
class UserRecord:
    """A registered account.

    id is opaque and assigned by the store: SQL integer keys and Mongo
    ObjectIds are both carried as strings so callers never care which
    backend produced them.

    email is always stored lowercase; the store's unique index on it is the
    source of truth for duplicate detection.

    password_hash is the bcrypt proof of the password. It never leaves the
    auth package: sanitize_user() drops it before anything is serialized.
    """

    email: str
    password_hash: str
    name: str
    surname: str
    bio: str | None = None
    profile_picture: str | None = None
    birth_date: str | None = None  # ISO 8601 date
    role: str = "User"
    id: str | None = None
    created_at: str | None = None

    def check_password(self, candidate: str) -> bool:
        return verify_password(candidate, self.password_hash)


def sanitize_user(user: UserRecord) -> dict:
    """Return the record as a plain dict without the password proof."""
    data = asdict(user)
    data.pop("password_hash", None)
    return data


@dataclass(frozen=True)
class SessionUser:
    """Identity stored in a server-side session after a session-mode login."""

    id: str
    email: str

    def to_session(self) -> dict:
        return {"id": self.id, "email": self.email}


@dataclass(frozen=True)
class TokenCredential:
    """Result of a token-mode login. Nothing is stored server-side."""

    token: str
    issued_at: int
    expires_at: int


@dataclass(frozen=True)
class SessionCredential:
    """Result of a session-mode login. The identity lives in the session."""

    message: str = "Logged in successfully"
