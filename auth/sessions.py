"""
auth/sessions.py -- Server-side sessions.

A session is a JSON-serializable mapping stored by a SessionStore under a
random id. The browser only holds the id, signed with SESSION_SECRET
(itsdangerous Signer) so a forged or truncated cookie is rejected before the
store is queried.

Lifecycle:
  - A request without a valid cookie gets an empty, unsaved Session.
  - The first save() assigns an id; the session middleware then sets the cookie.
  - Login calls regenerate(): the data moves to a new id and the old record is
    deleted, so a pre-login id is never authenticated.
  - Every later request that carries the cookie slides the expiry forward by
    SESSION_MAX_AGE_SECONDS (31 days by default). Unmodified sessions are only
    touched, so a slow request cannot overwrite what a concurrent one wrote.
  - destroy() removes the record; the middleware clears the cookie.

The Session object is placed in scope["session"], so route handlers use the
usual Starlette `request.session`.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import secrets
from abc import ABC, abstractmethod
from collections.abc import Iterator, MutableMapping
from datetime import datetime, timedelta, timezone

from itsdangerous import BadSignature, Signer

_SIGNER_SALT = "gatehouse.session"


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


def expiry_from_now(max_age_seconds: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=max_age_seconds)


def sign_session_id(session_id: str, secret: str) -> str:
    return Signer(secret, salt=_SIGNER_SALT).sign(session_id).decode("utf-8")


def unsign_session_id(cookie_value: str | None, secret: str) -> str | None:
    """Return the session id from a signed cookie value, or None if it does not verify."""
    if not cookie_value:
        return None
    try:
        return Signer(secret, salt=_SIGNER_SALT).unsign(cookie_value).decode("utf-8")
    except BadSignature:
        return None


# ---------------------------------------------------------------------------
# Store contract
# ---------------------------------------------------------------------------


class SessionStore(ABC):
    """Persistence for session records.

    Implementations raise auth.errors.StoreUnavailableError on driver failure.
    load() must treat an expired record as absent.
    """

    @abstractmethod
    def load(self, session_id: str) -> dict | None:
        ...

    @abstractmethod
    def save(self, session_id: str, data: dict, expires_at: datetime) -> None:
        ...

    @abstractmethod
    def touch(self, session_id: str, expires_at: datetime) -> None:
        ...

    @abstractmethod
    def destroy(self, session_id: str) -> None:
        ...

    @abstractmethod
    def purge_expired(self) -> int:
        """Delete expired records. Returns how many were removed."""

    @abstractmethod
    def close(self) -> None:
        ...


# ---------------------------------------------------------------------------
# Session object
# ---------------------------------------------------------------------------


class Session(MutableMapping):
    """A request's view of its server-side session.

    Mutations mark the session modified; save() persists immediately and is
    what the CSRF bootstrap and the session issuer call when the write has to
    land before the request continues.
    """

    def __init__(
        self,
        store: SessionStore,
        session_id: str | None = None,
        data: dict | None = None,
        max_age_seconds: int = 60 * 60 * 24 * 31,
    ) -> None:
        self.store = store
        self.id = session_id
        self.max_age_seconds = max_age_seconds
        self.modified = False
        self.destroyed = False
        self._data: dict = dict(data or {})

    def __getitem__(self, key: str):
        return self._data[key]

    def __setitem__(self, key: str, value) -> None:
        self._data[key] = value
        self.modified = True

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self.modified = True

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    def save(self) -> None:
        if self.id is None:
            self.id = new_session_id()
        self.store.save(self.id, dict(self._data), expiry_from_now(self.max_age_seconds))
        self.modified = False
        self.destroyed = False

    def regenerate(self) -> None:
        """Persist the data under a fresh id and drop the old record.

        Called on privilege change (login) so an id handed out to an anonymous
        visitor never becomes an authenticated session.
        """
        old_id = self.id
        self.id = None
        self.save()
        if old_id is not None:
            self.store.destroy(old_id)

    def touch(self) -> None:
        if self.id is not None:
            self.store.touch(self.id, expiry_from_now(self.max_age_seconds))

    def destroy(self) -> None:
        if self.id is not None:
            self.store.destroy(self.id)
        self._data.clear()
        self.id = None
        self.modified = False
        self.destroyed = True
