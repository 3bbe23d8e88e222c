"""
auth/accounts.py -- Registration and login flows.

register() validates raw input, enforces email uniqueness and creates the
record. login() checks credentials and hands the user to the configured
IdentityIssuer.

Error mapping (see auth/errors.py):
  missing / malformed input          -> ValidationError      (400)
  email taken (pre-check or index)   -> ConflictError        (400)
  unknown email or wrong password    -> AuthError            (401), same message
  store unreachable                  -> InfrastructureError  (503)

Store failures are never reported as bad input or bad credentials: a user who
typed the right password must not be told it was wrong because the database
was down.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import date

from auth.errors import (
    AuthError,
    ConflictError,
    DuplicateEmailError,
    InfrastructureError,
    StoreUnavailableError,
    ValidationError,
)
from auth.issuers import IdentityIssuer
from auth.models import FIELD_MAX_LENGTHS, SessionCredential, TokenCredential, UserRecord, sanitize_user
from auth.passwords import DUMMY_HASH, MAX_PASSWORD_BYTES, hash_password, verify_password
from auth.sessions import Session
from auth.store import CredentialStore

logger = logging.getLogger("gatehouse.auth.accounts")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8
DEFAULT_ROLE = "User"

_REQUIRED_FIELDS = ("name", "surname", "email", "password")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _optional(raw: Mapping, key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def validate_registration(raw: Mapping) -> None:
    """Raise ValidationError unless the required fields are present and well-formed."""
    for field in _REQUIRED_FIELDS:
        value = raw.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("required fields missing")
    for field, limit in FIELD_MAX_LENGTHS.items():
        value = raw.get(field)
        if value is not None and len(str(value).strip()) > limit:
            raise ValidationError(f"{field} too long")
    birth_date = _optional(raw, "birth_date")
    if birth_date is not None:
        try:
            date.fromisoformat(birth_date)
        except ValueError:
            raise ValidationError("invalid birth date") from None
    if not EMAIL_PATTERN.match(raw["email"].strip()):
        raise ValidationError("invalid email")
    password = raw["password"]
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("password too short")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError("password too long")


def register(store: CredentialStore, raw: Mapping) -> dict:
    """Create an account from raw input and return it without the password proof.

    Accepted keys: name, surname, email, password (required); bio,
    profile_picture, birth_date, role (optional, role defaults to "User").
    """
    validate_registration(raw)
    email = normalize_email(raw["email"])

    try:
        if store.get_by_email(email) is not None:
            raise ConflictError("email already registered")
        created = store.create_user(
            UserRecord(
                email=email,
                password_hash=hash_password(raw["password"]),
                name=raw["name"].strip(),
                surname=raw["surname"].strip(),
                bio=_optional(raw, "bio"),
                profile_picture=_optional(raw, "profile_picture"),
                birth_date=_optional(raw, "birth_date"),
                role=_optional(raw, "role") or DEFAULT_ROLE,
            )
        )
    except DuplicateEmailError as exc:
        # A concurrent registration won the race to the unique index.
        raise ConflictError("email already registered") from exc
    except StoreUnavailableError as exc:
        logger.error("Registration failed for %s: store unavailable", email)
        raise InfrastructureError() from exc

    logger.info("Registered user %s (%s)", created.id, created.email)
    return sanitize_user(created)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def authenticate(store: CredentialStore, email: str, password: str) -> UserRecord:
    """Return the user whose credentials match, or raise AuthError.

    Always runs bcrypt whether or not the email exists, so response time does
    not reveal which accounts are registered.
    """
    if not email or not password:
        verify_password(password or "", DUMMY_HASH)
        raise AuthError("invalid credentials")

    try:
        user = store.get_by_email(normalize_email(email))
    except StoreUnavailableError as exc:
        logger.error("Login lookup failed: store unavailable")
        raise InfrastructureError() from exc

    if user is None:
        verify_password(password, DUMMY_HASH)
        raise AuthError("invalid credentials")
    if not user.check_password(password):
        raise AuthError("invalid credentials")
    return user


def login(
    store: CredentialStore,
    issuer: IdentityIssuer,
    email: str,
    password: str,
    session: Session | None = None,
) -> TokenCredential | SessionCredential:
    user = authenticate(store, email, password)
    credential = issuer.issue(user, session)
    logger.info("User %s logged in (%s)", user.id, issuer.mode)
    return credential
