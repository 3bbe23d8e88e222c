"""Unit tests for auth/accounts.py -- registration and login flows.

Every test that takes `credential_store` runs twice: once against the SQL
store (in-memory SQLite) and once against the Mongo store (mongomock).

Covers:
- Registration: sanitized result, normalization, default role, validation messages
- Field lengths bounded by the stored column sizes
- Duplicate detection by pre-check and by the store's unique index (race)
- Store outages surface as InfrastructureError, never as bad input/credentials
- Login: identical AuthError for unknown email and wrong password
- Login delegates to the issuer only after a successful password check
"""

from unittest.mock import MagicMock

import pytest

from auth.accounts import authenticate, login, register
from auth.errors import (
    AuthError,
    ConflictError,
    DuplicateEmailError,
    InfrastructureError,
    StoreUnavailableError,
    ValidationError,
)
from auth.issuers import SessionIssuer
from auth.models import UserRecord
from auth.passwords import hash_password
from auth.sessions import Session


def _valid(**overrides) -> dict:
    data = {"name": "A", "surname": "B", "email": "a@b.com", "password": "longenough"}
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegister:
    def test_returns_sanitized_user(self, credential_store) -> None:
        user = register(credential_store, _valid())
        assert "password_hash" not in user
        assert "password" not in user
        assert user["email"] == "a@b.com"
        assert user["id"]
        assert user["created_at"]

    def test_email_is_normalized(self, credential_store) -> None:
        user = register(credential_store, _valid(email="  Mixed.Case@Example.COM "))
        assert user["email"] == "mixed.case@example.com"
        assert credential_store.get_by_email("mixed.case@example.com") is not None

    def test_role_defaults_to_user(self, credential_store) -> None:
        assert register(credential_store, _valid())["role"] == "User"

    def test_optional_fields_stored(self, credential_store) -> None:
        user = register(
            credential_store,
            _valid(bio="hello", profile_picture="https://img/x.png", birth_date="1990-05-01", role="Admin"),
        )
        assert user["bio"] == "hello"
        assert user["profile_picture"] == "https://img/x.png"
        assert user["birth_date"] == "1990-05-01"
        assert user["role"] == "Admin"

    def test_password_is_hashed(self, credential_store) -> None:
        register(credential_store, _valid())
        stored = credential_store.get_by_email("a@b.com")
        assert stored.password_hash != "longenough"
        assert stored.check_password("longenough")

    @pytest.mark.parametrize("missing", ["name", "surname", "email", "password"])
    def test_missing_required_field(self, sql_store, missing: str) -> None:
        data = _valid()
        del data[missing]
        with pytest.raises(ValidationError, match="required fields missing"):
            register(sql_store, data)

    def test_blank_required_field(self, sql_store) -> None:
        with pytest.raises(ValidationError, match="required fields missing"):
            register(sql_store, _valid(name="   "))

    @pytest.mark.parametrize("email", ["plainaddress", "a@b", "a b@c.com", "@b.com", "a@.com"])
    def test_invalid_email(self, sql_store, email: str) -> None:
        with pytest.raises(ValidationError, match="invalid email"):
            register(sql_store, _valid(email=email))

    def test_password_too_short(self, sql_store) -> None:
        with pytest.raises(ValidationError, match="password too short"):
            register(sql_store, _valid(password="short"))

    def test_password_exactly_min_length_accepted(self, sql_store) -> None:
        assert register(sql_store, _valid(password="12345678"))["email"] == "a@b.com"

    def test_password_over_bcrypt_limit(self, sql_store) -> None:
        with pytest.raises(ValidationError, match="password too long"):
            register(sql_store, _valid(password="x" * 73))

    @pytest.mark.parametrize(
        "field, value",
        [
            ("name", "n" * 101),
            ("surname", "s" * 101),
            ("email", "e" * 250 + "@b.com"),
            ("role", "r" * 31),
            ("bio", "b" * 2049),
            ("profile_picture", "https://img/" + "p" * 2048),
        ],
    )
    def test_field_longer_than_column_rejected(self, field: str, value: str) -> None:
        """Over-long input is bad input, not a store outage."""
        store = MagicMock()
        with pytest.raises(ValidationError, match=f"{field} too long"):
            register(store, _valid(**{field: value}))
        store.create_user.assert_not_called()

    def test_field_at_column_limit_accepted(self, sql_store) -> None:
        user = register(sql_store, _valid(name="n" * 100, surname="s" * 100, role="r" * 30))
        assert len(user["name"]) == 100

    @pytest.mark.parametrize("birth_date", ["not-a-date", "1990-13-01", "01/05/1990"])
    def test_invalid_birth_date(self, sql_store, birth_date: str) -> None:
        with pytest.raises(ValidationError, match="invalid birth date"):
            register(sql_store, _valid(birth_date=birth_date))

    def test_duplicate_email_precheck(self, credential_store) -> None:
        register(credential_store, _valid())
        with pytest.raises(ConflictError, match="email already registered"):
            register(credential_store, _valid(email="A@B.com", name="Other"))

    def test_duplicate_email_from_store_constraint(self) -> None:
        """A concurrent insert that wins the race is reported as the same conflict."""
        store = MagicMock()
        store.get_by_email.return_value = None
        store.create_user.side_effect = DuplicateEmailError("a@b.com")
        with pytest.raises(ConflictError, match="email already registered"):
            register(store, _valid())

    def test_store_outage_is_infrastructure_error(self) -> None:
        store = MagicMock()
        store.get_by_email.side_effect = StoreUnavailableError("down")
        with pytest.raises(InfrastructureError) as exc_info:
            register(store, _valid())
        assert exc_info.value.status_code == 503
        store.create_user.assert_not_called()


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


@pytest.fixture
def registered(credential_store):
    register(credential_store, _valid())
    return credential_store


class TestAuthenticate:
    def test_valid_credentials(self, registered) -> None:
        user = authenticate(registered, "a@b.com", "longenough")
        assert isinstance(user, UserRecord)
        assert user.email == "a@b.com"

    def test_email_lookup_is_case_insensitive(self, registered) -> None:
        assert authenticate(registered, " A@B.COM", "longenough").email == "a@b.com"

    def test_unknown_email_and_wrong_password_are_indistinguishable(self, registered) -> None:
        with pytest.raises(AuthError) as unknown:
            authenticate(registered, "nobody@b.com", "longenough")
        with pytest.raises(AuthError) as wrong:
            authenticate(registered, "a@b.com", "wrongpassword")
        assert type(unknown.value) is type(wrong.value)
        assert unknown.value.message == wrong.value.message == "invalid credentials"
        assert unknown.value.status_code == wrong.value.status_code == 401

    def test_empty_credentials(self, registered) -> None:
        with pytest.raises(AuthError, match="invalid credentials"):
            authenticate(registered, "", "")

    def test_store_outage_is_not_reported_as_bad_credentials(self) -> None:
        store = MagicMock()
        store.get_by_email.side_effect = StoreUnavailableError("down")
        with pytest.raises(InfrastructureError):
            authenticate(store, "a@b.com", "longenough")


class TestLogin:
    def test_issuer_receives_authenticated_user(self) -> None:
        store = MagicMock()
        user = UserRecord(id="7", email="a@b.com", password_hash=hash_password("longenough"), name="A", surname="B")
        store.get_by_email.return_value = user
        issuer = MagicMock()
        issuer.issue.return_value = "credential"
        session = MagicMock()

        assert login(store, issuer, "a@b.com", "longenough", session) == "credential"
        issuer.issue.assert_called_once_with(user, session)

    def test_issuer_not_called_on_bad_password(self, registered) -> None:
        issuer = MagicMock()
        with pytest.raises(AuthError):
            login(registered, issuer, "a@b.com", "nope-nope-nope")
        issuer.issue.assert_not_called()

    def test_session_mode_writes_identity(self, registered, sql_session_store) -> None:
        session = Session(sql_session_store)
        credential = login(registered, SessionIssuer(), "a@b.com", "longenough", session)
        user = registered.get_by_email("a@b.com")
        assert credential.message == "Logged in successfully"
        assert session["user"] == {"id": user.id, "email": "a@b.com"}
        assert sql_session_store.load(session.id)["user"] == {"id": user.id, "email": "a@b.com"}
