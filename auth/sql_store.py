"""
auth/sql_store.py -- SQLAlchemy Core persistence for users and sessions.

Pattern: Repository + Data Mapper.
SqlCredentialStore and SqlSessionStore are the repositories; _row_to_user is
the mapper. Route and flow code never touches SQL directly.

Backs DB_TYPE=mysql in production (DATABASE_URL=mysql+pymysql://...). Any
SQLAlchemy URL works; tests and local development use SQLite.

Security:
  All queries use bound parameters. No f-strings in SQL.

Errors:
  IntegrityError on the users.email UNIQUE index -> DuplicateEmailError.
  Any other SQLAlchemyError -> StoreUnavailableError.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateEmailError, StoreUnavailableError
from auth.models import FIELD_MAX_LENGTHS, UserRecord
from auth.sessions import SessionStore
from auth.store import CredentialStore

logger = logging.getLogger("gatehouse.auth.sql")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(FIELD_MAX_LENGTHS["email"]), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("name", String(FIELD_MAX_LENGTHS["name"]), nullable=False),
    Column("surname", String(FIELD_MAX_LENGTHS["surname"]), nullable=False),
    Column("bio", Text),
    Column("profile_picture", Text),
    Column("birth_date", String(FIELD_MAX_LENGTHS["birth_date"])),  # ISO 8601 date
    Column("role", String(FIELD_MAX_LENGTHS["role"]), nullable=False, server_default="User"),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("data", Text, nullable=False),  # JSON
    Column("expires_at", String(32), nullable=False),  # ISO 8601 UTC, sorts lexically
)


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=True)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("SQL store %s failed: %s", operation, exc)
        raise StoreUnavailableError(f"{operation} failed") from exc


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


class SqlCredentialStore(CredentialStore):
    """Relational repository for UserRecord.

    Usage:
        store = SqlCredentialStore("mysql+pymysql://app:secret@db/gatehouse")
        user = store.create_user(UserRecord(email="a@b.com", password_hash=..., name="A", surname="B"))
        store.get_by_email("a@b.com")
        store.close()
    """

    def __init__(self, db_url: str, engine: Engine | None = None) -> None:
        self.engine: Engine = engine or make_engine(db_url)
        with _translate_errors("schema setup"):
            _metadata.create_all(self.engine, tables=[_users])

    def get_by_email(self, email: str) -> UserRecord | None:
        with _translate_errors("user lookup"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> UserRecord | None:
        try:
            key = int(user_id)
        except (TypeError, ValueError):
            return None
        with _translate_errors("user lookup"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == key)).fetchone()
        return _row_to_user(row) if row is not None else None

    def create_user(self, user: UserRecord) -> UserRecord:
        created_at = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        email=user.email,
                        password_hash=user.password_hash,
                        name=user.name,
                        surname=user.surname,
                        bio=user.bio,
                        profile_picture=user.profile_picture,
                        birth_date=user.birth_date,
                        role=user.role,
                        created_at=created_at,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateEmailError(user.email) from exc
        except SQLAlchemyError as exc:
            logger.error("SQL store user insert failed: %s", exc)
            raise StoreUnavailableError("user insert failed") from exc
        stored = self.get_by_id(str(result.inserted_primary_key[0]))
        if stored is None:
            raise StoreUnavailableError("user not found after insert")
        return stored

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Session store
# ---------------------------------------------------------------------------


class SqlSessionStore(SessionStore):
    """Relational repository for session records.

    Shares the engine with SqlCredentialStore when built by
    auth.backends.open_backends(), so one pool serves both tables.
    """

    def __init__(self, db_url: str, engine: Engine | None = None) -> None:
        self.engine: Engine = engine or make_engine(db_url)
        self._owns_engine = engine is None
        with _translate_errors("schema setup"):
            _metadata.create_all(self.engine, tables=[_sessions])

    def load(self, session_id: str) -> dict | None:
        with _translate_errors("session load"), self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        if row is None:
            return None
        if row.expires_at <= _now_iso():
            self.destroy(session_id)
            return None
        return json.loads(row.data)

    def save(self, session_id: str, data: dict, expires_at: datetime) -> None:
        payload = json.dumps(data)
        with _translate_errors("session save"), self.engine.connect() as conn:
            updated = conn.execute(
                _sessions.update()
                .where(_sessions.c.id == session_id)
                .values(data=payload, expires_at=_to_iso(expires_at))
            )
            if updated.rowcount == 0:
                conn.execute(_sessions.insert().values(id=session_id, data=payload, expires_at=_to_iso(expires_at)))
            conn.commit()

    def touch(self, session_id: str, expires_at: datetime) -> None:
        with _translate_errors("session touch"), self.engine.connect() as conn:
            conn.execute(_sessions.update().where(_sessions.c.id == session_id).values(expires_at=_to_iso(expires_at)))
            conn.commit()

    def destroy(self, session_id: str) -> None:
        with _translate_errors("session destroy"), self.engine.connect() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.commit()

    def purge_expired(self) -> int:
        with _translate_errors("session purge"), self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= _now_iso()))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        if self._owns_engine:
            self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> UserRecord:
    return UserRecord(
        id=str(row.id),
        email=row.email,
        password_hash=row.password_hash,
        name=row.name,
        surname=row.surname,
        bio=row.bio,
        profile_picture=row.profile_picture,
        birth_date=row.birth_date,
        role=row.role,
        created_at=row.created_at,
    )
