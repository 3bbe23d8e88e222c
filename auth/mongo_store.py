"""
auth/mongo_store.py -- pymongo persistence for users and sessions.

Backs DB_TYPE=mongo. Collections:
  users    -- one document per account, unique index on email.
  sessions -- _id is the session id; TTL index on expires_at lets MongoDB
              reap expired records on its own. load() still checks expiry
              because the TTL monitor runs only about once a minute.

Errors:
  Duplicate key (code 11000) on users.email -> DuplicateEmailError.
  Any other PyMongoError -> StoreUnavailableError.

Dates: BSON has no date-only type, so birth_date is stored as an ISO string.
Session expiries are written as naive UTC datetimes, which is what pymongo
hands back unless the client is tz_aware; _as_utc() normalizes both forms
before comparison.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from auth.errors import DuplicateEmailError, StoreUnavailableError
from auth.models import UserRecord
from auth.sessions import SessionStore
from auth.store import CredentialStore

logger = logging.getLogger("gatehouse.auth.mongo")

_DUPLICATE_KEY = 11000


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as exc:
        logger.error("Mongo store %s failed: %s", operation, exc)
        raise StoreUnavailableError(f"{operation} failed") from exc


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _naive_utc(moment: datetime) -> datetime:
    return _as_utc(moment).replace(tzinfo=None)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MongoCredentialStore(CredentialStore):
    """Document repository for UserRecord.

    Usage:
        client = MongoClient("mongodb://localhost:27017")
        store = MongoCredentialStore(client["gatehouse"])
    """

    def __init__(self, database: Database, client: MongoClient | None = None) -> None:
        self._client = client
        self._users = database["users"]
        with _translate_errors("index setup"):
            self._users.create_index([("email", ASCENDING)], unique=True)

    def get_by_email(self, email: str) -> UserRecord | None:
        with _translate_errors("user lookup"):
            doc = self._users.find_one({"email": email})
        return _doc_to_user(doc) if doc is not None else None

    def get_by_id(self, user_id: str) -> UserRecord | None:
        try:
            key = ObjectId(user_id)
        except (InvalidId, TypeError):
            return None
        with _translate_errors("user lookup"):
            doc = self._users.find_one({"_id": key})
        return _doc_to_user(doc) if doc is not None else None

    def create_user(self, user: UserRecord) -> UserRecord:
        doc = {
            "email": user.email,
            "password_hash": user.password_hash,
            "name": user.name,
            "surname": user.surname,
            "bio": user.bio,
            "profile_picture": user.profile_picture,
            "birth_date": user.birth_date,
            "role": user.role,
            "created_at": _now().isoformat(),
        }
        try:
            result = self._users.insert_one(doc)
        except DuplicateKeyError as exc:
            raise DuplicateEmailError(user.email) from exc
        except PyMongoError as exc:
            if getattr(exc, "code", None) == _DUPLICATE_KEY:
                raise DuplicateEmailError(user.email) from exc
            logger.error("Mongo store user insert failed: %s", exc)
            raise StoreUnavailableError("user insert failed") from exc
        doc["_id"] = result.inserted_id
        return _doc_to_user(doc)

    def ping(self) -> bool:
        try:
            self._users.database.command("ping")
        except PyMongoError:
            return False
        return True

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


class MongoSessionStore(SessionStore):
    def __init__(self, database: Database) -> None:
        self._sessions = database["sessions"]
        with _translate_errors("index setup"):
            self._sessions.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)

    def load(self, session_id: str) -> dict | None:
        with _translate_errors("session load"):
            doc = self._sessions.find_one({"_id": session_id})
        if doc is None:
            return None
        if _as_utc(doc["expires_at"]) <= _now():
            self.destroy(session_id)
            return None
        return dict(doc.get("data") or {})

    def save(self, session_id: str, data: dict, expires_at: datetime) -> None:
        with _translate_errors("session save"):
            self._sessions.replace_one(
                {"_id": session_id},
                {"_id": session_id, "data": data, "expires_at": _naive_utc(expires_at)},
                upsert=True,
            )

    def touch(self, session_id: str, expires_at: datetime) -> None:
        with _translate_errors("session touch"):
            self._sessions.update_one({"_id": session_id}, {"$set": {"expires_at": _naive_utc(expires_at)}})

    def destroy(self, session_id: str) -> None:
        with _translate_errors("session destroy"):
            self._sessions.delete_one({"_id": session_id})

    def purge_expired(self) -> int:
        with _translate_errors("session purge"):
            result = self._sessions.delete_many({"expires_at": {"$lte": _naive_utc(_now())}})
        return result.deleted_count

    def close(self) -> None:
        # The client is owned and closed by MongoCredentialStore.
        pass


def _doc_to_user(doc: dict) -> UserRecord:
    return UserRecord(
        id=str(doc["_id"]),
        email=doc["email"],
        password_hash=doc["password_hash"],
        name=doc["name"],
        surname=doc["surname"],
        bio=doc.get("bio"),
        profile_picture=doc.get("profile_picture"),
        birth_date=doc.get("birth_date"),
        role=doc.get("role") or "User",
        created_at=doc.get("created_at"),
    )
