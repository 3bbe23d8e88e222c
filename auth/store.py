"""
auth/store.py -- Credential store contract.

Pattern: Repository. CredentialStore is the abstract repository for
UserRecord; auth/sql_store.py and auth/mongo_store.py are the concrete
implementations. auth/backends.py picks one at startup from DB_TYPE, and
nothing downstream ever looks at DB_TYPE again.

Error contract for every implementation:
  create_user() raises DuplicateEmailError when the unique email index rejects
      the insert (including the case where a concurrent request won the race).
  Any driver failure surfaces as StoreUnavailableError.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from auth.models import UserRecord


class CredentialStore(ABC):
    """Persistence for user records, keyed by lowercase email."""

    @abstractmethod
    def get_by_email(self, email: str) -> UserRecord | None:
        """Return the record for an already-normalized email, or None."""

    @abstractmethod
    def get_by_id(self, user_id: str) -> UserRecord | None:
        """Return the record for a store-assigned id, or None."""

    @abstractmethod
    def create_user(self, user: UserRecord) -> UserRecord:
        """Insert a new record and return it as stored (id and created_at filled in)."""

    @abstractmethod
    def ping(self) -> bool:
        """Return True if the backing database answers."""

    @abstractmethod
    def close(self) -> None:
        ...
