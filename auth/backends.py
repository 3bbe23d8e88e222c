"""
auth/backends.py -- Startup-time selection of the persistence backend.

open_backends() is the only place DB_TYPE is inspected. It returns a matching
(CredentialStore, SessionStore) pair; everything downstream works against the
abstract interfaces.

Layer rule: may import from core/ (config is the kernel). No imports from api/.
"""

from __future__ import annotations

import logging

from auth.sessions import SessionStore
from auth.store import CredentialStore
from core.config import Settings

logger = logging.getLogger("gatehouse.auth.backends")


def open_backends(settings: Settings) -> tuple[CredentialStore, SessionStore]:
    """Connect to the configured database and build both stores."""
    if settings.db_type == "mongo":
        from pymongo import MongoClient

        from auth.mongo_store import MongoCredentialStore, MongoSessionStore

        client: MongoClient = MongoClient(settings.mongo_url, serverSelectionTimeoutMS=5000)
        database = client[settings.mongo_database]
        logger.info("Using MongoDB backend (database=%s)", settings.mongo_database)
        return MongoCredentialStore(database, client=client), MongoSessionStore(database)

    from auth.sql_store import SqlCredentialStore, SqlSessionStore, make_engine

    engine = make_engine(settings.database_url)
    logger.info("Using relational backend (dialect=%s)", engine.dialect.name)
    return SqlCredentialStore(settings.database_url, engine=engine), SqlSessionStore(settings.database_url, engine=engine)
