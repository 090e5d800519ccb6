"""
core/database.py -- Shared SQLAlchemy engine and schema lifecycle.

Every store (auth/store.py, pets/*.py) receives one Database instance instead
of building its own engine. That keeps accounts, pets and their records in a
single database so the foreign-key cascades in core/schema.py can fire, and
gives the app one connection pool with an explicit lifecycle: created in the
lifespan startup, disposed on shutdown.

Connection scoping: stores never hold a connection between calls. Each
method opens one with `with db.engine.connect()` (reads, single writes) or
`with db.engine.begin()` (multi-statement writes that must commit or roll
back together). Leaving the block returns the connection to the pool on
every exit path, exceptions included.

Usage:
    db = Database()                                # settings.database_url
    db = Database("sqlite:///:memory:")            # tests
    db = Database("postgresql://user:pw@host/db")  # production
    accounts = AccountStore(db)
    db.close()
"""

from __future__ import annotations

import logging

from sqlalchemy import create_engine, event, func, select, text
from sqlalchemy.engine import Engine

from core.config import get_settings
from core.schema import DEFAULT_VET_VISIT_TYPES, metadata, vet_visit_types

logger = logging.getLogger("petkeeper.db")


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable foreign keys and WAL journal mode on every new SQLite connection.

    SQLite ships with foreign key enforcement OFF; without this pragma none of
    the ON DELETE CASCADE clauses run. Set per-connection because SQLite
    PRAGMAs are not inherited by new connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


class Database:
    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # Route handlers run in FastAPI's thread pool, so one pooled
            # connection may be used from several threads over its lifetime.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        metadata.create_all(self.engine)
        self._seed_vet_visit_types()

    def _seed_vet_visit_types(self) -> None:
        """Insert the default visit types once. Idempotent across restarts."""
        with self.engine.begin() as conn:
            count = conn.execute(select(func.count()).select_from(vet_visit_types)).scalar()
            if not count:
                conn.execute(vet_visit_types.insert(), [{"name": n} for n in DEFAULT_VET_VISIT_TYPES])
                logger.info("Seeded %d vet visit types", len(DEFAULT_VET_VISIT_TYPES))

    def ping(self) -> bool:
        """Return True if a trivial query succeeds. Used by the health endpoint."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Database ping failed")
            return False

    def close(self) -> None:
        self.engine.dispose()
