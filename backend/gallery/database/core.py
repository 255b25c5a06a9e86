# backend/gallery/database/core.py
"""
Database core: engine construction and transactional connections.

All operations classes receive a SyncDatabase and open one transaction per
public operation via `get_connection()`. Writers on the same place are
serialized by the store itself:

- PostgreSQL: row locks on the owning `places` row (`lock_place`)
- SQLite: every transaction starts with BEGIN IMMEDIATE, so writers queue
  on the database lock and wait up to the busy timeout
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import DateTime, bindparam, create_engine, event, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import TextClause

from ..config import settings
from ..enums import LogEmoji, LoggerName, LogSource
from ..services.logger import get_service_logger
from ..utils.time_utils import utc_now
from .exceptions import DatabaseConnectionError, DatabaseOperationError

logger = get_service_logger(LoggerName.DATABASE, LogSource.DATABASE)

# Bind parameters that always carry timestamps
TIMESTAMP_PARAMS = (
    "now",
    "cutoff",
    "run_after",
    "stuck_before",
)


def sql(query: str) -> TextClause:
    """
    Build a text() clause, typing known timestamp parameters so every dialect
    stores and compares them the same way.
    """
    clause = text(query)
    timestamp_binds = [
        bindparam(name, type_=DateTime(timezone=True))
        for name in TIMESTAMP_PARAMS
        if f":{name}" in query
    ]
    if timestamp_binds:
        clause = clause.bindparams(*timestamp_binds)
    return clause


class SyncDatabase:
    """
    Synchronous database access for services, workers and CLI tools.

    Wraps a SQLAlchemy Engine (and its connection pool) and hands out
    connections that run inside a single transaction.
    """

    def __init__(self, database_url: Optional[str] = None) -> None:
        """
        Args:
            database_url: SQLAlchemy URL. Uses settings.database_url if None.
        """
        self.database_url = database_url or settings.database_url
        self._engine: Optional[Engine] = None
        self._initialized_at = None

    def initialize(self) -> None:
        """
        Create the engine and connection pool.

        Safe to call more than once; later calls are no-ops.
        """
        if self._engine is not None:
            return

        try:
            if self.database_url.startswith("sqlite"):
                _ensure_sqlite_parent(self.database_url)
                engine = create_engine(
                    self.database_url,
                    connect_args={
                        "timeout": settings.db_busy_timeout_seconds,
                        "check_same_thread": False,
                    },
                )
                _install_sqlite_hooks(engine)
            else:
                engine = create_engine(
                    self.database_url,
                    pool_size=settings.db_pool_size,
                    max_overflow=settings.db_max_overflow,
                    pool_timeout=settings.db_pool_timeout,
                    pool_pre_ping=True,
                )
        except SQLAlchemyError as e:
            raise DatabaseConnectionError(
                f"Cannot create database engine: {e}", operation="initialize"
            ) from e

        self._engine = engine
        self._initialized_at = utc_now()
        logger.debug(
            f"Database engine initialized ({engine.dialect.name})",
            emoji=LogEmoji.DATABASE,
        )

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self.initialize()
        if self._engine is None:
            raise DatabaseConnectionError(
                "Database engine not initialized", operation="engine"
            )
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @property
    def supports_row_locks(self) -> bool:
        """True when SELECT ... FOR UPDATE / FOR SHARE is meaningful."""
        return self.dialect_name == "postgresql"

    @contextmanager
    def get_connection(self) -> Iterator[Connection]:
        """
        Yield a connection inside a transaction.

        Commits when the block exits normally and rolls back when it raises.
        """
        with self.engine.begin() as conn:
            yield conn

    def lock_place(
        self, conn: Connection, place_id: int, exclusive: bool = True
    ) -> bool:
        """
        Lock the owning place row for the rest of the transaction.

        Exclusive locks serialize delete and reorder against everything else
        on the place; shared locks let concurrent inserts proceed while still
        waiting for an in-flight renumber to commit.

        Returns:
            True if the place exists
        """
        if self.supports_row_locks:
            mode = "FOR UPDATE" if exclusive else "FOR SHARE"
            query = f"SELECT id FROM places WHERE id = :place_id {mode}"
        else:
            # SQLite already holds the database write lock (BEGIN IMMEDIATE)
            query = "SELECT id FROM places WHERE id = :place_id"
        row = conn.execute(sql(query), {"place_id": place_id}).first()
        return row is not None

    def check_health(self) -> bool:
        """Return True if a trivial query succeeds."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Database health check failed: {e}")
            return False

    def get_pool_stats(self) -> Dict[str, Any]:
        if self._engine is None:
            return {"pool_initialized": False}
        return {
            "pool_initialized": True,
            "dialect": self._engine.dialect.name,
            "pool_status": self._engine.pool.status(),
            "initialized_at": (
                self._initialized_at.isoformat() if self._initialized_at else None
            ),
        }

    def close(self) -> None:
        """Dispose the engine and its pooled connections."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None


def _ensure_sqlite_parent(database_url: str) -> None:
    database = make_url(database_url).database
    if database and database != ":memory:":
        Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def _install_sqlite_hooks(engine: Engine) -> None:
    """
    Take over transaction control from the sqlite3 driver so every
    transaction is BEGIN IMMEDIATE and foreign keys are enforced.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def row_to_dict(row) -> Dict[str, Any]:
    """Convert a SQLAlchemy Row into a plain dict."""
    return dict(row._mapping)


__all__ = [
    "SyncDatabase",
    "DatabaseConnectionError",
    "DatabaseOperationError",
    "row_to_dict",
    "sql",
]
