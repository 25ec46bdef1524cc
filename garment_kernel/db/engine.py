"""
Module: garment_kernel.db.engine
Responsibility: Engine creation, session factory and transactional scope.
    A Store is an explicit handle passed into every component constructor;
    there is no process-wide engine or session.
Architecture position: Kernel > DB.  May import from db/base.py.  Imports
    garment_kernel.models lazily in create_tables() so Base.metadata is
    populated.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with explicit row locks
      (SELECT ... FOR UPDATE) wherever a check-then-write needs them.
    - SQLite opens every transaction with BEGIN IMMEDIATE, which serializes
      writers and gives the same check-then-write guarantee in tests.
    - session_scope() commits on success and rolls back on any exception.

Failure modes:
    - OperationalError if the database is unreachable or a SQLite write lock
      cannot be obtained within the busy timeout.
    - Pool exhaustion if pool_size + max_overflow concurrent sessions are
      exceeded (PostgreSQL only).
"""

from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from garment_kernel.logging_config import get_logger

logger = get_logger("db.engine")


@dataclass
class Store:
    """Engine plus session factory for one database."""

    engine: Engine
    session_factory: sessionmaker[Session]

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @property
    def is_postgres(self) -> bool:
        return self.dialect_name == "postgresql"

    def session(self) -> Session:
        """New session.  Callers own its lifetime (one per call or thread)."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Transactional scope around a series of operations.

        Usage:
            with store.session_scope() as session:
                session.add(entity)
        """
        session = self.session()
        logger.debug("transaction_started")
        try:
            yield session
            session.commit()
            logger.debug("transaction_committed")
        except Exception:
            session.rollback()
            logger.warning("transaction_rolled_back", exc_info=True)
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        from garment_kernel.db.base import Base
        import garment_kernel.models  # noqa: F401  (registers every table)

        Base.metadata.create_all(self.engine)
        logger.info(
            "tables_created",
            extra={"table_count": len(Base.metadata.tables)},
        )

    def drop_tables(self) -> None:
        """Drop all tables. Primarily for testing."""
        from garment_kernel.db.base import Base
        import garment_kernel.models  # noqa: F401

        Base.metadata.drop_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


def _install_sqlite_locking(engine: Engine) -> None:
    """Take the database write lock at BEGIN so concurrent writers queue."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Hand transaction control to SQLAlchemy
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_store(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_busy_timeout: int = 30,
) -> Store:
    """
    Build a Store for the given database URL.

    PostgreSQL URLs get a QueuePool at READ COMMITTED.  SQLite URLs (file
    databases; tests and local runs) get cross-thread connections and the
    BEGIN IMMEDIATE hook.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={
                "check_same_thread": False,
                "timeout": sqlite_busy_timeout,
            },
        )
        _install_sqlite_locking(engine)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    logger.info(
        "store_created",
        extra={
            "dialect": engine.dialect.name,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return Store(engine=engine, session_factory=session_factory)
