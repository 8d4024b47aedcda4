"""
Module: ledger_kernel.db.engine
Responsibility: Engine initialization, session factory management, the
    transactional scope helper, and translation of transient driver errors.
    Single point of database connection configuration.
Architecture position: Kernel > DB.  May import from db/base.py; imports
    models/ only inside create_tables/drop_tables.

Invariants enforced:
    - PostgreSQL sessions run READ COMMITTED with explicit row locks
      (SELECT ... FOR UPDATE) and a bounded lock_timeout, so a blocked
      transaction aborts instead of hanging.
    - SQLite (local runs and the default test database) opens every
      transaction with BEGIN IMMEDIATE: writers serialize on the database
      lock, which gives the same mutual exclusion the row locks give on
      PostgreSQL.  SQLite ignores FOR UPDATE.
    - session_scope() is all-or-nothing: commit on success, rollback on any
      exception.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory is called
      before init_engine_from_url().
    - TransientDatabaseError from session_scope() when the failure was a lock
      timeout, deadlock, serialization failure or lost connection.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from ledger_kernel.exceptions import TransientDatabaseError
from ledger_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_transaction_hooks(engine: Engine, busy_timeout_ms: int) -> None:
    """Take transaction control away from pysqlite so SAVEPOINT works and
    every transaction begins IMMEDIATE."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    lock_timeout_ms: int = 5000,
) -> Engine:
    """
    Initialize the module engine and session factory.

    Calling again replaces the previous engine without disposing it; call
    reset_engine() first when that matters.

    Args:
        database_url: PostgreSQL or SQLite URL.
        echo: Log all SQL statements.
        pool_size / max_overflow / pool_timeout / pool_recycle: QueuePool
            parameters (PostgreSQL only).
        pool_pre_ping: Test pooled connections before use.
        lock_timeout_ms: PostgreSQL lock_timeout, SQLite busy_timeout.

    Returns:
        The new Engine.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    dialect = url.get_backend_name()

    if dialect == "sqlite":
        _engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        _install_sqlite_transaction_hooks(_engine, lock_timeout_ms)
    else:
        _engine = create_engine(
            url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
            connect_args={"options": f"-c lock_timeout={int(lock_timeout_ms)}"},
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size if dialect != "sqlite" else None,
            "lock_timeout_ms": lock_timeout_ms,
            "echo": echo,
        },
    )
    return _engine


def init_engine_from_settings(settings) -> Engine:
    """Initialize the engine from a ``LedgerSettings`` instance."""
    return init_engine_from_url(
        settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        lock_timeout_ms=settings.lock_timeout_ms,
    )


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """Get a new session from the module factory."""
    return get_session_factory()()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory.

    Useful for multi-threaded callers where each thread needs its own session.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def _first_line(exc: DBAPIError) -> str:
    return str(exc.orig).strip().splitlines()[0] if exc.orig else str(exc)


# lock_not_available, deadlock_detected, serialization_failure
TRANSIENT_PGCODES = frozenset({"55P03", "40P01", "40001"})
TRANSIENT_SQLITE_MESSAGES = ("database is locked", "database table is locked")


def translate_db_error(exc: BaseException) -> TransientDatabaseError | None:
    """
    Map a transient driver failure to ``TransientDatabaseError``.

    Only failures a fresh transaction can get past count: lock timeouts,
    deadlocks and serialization failures (psycopg2 ``pgcode``, pysqlite
    "database is locked") and lost connections.  Everything else (missing
    tables, integrity violations, domain errors) returns None and
    propagates as is.
    """
    if not isinstance(exc, DBAPIError):
        return None
    if exc.connection_invalidated:
        return TransientDatabaseError("connection lost")
    if not isinstance(exc, OperationalError):
        return None
    if getattr(exc.orig, "pgcode", None) in TRANSIENT_PGCODES:
        return TransientDatabaseError(_first_line(exc))
    message = str(exc.orig).lower()
    if any(text in message for text in TRANSIENT_SQLITE_MESSAGES):
        return TransientDatabaseError(_first_line(exc))
    return None


def violates_constraint(exc: IntegrityError, constraint_name: str, *columns: str) -> bool:
    """
    True when ``exc`` was raised by the named unique constraint.

    psycopg2 exposes the constraint name on ``diag``; SQLite only names the
    columns (``UNIQUE constraint failed: table.column``), so callers pass
    them as well.
    """
    diag = getattr(exc.orig, "diag", None)
    name = getattr(diag, "constraint_name", None)
    if name:
        return name == constraint_name
    message = str(exc.orig)
    return constraint_name in message or any(column in message for column in columns)


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit the session is committed and closed.
        On exception it is rolled back and closed; transient driver errors
        are re-raised as TransientDatabaseError, everything else unchanged.

    Usage:
        with session_scope() as session:
            orchestrator = PostingOrchestrator(session)
            orchestrator.post(tenant_id, document_id, user_id)
    """
    session = (factory or get_session_factory())()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception as exc:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        transient = translate_db_error(exc)
        if transient is not None:
            raise transient from exc
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every table registered on Base.metadata."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401  registers all tables

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None


def is_postgres() -> bool:
    """Check if the current engine is PostgreSQL."""
    if _engine is None:
        return False
    return _engine.dialect.name == "postgresql"


atexit.register(reset_engine)
