"""Database layer: declarative bases, engine/session management, column types."""

from ledger_kernel.db.base import Base, TimestampedBase, TrackedBase, UUIDString
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_settings,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
    translate_db_error,
    violates_constraint,
)

__all__ = [
    "Base",
    "TimestampedBase",
    "TrackedBase",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_settings",
    "init_engine_from_url",
    "is_postgres",
    "reset_engine",
    "session_scope",
    "translate_db_error",
    "violates_constraint",
]
