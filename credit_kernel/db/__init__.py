"""Database layer: engine and sessions, declarative base, column types, immutability."""

from credit_kernel.db.base import Base, UTCDateTime, UUIDString
from credit_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    session_scope,
)
from credit_kernel.db.types import ContentHash, Credits, Hours, Sequence

__all__ = [
    "Base",
    "ContentHash",
    "Credits",
    "Hours",
    "Sequence",
    "UTCDateTime",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "is_postgres",
    "session_scope",
]
