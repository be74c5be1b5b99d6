"""Database layer - engine, base classes and column types."""

from registration_kernel.db.base import UUID, Base, JsonDocument, TrackedBase, UUIDString
from registration_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "JsonDocument",
]
