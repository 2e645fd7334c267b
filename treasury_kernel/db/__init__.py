"""Database layer - engine, base classes, immutability enforcement."""

from treasury_kernel.db.base import UUID, AppendOnlyBase, Base, UUIDString
from treasury_kernel.db.engine import create_tables, get_engine, get_session, session_scope

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "AppendOnlyBase",
    "UUIDString",
    "UUID",
]
