"""Database layer - engine, base classes, types, and locking."""

from dorm_ledger.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from dorm_ledger.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    session_scope,
)
from dorm_ledger.db.types import ZERO, round_money

__all__ = [
    "get_engine",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "ZERO",
    "round_money",
]
