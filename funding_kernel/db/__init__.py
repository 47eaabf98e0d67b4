"""Database layer - engine, base classes, types, and immutability listeners."""

from funding_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from funding_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from funding_kernel.db.types import Currency, MinorUnits, Percent, Rate

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "MinorUnits",
    "Currency",
    "Percent",
    "Rate",
]
