"""Database layer - engine, base classes and column types."""

from trade_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from trade_kernel.db.engine import create_tables, get_engine, get_session
from trade_kernel.db.types import DocRef, Money, Quantity, ShortCode

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Quantity",
    "DocRef",
    "ShortCode",
]
