"""Database layer - engine, base classes, column types, and guards."""

from bizbooks_kernel.db.base import Base, OrgScopedBase, TrackedBase, UUIDString
from bizbooks_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from bizbooks_kernel.db.types import Money, Quantity, round_money

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "OrgScopedBase",
    "UUIDString",
    "Money",
    "Quantity",
    "round_money",
]
