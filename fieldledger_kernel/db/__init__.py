"""Database layer - engine, base classes, and column types."""

from fieldledger_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from fieldledger_kernel.db.engine import (
    create_tables,
    init_engine_from_url,
    get_engine,
    get_session,
)
from fieldledger_kernel.db.types import Money, Percentage, Quantity, round_money

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "init_engine_from_url",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Percentage",
    "Quantity",
    "round_money",
]
