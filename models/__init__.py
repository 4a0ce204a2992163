"""
SQLAlchemy ORM models for database tables.

Models:
    base: Declarative base and shared enums (DataSource, RecordKind,
          ConflictPolicy, Direction, PassType)
    swap_history: Canonical swap tables, one per Midgard source
    chainflip_swap: Completed Chainflip swap requests
    closing_price: Daily closing price of the reference coin

Every swap table carries a unique constraint on its natural key (tx_id or
swap_id); the bulk loader relies on it for idempotent writes.

Usage:
    from models import NativeSwap, TradeSwap, ChainflipSwap, ClosingPrice
    from models.base import DataSource, ConflictPolicy
"""

from models.base import Base, DataSource, RecordKind, ConflictPolicy, Direction, PassType
from models.swap_history import NativeSwap, TradeSwap
from models.chainflip_swap import ChainflipSwap
from models.closing_price import ClosingPrice

__all__ = [
    "Base",
    "DataSource",
    "RecordKind",
    "ConflictPolicy",
    "Direction",
    "PassType",
    "NativeSwap",
    "TradeSwap",
    "ChainflipSwap",
    "ClosingPrice",
]
