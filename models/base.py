from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()

# SQLite only autoincrements INTEGER primary keys
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


# ============================================================================
# ENUMS
# ============================================================================

class DataSource(str, enum.Enum):
    """Upstream feeds swaps are ingested from"""
    MIDGARD_NATIVE = "midgard_native"
    MIDGARD_TRADE = "midgard_trade"
    CHAINFLIP = "chainflip"
    COINGECKO = "coingecko"


class RecordKind(str, enum.Enum):
    """Shape of the persisted record"""
    SWAP = "swap"
    CLOSING_PRICE = "closing_price"


class ConflictPolicy(str, enum.Enum):
    """What the loader does when the natural key already exists"""
    IGNORE = "ignore"
    OVERWRITE = "overwrite"


class Direction(str, enum.Enum):
    """Pagination direction against the same upstream resource"""
    NEXT = "next"   # newest-first, toward genesis
    PREV = "prev"   # oldest-first, toward the present


class PassType(str, enum.Enum):
    """Recurring ingestion passes"""
    LIVE_TAIL = "live_tail"
    BACKFILL = "backfill"
    RECONCILE = "reconcile"
    RETRY = "retry"
    CHAINFLIP = "chainflip"
    CLOSING_PRICE = "closing_price"
