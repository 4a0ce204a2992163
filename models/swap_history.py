from datetime import datetime
from sqlalchemy import Column, String, BigInteger, Float, Date, DateTime, Index
from sqlalchemy.orm import declared_attr
from models.base import Base, BigIntPK


class SwapHistoryColumns:
    """
    Columns shared by every canonical swap table.

    One table exists per data source so that each source can pick its own
    conflict policy; the shape is identical.

    Field Mapping (Midgard action):
    - date (ns epoch)              -> timestamp (s), date, time
    - in[0].txID                   -> tx_id
    - in[0].coins[0]               -> in_asset, in_amount
    - in[0].address                -> in_address
    - out (reversed), settlement
      asset relegated to slot 2    -> out_*_1, out_*_2
    """

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    # Temporal key
    timestamp = Column(BigInteger, nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String(16), nullable=False)

    # Natural identity
    tx_id = Column(String(128), nullable=False, unique=True)

    # Inbound leg
    in_asset = Column(String(128), nullable=False)
    in_amount = Column(Float, nullable=False)
    in_amount_usd = Column(Float, nullable=True)
    in_address = Column(String(256), nullable=False)

    # Primary outbound leg
    out_asset_1 = Column(String(128), nullable=False)
    out_amount_1 = Column(Float, nullable=False)
    out_amount_1_usd = Column(Float, nullable=True)
    out_address_1 = Column(String(256), nullable=False)

    # Optional second leg (settlement asset when present)
    out_asset_2 = Column(String(128), nullable=True)
    out_amount_2 = Column(Float, nullable=True)
    out_amount_2_usd = Column(Float, nullable=True)
    out_address_2 = Column(String(256), nullable=True)

    ingested_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    @declared_attr
    def __table_args__(cls):
        return (
            Index(f"idx_{cls.__tablename__}_timestamp", "timestamp"),
            Index(f"idx_{cls.__tablename__}_date", "date"),
        )


class NativeSwap(SwapHistoryColumns, Base):
    """Native (L1 asset) swaps from the Midgard actions feed"""
    __tablename__ = "swap_history_native"


class TradeSwap(SwapHistoryColumns, Base):
    """Trade-account swaps from the Midgard actions feed"""
    __tablename__ = "swap_history_trade"
