from datetime import datetime
from sqlalchemy import Column, String, BigInteger, Float, Date, DateTime, Index
from models.base import Base, BigIntPK


class ChainflipSwap(Base):
    """
    Completed swap requests from the Chainflip explorer GraphQL feed.

    Amounts arrive in decimal units together with their USD values, so no
    scaling or enrichment happens for this table.
    """
    __tablename__ = "chainflip_swaps"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    timestamp = Column(BigInteger, nullable=False)
    date = Column(Date, nullable=False)
    swap_id = Column(String(64), nullable=False, unique=True)

    in_asset = Column(String(64), nullable=False)
    in_amount = Column(Float, nullable=False)
    in_amount_usd = Column(Float, nullable=True)
    in_address = Column(String(256), nullable=True)

    out_asset = Column(String(64), nullable=False)
    out_amount = Column(Float, nullable=False)
    out_amount_usd = Column(Float, nullable=True)
    out_address = Column(String(256), nullable=True)

    ingested_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_chainflip_swaps_timestamp", "timestamp"),
    )
