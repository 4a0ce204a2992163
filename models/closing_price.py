from datetime import datetime
from sqlalchemy import Column, Date, DateTime, Float, String
from models.base import Base, BigIntPK


class ClosingPrice(Base):
    """Daily closing price of the reference coin (one row per UTC date)"""
    __tablename__ = "closing_prices"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, unique=True)
    coin_id = Column(String(64), nullable=False, default="bitcoin")
    closing_price_usd = Column(Float, nullable=False)
    fetched_at = Column(DateTime, nullable=False, default=datetime.utcnow)
