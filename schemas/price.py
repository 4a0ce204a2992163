"""
Pydantic schemas for the market-data (CoinGecko) enrichment feed
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date as date_type


class CurrentPrice(BaseModel):
    usd: Optional[float] = None


class MarketData(BaseModel):
    current_price: CurrentPrice = Field(default_factory=CurrentPrice)


class PriceHistoryResponse(BaseModel):
    """``/coins/{id}/history`` body; market_data is absent for unknown dates"""
    id: str
    symbol: Optional[str] = None
    name: Optional[str] = None
    market_data: Optional[MarketData] = None


class CoinSearchHit(BaseModel):
    id: str
    name: Optional[str] = None
    symbol: Optional[str] = None


class CoinSearchResponse(BaseModel):
    coins: List[CoinSearchHit] = Field(default_factory=list)


class ClosingPriceRecord(BaseModel):
    """Daily closing price of the reference coin"""
    date: date_type
    coin_id: str
    closing_price_usd: float = Field(..., ge=0)
