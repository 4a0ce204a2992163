"""
Pydantic schemas for raw Midgard swap actions and the canonical swap record
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import date as date_type


# ============================================================================
# Raw upstream shapes (Midgard actions feed)
# ============================================================================

class SwapCoin(BaseModel):
    """One coin inside a leg; amount is integer-scaled"""
    asset: str
    amount: str

    @validator("amount", pre=True)
    def amount_as_string(cls, v):
        return str(v) if v is not None else v


class TransactionLeg(BaseModel):
    """Inbound or outbound side of a swap"""
    address: str = ""
    coins: List[SwapCoin] = Field(default_factory=list)
    txID: Optional[str] = None

    class Config:
        extra = "ignore"


class SwapMetadata(BaseModel):
    """Prices the feed attaches to a swap (USD per unit)"""
    inPriceUSD: Optional[str] = None
    outPriceUSD: Optional[str] = None

    class Config:
        extra = "ignore"


class ActionMetadata(BaseModel):
    swap: Optional[SwapMetadata] = None

    class Config:
        extra = "ignore"


class RawSwapEvent(BaseModel):
    """
    One swap action as returned by the feed.

    ``date`` is a nanosecond epoch string. ``status`` is ``success`` once the
    swap has finalised and ``pending`` (or anything else) before that.
    """
    date: str
    in_legs: List[TransactionLeg] = Field(default_factory=list, alias="in")
    out_legs: List[TransactionLeg] = Field(default_factory=list, alias="out")
    status: str = ""
    pools: List[str] = Field(default_factory=list)
    metadata: Optional[ActionMetadata] = None

    @validator("date", pre=True)
    def date_as_string(cls, v):
        return str(v) if v is not None else v

    @property
    def is_final(self) -> bool:
        return self.status == "success"

    @property
    def tx_id(self) -> Optional[str]:
        if not self.in_legs:
            return None
        return self.in_legs[0].txID or None

    class Config:
        populate_by_name = True
        extra = "ignore"


class PageMeta(BaseModel):
    nextPageToken: str = ""
    prevPageToken: str = ""

    @validator("nextPageToken", "prevPageToken", pre=True)
    def none_as_empty(cls, v):
        return "" if v is None else str(v)


class ActionsPage(BaseModel):
    """
    One page of the actions feed.

    Actions stay as plain dicts so that a single malformed action is
    rejected by the transformer instead of failing the whole page decode.
    """
    actions: List[Dict[str, Any]] = Field(default_factory=list)
    meta: PageMeta = Field(default_factory=PageMeta)

    @property
    def is_empty(self) -> bool:
        return not self.actions


# ============================================================================
# Canonical record
# ============================================================================

class CanonicalSwapRecord(BaseModel):
    """
    Normalised, source-independent swap.

    Amounts are in standard (decimal) units. Leg 1 is always present; leg 2
    holds the settlement asset when the swap paid out in two assets.
    """
    timestamp: int = Field(..., ge=0)
    date: date_type
    time: str
    tx_id: str = Field(..., min_length=1, max_length=128)

    in_asset: str
    in_amount: float
    in_address: str

    out_asset_1: str
    out_amount_1: float
    out_address_1: str

    out_asset_2: Optional[str] = None
    out_amount_2: Optional[float] = None
    out_address_2: Optional[str] = None

    in_amount_usd: Optional[float] = None
    out_amount_1_usd: Optional[float] = None
    out_amount_2_usd: Optional[float] = None

    @property
    def has_second_leg(self) -> bool:
        return self.out_asset_2 is not None


class PendingId(BaseModel):
    """A swap seen before finalisation; only its id is kept for retry"""
    tx_id: str

    def __hash__(self):
        return hash(self.tx_id)


class SwapRecordResponse(CanonicalSwapRecord):
    """Stored row as returned by the read API"""

    class Config:
        from_attributes = True
