"""
Pydantic schemas for the Chainflip explorer GraphQL feed
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Any
from datetime import date as date_type


class PageInfo(BaseModel):
    hasNextPage: bool = False
    hasPreviousPage: bool = False
    startCursor: Optional[str] = None
    endCursor: Optional[str] = None


class ChainflipSwapNode(BaseModel):
    """Subset of a swap request node the pipeline reads"""
    swapRequestNativeId: Any
    sourceAsset: Optional[str] = None
    destAsset: Optional[str] = None
    inputAmount: Optional[Any] = None
    inputValueUsd: Optional[Any] = None
    outputAmount: Optional[Any] = None
    outputValueUsd: Optional[Any] = None
    egressAmount: Optional[Any] = None
    egressValueUsd: Optional[Any] = None
    destinationAddress: Optional[str] = None
    refundAddress: Optional[str] = None
    completedBlockTimestamp: Optional[str] = None
    startedBlockTimestamp: Optional[str] = None
    status: Optional[str] = None
    isInProgress: Optional[bool] = None

    class Config:
        extra = "ignore"


class ChainflipEdge(BaseModel):
    node: ChainflipSwapNode


class SwapRequestConnection(BaseModel):
    pageInfo: PageInfo = Field(default_factory=PageInfo)
    edges: List[ChainflipEdge] = Field(default_factory=list)
    totalCount: int = 0

    @property
    def nodes(self) -> List[ChainflipSwapNode]:
        return [edge.node for edge in self.edges]


class ChainflipRecord(BaseModel):
    """Persisted shape of a completed Chainflip swap"""
    timestamp: int = Field(..., ge=0)
    date: date_type
    swap_id: str = Field(..., min_length=1)

    in_asset: str
    in_amount: float
    in_amount_usd: Optional[float] = None
    in_address: Optional[str] = None

    out_asset: str
    out_amount: float
    out_amount_usd: Optional[float] = None
    out_address: Optional[str] = None

