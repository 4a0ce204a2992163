"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict
from datetime import datetime, timezone, date as date_type
from models.base import DataSource
from schemas.swap import SwapRecordResponse


SORTABLE_COLUMNS = [
    "timestamp", "date", "in_asset", "in_amount",
    "out_asset_1", "out_amount_1", "tx_id",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Health Check Schemas
# ============================================================================

class CheckpointInfo(BaseModel):
    """Persisted cursor for one (source, direction) pair"""
    source: str
    direction: str
    cursor: str


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Overall system status: healthy, unhealthy")
    timestamp: datetime = Field(default_factory=_utcnow)
    database_connected: bool
    scheduler_running: bool = False
    checkpoints: List[CheckpointInfo] = Field(default_factory=list)
    pending_transactions: Dict[str, int] = Field(default_factory=dict)

    @classmethod
    def build(cls, database_connected: bool, **kwargs) -> "HealthCheckResponse":
        """Only storage connectivity decides health; passes retry on their own"""
        status = "healthy" if database_connected else "unhealthy"
        return cls(status=status, database_connected=database_connected, **kwargs)


# ============================================================================
# Swap Query Schemas
# ============================================================================

class SwapQueryRequest(BaseModel):
    """Body of POST /swaps"""
    source: DataSource = Field(default=DataSource.MIDGARD_NATIVE, description="Which swap table to read")
    sort_by: str = Field(default="timestamp", description="Sort column")
    order: str = Field(default="DESC", description="ASC or DESC")
    page: int = Field(default=1, ge=1, description="Page number (1-indexed)")
    limit: int = Field(default=50, ge=1, le=1000, description="Rows per page")
    search: Optional[str] = Field(None, description="Substring of tx id or any address")
    date: Optional[date_type] = Field(None, description="Exact swap date (YYYY-MM-DD)")

    @validator("order")
    def validate_order(cls, v):
        if v.upper() not in ["ASC", "DESC"]:
            raise ValueError("order must be 'ASC' or 'DESC'")
        return v.upper()

    @validator("sort_by")
    def validate_sort_by(cls, v):
        if v not in SORTABLE_COLUMNS:
            raise ValueError(f"sort_by must be one of: {', '.join(SORTABLE_COLUMNS)}")
        return v

    @validator("source")
    def validate_source(cls, v):
        if v not in (DataSource.MIDGARD_NATIVE, DataSource.MIDGARD_TRADE):
            raise ValueError("source must be a Midgard swap source")
        return v

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class SwapListResponse(BaseModel):
    """Page of stored swaps"""
    items: List[SwapRecordResponse]
    page: int
    limit: int
    count: int


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    timestamp: datetime = Field(default_factory=_utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Error Fetching Data",
                "timestamp": "2024-01-15T10:30:00Z"
            }
        }
