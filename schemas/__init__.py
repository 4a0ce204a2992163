"""
Pydantic schemas for data validation and serialization.

Schemas:
    swap: Raw Midgard actions (RawSwapEvent, ActionsPage) and the canonical
          record (CanonicalSwapRecord, PendingId)
    chainflip: Chainflip GraphQL connection and persisted record
    price: CoinGecko responses and the daily closing price record
    api: Read API request/response bodies and health check

Validation:
    Raw shapes are lenient (unknown keys ignored, optional fields default)
    so that upstream additions never break ingestion. The canonical record
    is strict: a record that fails validation is skipped by the transformer
    with a logged reason.
"""

__all__ = [
    "RawSwapEvent",
    "ActionsPage",
    "CanonicalSwapRecord",
    "PendingId",
    "ChainflipSwapNode",
    "ChainflipRecord",
    "ClosingPriceRecord",
    "SwapQueryRequest",
    "SwapListResponse",
    "HealthCheckResponse",
]
