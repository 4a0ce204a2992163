"""
USD enrichment for sources whose table stores fiat mirrors of amounts
"""

from datetime import date
from typing import List, Optional, Protocol
import logging

from core.exceptions import PriceFetchError
from schemas.swap import CanonicalSwapRecord

logger = logging.getLogger(__name__)


class PriceLookup(Protocol):
    async def get_usd_price(self, asset: str, day: date) -> float:
        ...


class UsdEnricher:
    """
    Fill ``*_usd`` fields as amount x daily USD price of the asset.

    A failed lookup leaves that field as None; the record is still loaded.
    """

    def __init__(self, price_lookup: PriceLookup):
        self.price_lookup = price_lookup

    async def _usd(self, asset: Optional[str], amount: Optional[float], day: date) -> Optional[float]:
        if asset is None or amount is None:
            return None
        try:
            price = await self.price_lookup.get_usd_price(asset, day)
        except PriceFetchError as e:
            logger.warning(f"No USD price for {asset} on {day}: {e.message}", extra={"error_context": e.to_dict()})
            return None
        return amount * price

    async def enrich(self, record: CanonicalSwapRecord) -> CanonicalSwapRecord:
        updates = {
            "in_amount_usd": await self._usd(record.in_asset, record.in_amount, record.date),
            "out_amount_1_usd": await self._usd(record.out_asset_1, record.out_amount_1, record.date),
            "out_amount_2_usd": await self._usd(record.out_asset_2, record.out_amount_2, record.date),
        }
        return record.model_copy(update=updates)

    async def enrich_many(self, records: List[CanonicalSwapRecord]) -> List[CanonicalSwapRecord]:
        return [await self.enrich(record) for record in records]
