"""
CoinGecko client used for USD enrichment and daily closing prices
"""

from datetime import date
from typing import Dict, Optional, Tuple
import logging
import re

from core.config import settings
from core.exceptions import ApiError, PriceFetchError
from core.rate_limit import RequestGate
from ingestion.base import FeedClient
from models.base import DataSource
from schemas.price import CoinSearchResponse, PriceHistoryResponse

logger = logging.getLogger(__name__)

# Coin ids that search resolves poorly
KNOWN_COIN_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "RUNE": "thorchain",
    "BNB": "binancecoin",
    "AVAX": "avalanche-2",
    "ATOM": "cosmos",
    "DOGE": "dogecoin",
    "LTC": "litecoin",
    "BCH": "bitcoin-cash",
    "USDC": "usd-coin",
    "USDT": "tether",
}


def symbol_from_asset(asset: str) -> str:
    """
    Ticker symbol of a canonical asset name.

    "ETH.USDC-0XA0B8..." -> "USDC", "BTC~BTC" -> "BTC", "THOR.RUNE" -> "RUNE"
    """
    parts = re.split(r"[.~/]", asset, maxsplit=1)
    symbol = parts[1] if len(parts) > 1 else parts[0]
    return symbol.split("-", 1)[0].upper()


class CoinGeckoClient(FeedClient):
    """
    Daily spot prices by coin id and date.

    Coin ids are resolved from asset symbols once and cached, as are prices
    per (coin id, date).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        gate: Optional[RequestGate] = None,
        **kwargs
    ):
        headers = {"Accept": "application/json"}
        key = api_key or settings.COINGECKO_API_KEY
        if key:
            headers["x-cg-demo-api-key"] = key
        super().__init__(
            base_url=(base_url or settings.COINGECKO_BASE_URL).rstrip("/"),
            source_name=DataSource.COINGECKO.value,
            gate=gate,
            headers=headers,
            **kwargs
        )
        self._coin_ids: Dict[str, str] = dict(KNOWN_COIN_IDS)
        self._prices: Dict[Tuple[str, str], float] = {}

    async def search_coin(self, symbol: str) -> Optional[str]:
        """Return the first coin id matching ``symbol``, if any"""
        result = await self._request(
            "GET",
            f"{self.base_url}/search",
            CoinSearchResponse.model_validate,
            params={"query": symbol},
        )
        return result.coins[0].id if result.coins else None

    async def fetch_usd_price(self, coin_id: str, day: date) -> float:
        """USD price of ``coin_id`` on ``day`` (CoinGecko expects dd-mm-yyyy)"""
        date_str = day.strftime("%d-%m-%Y")
        cache_key = (coin_id, date_str)
        if cache_key in self._prices:
            return self._prices[cache_key]

        result = await self._request(
            "GET",
            f"{self.base_url}/coins/{coin_id}/history",
            PriceHistoryResponse.model_validate,
            params={"date": date_str, "localization": "false"},
        )
        if result.market_data is None or result.market_data.current_price.usd is None:
            raise PriceFetchError(
                "No USD price in response",
                context={"coin_id": coin_id, "date": date_str}
            )

        price = result.market_data.current_price.usd
        self._prices[cache_key] = price
        return price

    async def resolve_coin_id(self, asset: str) -> str:
        symbol = symbol_from_asset(asset)
        if symbol not in self._coin_ids:
            coin_id = await self.search_coin(symbol)
            if coin_id is None:
                raise PriceFetchError("Coin not found", context={"asset": asset, "symbol": symbol})
            self._coin_ids[symbol] = coin_id
        return self._coin_ids[symbol]

    async def get_usd_price(self, asset: str, day: date) -> float:
        """
        Price lookup used by the enricher.

        Raises:
            PriceFetchError: Unknown coin, missing price, or feed failure
        """
        try:
            coin_id = await self.resolve_coin_id(asset)
            return await self.fetch_usd_price(coin_id, day)
        except ApiError as e:
            raise PriceFetchError(
                "Price feed unavailable",
                context={"asset": asset, "date": day.isoformat()},
                original_exception=e
            )
