"""
Midgard actions feed client.

The same ``/actions`` resource is walked in two independent directions:
``nextPageToken`` moves toward older actions, ``prevPageToken`` toward newer
ones. ``fromTimestamp`` positions a walk at an absolute time and ``txid``
re-resolves a single swap.
"""

from typing import Optional
import logging

from core.config import settings
from core.rate_limit import RequestGate
from ingestion.base import FeedClient
from models.base import DataSource, Direction
from schemas.swap import ActionsPage

logger = logging.getLogger(__name__)

# Midgard asset filter per source
ASSET_FILTERS = {
    DataSource.MIDGARD_NATIVE: "notrade",
    DataSource.MIDGARD_TRADE: "trade",
}


class MidgardClient(FeedClient):
    """
    Fetch pages of swap actions for one Midgard source.

    Every method returns an ``ActionsPage`` carrying the raw actions and both
    cursors. Transient failures are retried by ``FeedClient``; an exhausted
    budget raises ``ApiError``.
    """

    def __init__(
        self,
        source: DataSource,
        base_url: Optional[str] = None,
        gate: Optional[RequestGate] = None,
        **kwargs
    ):
        if source not in ASSET_FILTERS:
            raise ValueError(f"{source} is not a Midgard source")
        super().__init__(
            base_url=base_url or settings.MIDGARD_BASE_URL,
            source_name=source.value,
            gate=gate,
            **kwargs
        )
        self.source = source
        self.asset_filter = ASSET_FILTERS[source]

    def _params(self, **extra) -> dict:
        params = {"type": "swap", "asset": self.asset_filter}
        params.update({k: v for k, v in extra.items() if v not in (None, "")})
        return params

    async def _get_page(self, params: dict) -> ActionsPage:
        return await self._request("GET", self.base_url, ActionsPage.model_validate, params=params)

    async def fetch_page(self, cursor: str = "", direction: Direction = Direction.NEXT) -> ActionsPage:
        """
        Fetch the page addressed by ``cursor`` in ``direction``.

        An empty cursor addresses the newest page.
        """
        token_param = "nextPageToken" if direction == Direction.NEXT else "prevPageToken"
        page = await self._get_page(self._params(**{token_param: cursor}))
        logger.debug(
            f"[{self.source_name}] {direction.value} page {cursor or '<newest>'}: "
            f"{len(page.actions)} actions"
        )
        return page

    async def fetch_next(self, next_page_token: str = "") -> ActionsPage:
        return await self.fetch_page(next_page_token, Direction.NEXT)

    async def fetch_prev(self, prev_page_token: str) -> ActionsPage:
        return await self.fetch_page(prev_page_token, Direction.PREV)

    async def fetch_from_timestamp(self, timestamp: int) -> ActionsPage:
        """Fetch the page positioned at ``timestamp`` (epoch seconds)"""
        return await self._get_page(self._params(fromTimestamp=str(int(timestamp))))

    async def fetch_by_id(self, tx_id: str) -> ActionsPage:
        """Re-resolve a single swap by its inbound transaction id"""
        return await self._get_page(self._params(txid=tx_id))
