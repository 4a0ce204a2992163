"""
Chainflip explorer GraphQL client (offset/first pagination)
"""

from typing import Any, Optional
import logging

from core.config import settings
from core.rate_limit import RequestGate
from ingestion.base import FeedClient
from models.base import DataSource
from schemas.chainflip import SwapRequestConnection

logger = logging.getLogger(__name__)

SWAPS_QUERY = """
query GetAllSwaps($first: Int, $offset: Int, $destinationOrRefundAddress: String) {
    allSwapRequests(
        orderBy: [IS_IN_PROGRESS_DESC, SWAP_REQUEST_NATIVE_ID_DESC]
        offset: $offset
        first: $first
        filter: {
            or: [
                {destinationAddress: {includesInsensitive: $destinationOrRefundAddress}},
                {refundAddress: {includesInsensitive: $destinationOrRefundAddress}}
            ],
            isInternal: {equalTo: false}
        }
    ) {
        pageInfo {
            hasPreviousPage
            startCursor
            hasNextPage
            endCursor
        }
        edges {
            node {
                swapRequestNativeId
                sourceAsset
                destAsset
                inputAmount
                inputValueUsd
                outputAmount
                outputValueUsd
                egressAmount
                egressValueUsd
                destinationAddress
                refundAddress
                completedBlockTimestamp
                startedBlockTimestamp
                status
                isInProgress
            }
        }
        totalCount
    }
}
"""


def parse_connection(body: Any) -> SwapRequestConnection:
    """
    Extract ``data.allSwapRequests``.

    A body with GraphQL errors and no data raises ``ValueError`` so the
    request is retried like any other undecodable response.
    """
    if not isinstance(body, dict):
        raise ValueError("GraphQL response is not an object")
    data = body.get("data") or {}
    connection = data.get("allSwapRequests")
    if connection is None:
        raise ValueError(f"GraphQL response without allSwapRequests: {body.get('errors')}")
    return SwapRequestConnection.model_validate(connection)


class ChainflipClient(FeedClient):
    """Secondary feed: completed and in-progress Chainflip swap requests"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        gate: Optional[RequestGate] = None,
        **kwargs
    ):
        kwargs.setdefault("timeout", settings.CHAINFLIP_HTTP_TIMEOUT)
        kwargs.setdefault("max_retries", settings.CHAINFLIP_MAX_RETRIES)
        super().__init__(
            base_url=base_url or settings.CHAINFLIP_GRAPHQL_URL,
            source_name=DataSource.CHAINFLIP.value,
            gate=gate,
            headers={"Content-Type": "application/json"},
            **kwargs
        )

    async def fetch_swaps(
        self,
        offset: int = 0,
        first: Optional[int] = None,
        destination_address: Optional[str] = None,
    ) -> SwapRequestConnection:
        body = {
            "query": SWAPS_QUERY,
            "variables": {
                "first": first or settings.CHAINFLIP_PAGE_SIZE,
                "offset": offset,
                "destinationOrRefundAddress": destination_address,
            },
            "operationName": "GetAllSwaps",
        }
        connection = await self._request("POST", self.base_url, parse_connection, json_body=body)
        logger.debug(
            f"[chainflip] offset={offset}: {len(connection.edges)} swaps "
            f"(total {connection.totalCount})"
        )
        return connection
