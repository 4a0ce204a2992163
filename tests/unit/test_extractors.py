"""
Unit tests for feed clients (HTTP mocked with httpx.MockTransport)
"""

import json
from datetime import date

import httpx
import pytest

from core.exceptions import ApiError, PriceFetchError
from core.rate_limit import RequestGate
from ingestion.extractors.chainflip_client import ChainflipClient
from ingestion.extractors.coingecko_client import CoinGeckoClient, symbol_from_asset
from ingestion.extractors.midgard_client import MidgardClient
from models.base import DataSource, Direction

ACTIONS_BODY = {
    "actions": [{"date": "1705312800000000000", "status": "success", "in": [], "out": []}],
    "meta": {"nextPageToken": "older-1", "prevPageToken": "newer-1"},
}


def transport_from(responses, seen):
    """Serve ``responses`` in order, recording each request"""
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    return httpx.MockTransport(handler)


def midgard(source=DataSource.MIDGARD_NATIVE, responses=(), seen=None, max_retries=3):
    seen = seen if seen is not None else []
    return MidgardClient(
        source,
        base_url="https://midgard.test/actions",
        gate=RequestGate(0),
        retry_delay=0,
        max_retries=max_retries,
        transport=transport_from(responses, seen),
    )


class TestMidgardClient:

    @pytest.mark.asyncio
    async def test_fetch_next_page(self):
        seen = []
        client = midgard(responses=[httpx.Response(200, json=ACTIONS_BODY)], seen=seen)

        page = await client.fetch_next("cursor-9")

        assert len(page.actions) == 1
        assert page.meta.nextPageToken == "older-1"
        assert page.meta.prevPageToken == "newer-1"
        params = seen[0].url.params
        assert params["type"] == "swap"
        assert params["asset"] == "notrade"
        assert params["nextPageToken"] == "cursor-9"

    @pytest.mark.asyncio
    async def test_empty_cursor_is_not_sent(self):
        seen = []
        client = midgard(DataSource.MIDGARD_TRADE, responses=[httpx.Response(200, json=ACTIONS_BODY)], seen=seen)

        await client.fetch_page("", Direction.NEXT)

        params = seen[0].url.params
        assert params["asset"] == "trade"
        assert "nextPageToken" not in params

    @pytest.mark.asyncio
    async def test_prev_timestamp_and_id_params(self):
        seen = []
        client = midgard(responses=[httpx.Response(200, json=ACTIONS_BODY)], seen=seen)

        await client.fetch_prev("newer-1")
        await client.fetch_from_timestamp(1700357476)
        await client.fetch_by_id("ABC123")

        assert seen[0].url.params["prevPageToken"] == "newer-1"
        assert seen[1].url.params["fromTimestamp"] == "1700357476"
        assert seen[2].url.params["txid"] == "ABC123"

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self):
        seen = []
        client = midgard(
            responses=[
                httpx.ConnectError("connection refused"),
                httpx.Response(503, text="busy"),
                httpx.Response(200, json=ACTIONS_BODY),
            ],
            seen=seen,
        )

        page = await client.fetch_next()

        assert len(seen) == 3
        assert not page.is_empty

    @pytest.mark.asyncio
    async def test_undecodable_body_is_retried(self):
        seen = []
        client = midgard(
            responses=[httpx.Response(200, text="<html>oops</html>"), httpx.Response(200, json=ACTIONS_BODY)],
            seen=seen,
        )

        page = await client.fetch_next()

        assert len(seen) == 2
        assert len(page.actions) == 1

    @pytest.mark.asyncio
    async def test_exhausted_budget_raises_api_error(self):
        seen = []
        client = midgard(responses=[httpx.Response(502, text="bad gateway")], seen=seen, max_retries=3)

        with pytest.raises(ApiError) as exc_info:
            await client.fetch_next()

        assert len(seen) == 3
        assert exc_info.value.context["attempts"] == 3
        assert exc_info.value.context["status_code"] == 502

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        seen = []
        client = midgard(responses=[httpx.Response(400, text="bad token")], seen=seen)

        with pytest.raises(ApiError):
            await client.fetch_next("garbage")

        assert len(seen) == 1

    def test_rejects_non_midgard_source(self):
        with pytest.raises(ValueError):
            MidgardClient(DataSource.CHAINFLIP)


CHAINFLIP_BODY = {
    "data": {
        "allSwapRequests": {
            "pageInfo": {"hasNextPage": True, "hasPreviousPage": False},
            "edges": [
                {"node": {"swapRequestNativeId": "7", "sourceAsset": "Btc", "destAsset": "Eth", "status": "SUCCESS"}},
            ],
            "totalCount": 120,
        }
    }
}


class TestChainflipClient:

    @pytest.mark.asyncio
    async def test_fetch_swaps_posts_graphql(self):
        seen = []
        client = ChainflipClient(
            base_url="https://chainflip.test/graphql",
            gate=RequestGate(0),
            retry_delay=0,
            transport=transport_from([httpx.Response(200, json=CHAINFLIP_BODY)], seen),
        )

        connection = await client.fetch_swaps(offset=30, first=30)

        assert connection.totalCount == 120
        assert connection.pageInfo.hasNextPage is True
        assert connection.nodes[0].swapRequestNativeId == "7"
        body = json.loads(seen[0].content)
        assert seen[0].method == "POST"
        assert body["operationName"] == "GetAllSwaps"
        assert body["variables"]["offset"] == 30
        assert body["variables"]["first"] == 30

    @pytest.mark.asyncio
    async def test_graphql_errors_count_as_failures(self):
        seen = []
        client = ChainflipClient(
            base_url="https://chainflip.test/graphql",
            gate=RequestGate(0),
            retry_delay=0,
            max_retries=2,
            transport=transport_from([httpx.Response(200, json={"errors": [{"message": "boom"}]})], seen),
        )

        with pytest.raises(ApiError):
            await client.fetch_swaps()

        assert len(seen) == 2


def coingecko(responses, seen, api_key=None):
    return CoinGeckoClient(
        base_url="https://coingecko.test/api/v3",
        api_key=api_key,
        gate=RequestGate(0),
        retry_delay=0,
        max_retries=1,
        transport=transport_from(responses, seen),
    )


class TestCoinGeckoClient:

    def test_symbol_from_asset(self):
        assert symbol_from_asset("BTC.BTC") == "BTC"
        assert symbol_from_asset("ETH.USDC-0XA0B86991") == "USDC"
        assert symbol_from_asset("BTC~BTC") == "BTC"
        assert symbol_from_asset("THOR.RUNE") == "RUNE"

    @pytest.mark.asyncio
    async def test_price_is_fetched_once_per_day(self):
        seen = []
        body = {"id": "bitcoin", "market_data": {"current_price": {"usd": 42000.0}}}
        client = coingecko([httpx.Response(200, json=body)], seen, api_key="demo-key")

        first = await client.get_usd_price("BTC.BTC", date(2024, 1, 15))
        second = await client.get_usd_price("BTC~BTC", date(2024, 1, 15))

        assert first == second == 42000.0
        assert len(seen) == 1
        assert seen[0].url.path.endswith("/coins/bitcoin/history")
        assert seen[0].url.params["date"] == "15-01-2024"
        assert seen[0].headers["x-cg-demo-api-key"] == "demo-key"

    @pytest.mark.asyncio
    async def test_unknown_symbol_is_searched(self):
        seen = []
        client = coingecko(
            [
                httpx.Response(200, json={"coins": [{"id": "some-coin", "symbol": "XYZ"}]}),
                httpx.Response(200, json={"id": "some-coin", "market_data": {"current_price": {"usd": 1.5}}}),
            ],
            seen,
        )

        assert await client.get_usd_price("XYZ.XYZ", date(2024, 1, 15)) == 1.5
        assert seen[0].url.params["query"] == "XYZ"

    @pytest.mark.asyncio
    async def test_missing_price_raises(self):
        client = coingecko([httpx.Response(200, json={"id": "bitcoin"})], [])

        with pytest.raises(PriceFetchError):
            await client.get_usd_price("BTC.BTC", date(2024, 1, 15))

    @pytest.mark.asyncio
    async def test_feed_failure_becomes_price_fetch_error(self):
        client = coingecko([httpx.Response(500, text="down")], [])

        with pytest.raises(PriceFetchError) as exc_info:
            await client.get_usd_price("BTC.BTC", date(2024, 1, 15))

        assert isinstance(exc_info.value.original_exception, ApiError)
