"""
API endpoint tests
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio

from api.dependencies import get_db
from api.main import app
from conftest import BASE_TS, make_action
from ingestion.loaders.bulk_loader import BulkLoader
from ingestion.tables import get_table
from ingestion.transformers.swap_transformer import SwapTransformer
from models.base import DataSource


@pytest_asyncio.fixture
async def client(session_factory):
    """Async client bound to the app with the test database; startup hooks are not run"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.scheduler = None

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
    app.state.scheduler = None


@pytest_asyncio.fixture
async def seeded(session_factory):
    """Three native swaps an hour apart, on two different days"""
    transformer = SwapTransformer()
    records = [
        transformer.transform(make_action(tx_id="TX1", in_coin=("BTC.BTC", "100000000"), timestamp=BASE_TS)),
        transformer.transform(make_action(tx_id="TX2", in_coin=("ETH.ETH", "300000000"), timestamp=BASE_TS + 3600)),
        transformer.transform(make_action(tx_id="TX3", in_coin=("BTC.BTC", "200000000"), timestamp=BASE_TS + 86400)),
    ]
    async with session_factory() as session:
        await BulkLoader(session, get_table(DataSource.MIDGARD_NATIVE)).load_batch(records)
    return records


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["endpoints"]["swaps"] == "POST /swaps"


@pytest.mark.asyncio
async def test_health_without_scheduler(client):
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database_connected"] is True
    assert data["scheduler_running"] is False
    assert data["checkpoints"] == []
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_health_reports_checkpoints_and_pending(client):
    scheduler = MagicMock()
    scheduler.running = True
    scheduler.runner.checkpoint_snapshot.return_value = {"midgard_native:next": "c3"}
    scheduler.pending_counts.return_value = {"midgard_native": 2}
    app.state.scheduler = scheduler

    data = (await client.get("/health")).json()

    assert data["scheduler_running"] is True
    assert data["checkpoints"] == [{"source": "midgard_native", "direction": "next", "cursor": "c3"}]
    assert data["pending_transactions"] == {"midgard_native": 2}


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "abc123"})

    assert response.headers["X-Request-ID"] == "abc123"
    assert "X-API-Latency-ms" in response.headers


@pytest.mark.asyncio
async def test_swaps_default_order_newest_first(client, seeded):
    response = await client.post("/swaps", json={})

    assert response.status_code == 200
    data = response.json()
    assert [item["tx_id"] for item in data["items"]] == ["TX3", "TX2", "TX1"]
    assert data["count"] == 3
    assert data["page"] == 1


@pytest.mark.asyncio
async def test_swaps_sort_ascending_by_amount(client, seeded):
    response = await client.post("/swaps", json={"sort_by": "in_amount", "order": "asc"})

    assert [item["in_amount"] for item in response.json()["items"]] == [1.0, 2.0, 3.0]


@pytest.mark.asyncio
async def test_swaps_pagination(client, seeded):
    response = await client.post("/swaps", json={"sort_by": "timestamp", "order": "ASC", "page": 2, "limit": 2})

    data = response.json()
    assert [item["tx_id"] for item in data["items"]] == ["TX3"]
    assert data["limit"] == 2


@pytest.mark.asyncio
async def test_swaps_search_and_date_filter(client, seeded):
    by_id = (await client.post("/swaps", json={"search": "TX2"})).json()
    by_date = (await client.post("/swaps", json={"date": "2024-01-15"})).json()

    assert [item["tx_id"] for item in by_id["items"]] == ["TX2"]
    assert sorted(item["tx_id"] for item in by_date["items"]) == ["TX1", "TX2"]


@pytest.mark.asyncio
async def test_swaps_empty_table(client):
    response = await client.post("/swaps", json={"source": "midgard_trade"})

    assert response.status_code == 200
    assert response.json()["items"] == []


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"sort_by": "ingested_at"},
    {"order": "sideways"},
    {"page": 0},
    {"source": "chainflip"},
])
async def test_swaps_rejects_invalid_parameters(client, body):
    response = await client.post("/swaps", json=body)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_swaps_storage_failure_is_generic_400(client):
    broken = AsyncMock()
    broken.execute.side_effect = RuntimeError("connection reset")

    async def override_get_db():
        yield broken

    app.dependency_overrides[get_db] = override_get_db

    response = await client.post("/swaps", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Error Fetching Data"
    assert "connection reset" not in response.text
