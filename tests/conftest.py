"""
Pytest configuration and fixtures
"""

from typing import AsyncGenerator, Dict, List, Optional, Sequence, Tuple

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import build_engine, build_session_factory
from core.exceptions import ApiError
from core.rate_limit import RequestGate
from ingestion.checkpoint import CheckpointStore
from ingestion.pending import PendingRegistry
from ingestion.runner import IngestionRunner, MidgardFeed
from ingestion.tables import get_table
from ingestion.transformers.swap_transformer import SwapTransformer
from models.base import Base, DataSource, Direction
from schemas.swap import ActionsPage

# 2024-01-15 10:00:00 UTC
BASE_TS = 1705312800
NANOS = 1_000_000_000


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite engine; every test gets a fresh database"""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'swaps.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def no_wait_gate():
    return RequestGate(0)


# ============================================================================
# Raw payload builders
# ============================================================================

def make_leg(asset: str, amount: str, address: str = "", tx_id: Optional[str] = None) -> Dict:
    leg = {"address": address, "coins": [{"asset": asset, "amount": amount}]}
    if tx_id is not None:
        leg["txID"] = tx_id
    return leg


def make_action(
    tx_id: Optional[str] = "TX1",
    in_coin: Tuple[str, str] = ("BTC.BTC", "100000000"),
    outs: Sequence[Tuple[str, str]] = (("THOR.RUNE", "5000000000"),),
    status: str = "success",
    timestamp: int = BASE_TS,
) -> Dict:
    """One Midgard swap action; ``outs`` are listed in upstream order"""
    return {
        "date": str(timestamp * NANOS),
        "status": status,
        "pools": [in_coin[0]],
        "in": [make_leg(in_coin[0], in_coin[1], address="bc1qsender", tx_id=tx_id)],
        "out": [make_leg(asset, amount, address=f"addr-{i}") for i, (asset, amount) in enumerate(outs)],
        "type": "swap",
    }


def make_page(actions: List[Dict], next_token: str = "", prev_token: str = "") -> ActionsPage:
    return ActionsPage.model_validate(
        {"actions": actions, "meta": {"nextPageToken": next_token, "prevPageToken": prev_token}}
    )


@pytest.fixture
def raw_action():
    return make_action


# ============================================================================
# Fake feed
# ============================================================================

class FakeMidgardClient:
    """
    In-memory Midgard feed.

    Pages are addressed by cursor for either direction; the page returned
    for ``fromTimestamp`` is configured separately.
    """

    def __init__(
        self,
        pages: Optional[Dict[str, ActionsPage]] = None,
        timestamp_page: Optional[ActionsPage] = None,
        by_id: Optional[Dict[str, ActionsPage]] = None,
        fail_on: Sequence[str] = (),
    ):
        self.pages = pages or {}
        self.timestamp_page = timestamp_page or ActionsPage()
        self.by_id = by_id or {}
        self.fail_on = set(fail_on)
        self.calls: List[Tuple[str, object]] = []

    def _fail(self, key):
        if key in self.fail_on:
            raise ApiError("Request failed after 3 attempts", context={"cursor": key})

    async def fetch_page(self, cursor: str = "", direction: Direction = Direction.NEXT) -> ActionsPage:
        self.calls.append((direction.value, cursor))
        self._fail(cursor)
        return self.pages.get(cursor, ActionsPage())

    async def fetch_next(self, next_page_token: str = "") -> ActionsPage:
        return await self.fetch_page(next_page_token, Direction.NEXT)

    async def fetch_prev(self, prev_page_token: str) -> ActionsPage:
        return await self.fetch_page(prev_page_token, Direction.PREV)

    async def fetch_from_timestamp(self, timestamp: int) -> ActionsPage:
        self.calls.append(("from", timestamp))
        return self.timestamp_page

    async def fetch_by_id(self, tx_id: str) -> ActionsPage:
        self.calls.append(("id", tx_id))
        self._fail(tx_id)
        return self.by_id.get(tx_id, ActionsPage())


@pytest.fixture
def fake_client():
    return FakeMidgardClient


@pytest.fixture
def make_runner(session_factory, tmp_path):
    """Build a runner around a fake client for one Midgard source"""

    def factory(client, source: DataSource = DataSource.MIDGARD_NATIVE, flush_pages: int = 2, **kwargs):
        pending = PendingRegistry()
        feed = MidgardFeed(
            source=source,
            client=client,
            transformer=SwapTransformer(source),
            descriptor=get_table(source),
            tracker=pending.get(source),
            enricher=kwargs.pop("enricher", None),
        )
        return IngestionRunner(
            session_factory=session_factory,
            feeds={source: feed},
            checkpoints=CheckpointStore(tmp_path / "checkpoints"),
            pending=pending,
            flush_pages=flush_pages,
            **kwargs
        )

    return factory
