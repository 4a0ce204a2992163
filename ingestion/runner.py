"""
Ingestion passes - walk a feed, transform each page, load the records.

Every pass is one bounded iteration: it starts from storage or a checkpoint,
walks pages until the feed runs dry or a known boundary is reached, and
returns run statistics. Errors that abort a pass propagate to the caller
(the scheduler logs them and tries again on the next tick):

- ``ApiError``: upstream unavailable after the retry budget
- ``DatabaseError``: the store rejected a whole batch
- ``FileError``: a checkpoint could not be persisted
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set
from zoneinfo import ZoneInfo
import logging
import time

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import settings
from core.exceptions import ApiError
from core.rate_limit import GateRegistry
from ingestion.checkpoint import CheckpointStore
from ingestion.enrichment import UsdEnricher
from ingestion.extractors.chainflip_client import ChainflipClient
from ingestion.extractors.coingecko_client import CoinGeckoClient
from ingestion.extractors.midgard_client import ASSET_FILTERS, MidgardClient
from ingestion.loaders.bulk_loader import BulkLoader
from ingestion.pending import PendingRegistry, PendingTracker
from ingestion.tables import TableDescriptor, get_table
from ingestion.transformers.chainflip_transformer import ChainflipTransformer
from ingestion.transformers.swap_transformer import SwapTransformer, TransformResult
from models.base import DataSource, Direction, RecordKind
from schemas.price import ClosingPriceRecord
from schemas.swap import ActionsPage, CanonicalSwapRecord

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400
NANOS_PER_SECOND = 1_000_000_000


@dataclass
class MidgardFeed:
    """Everything a pass needs for one Midgard source"""
    source: DataSource
    client: MidgardClient
    transformer: SwapTransformer
    descriptor: TableDescriptor
    tracker: PendingTracker
    enricher: Optional[UsdEnricher] = None


def _stats(**kwargs) -> Dict[str, Any]:
    stats = {"pages": 0, "records_loaded": 0, "records_failed": 0, "records_skipped": 0, "pending": 0}
    stats.update(kwargs)
    return stats


def _page_cursor(page: ActionsPage, direction: Direction) -> str:
    return page.meta.nextPageToken if direction == Direction.NEXT else page.meta.prevPageToken


async def latest_timestamp(session: AsyncSession, descriptor: TableDescriptor) -> Optional[int]:
    """Newest stored ``timestamp`` in the descriptor's table, None when empty"""
    result = await session.execute(select(func.max(descriptor.model.timestamp)))
    value = result.scalar_one_or_none()
    return int(value) if value is not None else None


class IngestionRunner:
    """
    Ingestion pass orchestrator.

    Responsibilities:
    - Live-tail, backfill, reconciliation and retry passes per Midgard source
    - Chainflip incremental pass and the daily closing price
    - Pending ids handed to the per-source tracker, never to storage
    - Checkpoints advanced only after the records before them are stored
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        feeds: Dict[DataSource, MidgardFeed],
        checkpoints: CheckpointStore,
        pending: PendingRegistry,
        chainflip_client: Optional[ChainflipClient] = None,
        price_client: Optional[CoinGeckoClient] = None,
        flush_pages: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.feeds = feeds
        self.checkpoints = checkpoints
        self.pending = pending
        self.chainflip_client = chainflip_client
        self.chainflip_transformer = ChainflipTransformer()
        self.price_client = price_client
        self.flush_pages = flush_pages or settings.BACKFILL_FLUSH_PAGES

    @classmethod
    def create(
        cls,
        session_factory: async_sessionmaker,
        gates: Optional[GateRegistry] = None,
        pending: Optional[PendingRegistry] = None,
        checkpoints: Optional[CheckpointStore] = None,
    ) -> "IngestionRunner":
        """Wire clients, transformers and trackers from settings"""
        gates = gates or GateRegistry(settings.REQUEST_MIN_INTERVAL)
        pending = pending or PendingRegistry()
        price_client = CoinGeckoClient(gate=gates.get(DataSource.COINGECKO.value))

        feeds = {}
        for source in ASSET_FILTERS:
            descriptor = get_table(source, RecordKind.SWAP)
            feeds[source] = MidgardFeed(
                source=source,
                # Both Midgard sources hit the same upstream
                client=MidgardClient(source, gate=gates.get("midgard")),
                transformer=SwapTransformer(source, settlement_asset=descriptor.settlement_asset),
                descriptor=descriptor,
                tracker=pending.get(source),
                enricher=UsdEnricher(price_client) if descriptor.requires_usd else None,
            )

        return cls(
            session_factory=session_factory,
            feeds=feeds,
            checkpoints=checkpoints or CheckpointStore(),
            pending=pending,
            chainflip_client=ChainflipClient(gate=gates.get(DataSource.CHAINFLIP.value)),
            price_client=price_client,
        )

    def feed(self, source: DataSource) -> MidgardFeed:
        if source not in self.feeds:
            raise ValueError(f"No Midgard feed configured for {source.value}")
        return self.feeds[source]

    # ------------------------------------------------------------------
    # Shared page handling
    # ------------------------------------------------------------------

    async def _prepare(self, feed: MidgardFeed, page: ActionsPage) -> TransformResult:
        """Transform a page, track its pending ids and enrich its records"""
        result = feed.transformer.transform_page(page.actions)
        if result.pending:
            await feed.tracker.track_many(p.tx_id for p in result.pending)
        if feed.enricher is not None and result.records:
            result.records = await feed.enricher.enrich_many(result.records)
        return result

    async def _load_page(
        self,
        session: AsyncSession,
        feed: MidgardFeed,
        page: ActionsPage,
        stats: Dict[str, Any],
        window: Optional[range] = None,
    ):
        result = await self._prepare(feed, page)
        records = result.records
        if window is not None:
            records = [r for r in records if r.timestamp in window]

        loaded = await BulkLoader(session, feed.descriptor).load_batch(records)
        stats["pages"] += 1
        stats["records_loaded"] += loaded.inserted
        stats["records_failed"] += loaded.failed
        stats["records_skipped"] += result.skipped
        stats["pending"] += len(result.pending)

    # ------------------------------------------------------------------
    # Live-tail
    # ------------------------------------------------------------------

    async def live_tail(self, source: DataSource) -> Dict[str, Any]:
        """
        Catch up from the newest stored swap to the present.

        Each page is loaded as soon as it arrives. The walk ends on an empty
        page, or when the feed stops handing out fresh cursors.
        """
        feed = self.feed(source)
        stats = _stats(source=source.value)

        async with self.session_factory() as session:
            start = await latest_timestamp(session, feed.descriptor)
            if start is None:
                start = int(time.time())
                logger.info(f"[{source.value}] live-tail: store empty, starting from now ({start})")
            stats["from_timestamp"] = start

            page = await feed.client.fetch_from_timestamp(start)
            seen: Set[str] = set()
            while not page.is_empty:
                await self._load_page(session, feed, page, stats)

                cursor = page.meta.prevPageToken
                if not cursor or cursor in seen:
                    break
                seen.add(cursor)
                page = await feed.client.fetch_prev(cursor)

        logger.info(
            f"[{source.value}] live-tail done: {stats['pages']} pages, "
            f"{stats['records_loaded']} loaded, {stats['pending']} pending"
        )
        return stats

    # ------------------------------------------------------------------
    # Backfill
    # ------------------------------------------------------------------

    async def backfill(self, source: DataSource, direction: Direction = Direction.NEXT) -> Dict[str, Any]:
        """
        Resumable full-history walk in one direction.

        The checkpoint holds the cursor of the first page whose records are
        not yet stored. Records are flushed every ``flush_pages`` pages and
        the checkpoint moves only after a flush succeeds, so a crash replays
        at most one batch of already-seen pages.

        Without a checkpoint, ``next`` starts at the newest page and ``prev``
        at ``BACKFILL_START_TIMESTAMP``.
        """
        feed = self.feed(source)
        checkpoint = self.checkpoints.cursor(source, direction)
        stats = _stats(source=source.value, direction=direction.value)

        cursor = checkpoint.read()
        stats["resumed_from"] = cursor or None
        if cursor:
            logger.info(f"[{source.value}] backfill {direction.value}: resuming at {cursor}")
            page = await feed.client.fetch_page(cursor, direction)
        elif direction == Direction.PREV:
            logger.info(f"[{source.value}] backfill prev: starting at {settings.BACKFILL_START_TIMESTAMP}")
            page = await feed.client.fetch_from_timestamp(settings.BACKFILL_START_TIMESTAMP)
        else:
            logger.info(f"[{source.value}] backfill next: starting at the newest page")
            page = await feed.client.fetch_page("", direction)

        batch: List[CanonicalSwapRecord] = []
        pages_in_batch = 0
        resume_at: Optional[str] = None
        seen: Set[str] = set()

        async with self.session_factory() as session:
            loader = BulkLoader(session, feed.descriptor)

            async def flush():
                nonlocal batch, pages_in_batch
                loaded = await loader.load_batch(batch)
                stats["records_loaded"] += loaded.inserted
                stats["records_failed"] += loaded.failed
                if resume_at:
                    checkpoint.write(resume_at)
                logger.info(
                    f"[{source.value}] backfill {direction.value}: flushed {len(batch)} records "
                    f"from {pages_in_batch} pages, checkpoint at {resume_at or '<unchanged>'}"
                )
                batch = []
                pages_in_batch = 0

            while not page.is_empty:
                result = await self._prepare(feed, page)
                batch.extend(result.records)
                pages_in_batch += 1
                stats["pages"] += 1
                stats["records_skipped"] += result.skipped
                stats["pending"] += len(result.pending)

                next_cursor = _page_cursor(page, direction)
                if next_cursor:
                    resume_at = next_cursor

                if pages_in_batch >= self.flush_pages:
                    await flush()

                if not next_cursor or next_cursor in seen:
                    break
                seen.add(next_cursor)
                page = await feed.client.fetch_page(next_cursor, direction)

            if pages_in_batch:
                await flush()

        stats["checkpoint"] = checkpoint.read()
        logger.info(
            f"[{source.value}] backfill {direction.value} done: {stats['pages']} pages, "
            f"{stats['records_loaded']} loaded"
        )
        return stats

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile_window(self, now: Optional[datetime] = None) -> range:
        """Epoch seconds of the current local day, midnight inclusive"""
        tz = ZoneInfo(settings.RECONCILE_TIMEZONE)
        local_now = (now or datetime.now(timezone.utc)).astimezone(tz)
        midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        start = int(midnight.timestamp())
        return range(start, start + SECONDS_PER_DAY)

    async def reconcile(self, source: DataSource, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Re-walk today's window to pick up swaps that finalised after the
        live-tail moved past them. Already-stored swaps are no-ops.
        """
        feed = self.feed(source)
        window = self.reconcile_window(now)
        stats = _stats(source=source.value, window_start=window.start, window_end=window.stop)

        async with self.session_factory() as session:
            page = await feed.client.fetch_from_timestamp(window.start)
            seen: Set[str] = set()
            while not page.is_empty:
                await self._load_page(session, feed, page, stats, window=window)

                if self._past_window(page, window):
                    break
                cursor = page.meta.prevPageToken
                if not cursor or cursor in seen:
                    break
                seen.add(cursor)
                page = await feed.client.fetch_prev(cursor)

        logger.info(
            f"[{source.value}] reconcile done: {stats['pages']} pages, "
            f"{stats['records_loaded']} loaded"
        )
        return stats

    @staticmethod
    def _past_window(page: ActionsPage, window: range) -> bool:
        """True when every action on the page is at or after the window end"""
        seconds = []
        for action in page.actions:
            try:
                seconds.append(int(str(action.get("date"))) // NANOS_PER_SECOND)
            except (TypeError, ValueError):
                continue
        return bool(seconds) and min(seconds) >= window.stop

    # ------------------------------------------------------------------
    # Pending retry
    # ------------------------------------------------------------------

    async def retry_pending(self, source: DataSource) -> Dict[str, Any]:
        """
        Re-resolve every tracked pending id once.

        Finalised swaps are inserted; ids still pending or unreachable go
        back to the tracker. An id the feed no longer knows is dropped.
        """
        feed = self.feed(source)
        tx_ids = await feed.tracker.drain()
        stats = {"source": source.value, "attempted": len(tx_ids), "resolved": 0, "still_pending": 0, "dropped": 0}
        if not tx_ids:
            return stats

        logger.info(f"[{source.value}] retrying {len(tx_ids)} pending transactions")
        unresolved: List[str] = []
        done = 0

        try:
            async with self.session_factory() as session:
                loader = BulkLoader(session, feed.descriptor)
                for tx_id in tx_ids:
                    try:
                        page = await feed.client.fetch_by_id(tx_id)
                    except ApiError as e:
                        logger.warning(f"[{source.value}] pending {tx_id} not re-fetched: {e.message}")
                        unresolved.append(tx_id)
                        done += 1
                        continue

                    if page.is_empty:
                        logger.warning(f"[{source.value}] pending {tx_id} unknown upstream, dropping")
                        stats["dropped"] += 1
                        done += 1
                        continue

                    result = feed.transformer.transform_page(page.actions)
                    unresolved.extend(p.tx_id for p in result.pending)
                    stats["still_pending"] += len(result.pending)

                    records = result.records
                    if feed.enricher is not None and records:
                        records = await feed.enricher.enrich_many(records)
                    for record in records:
                        if await loader.insert_one(record):
                            stats["resolved"] += 1
                    done += 1
        finally:
            # Ids not reached before a failure stay tracked
            await feed.tracker.restore(unresolved + tx_ids[done:])

        logger.info(
            f"[{source.value}] retry done: {stats['resolved']} resolved, "
            f"{stats['still_pending']} still pending, {stats['dropped']} dropped"
        )
        return stats

    # ------------------------------------------------------------------
    # Chainflip
    # ------------------------------------------------------------------

    async def chainflip_incremental(self) -> Dict[str, Any]:
        """
        Page through completed Chainflip swaps newest first until reaching
        one older than the newest stored swap. Swaps in that newest second
        are loaded again and overwritten in place.
        """
        if self.chainflip_client is None:
            raise ValueError("Chainflip client not configured")

        descriptor = get_table(DataSource.CHAINFLIP, RecordKind.SWAP)
        stats = _stats(source=DataSource.CHAINFLIP.value)

        async with self.session_factory() as session:
            latest = await latest_timestamp(session, descriptor) or 0
            loader = BulkLoader(session, descriptor)
            offset = 0

            while True:
                connection = await self.chainflip_client.fetch_swaps(offset=offset)
                nodes = connection.nodes
                if not nodes:
                    break

                result = self.chainflip_transformer.transform_page(nodes)
                # The newest stored second is re-read: siblings settled in the
                # same block may have been in progress on the previous run
                fresh = [r for r in result.records if r.timestamp >= latest]
                loaded = await loader.load_batch(fresh)

                stats["pages"] += 1
                stats["records_loaded"] += loaded.inserted
                stats["records_failed"] += loaded.failed
                stats["records_skipped"] += result.skipped

                if len(fresh) < len(result.records):
                    break
                if not connection.pageInfo.hasNextPage:
                    break
                offset += len(nodes)

        logger.info(f"[chainflip] incremental done: {stats['pages']} pages, {stats['records_loaded']} loaded")
        return stats

    # ------------------------------------------------------------------
    # Closing price
    # ------------------------------------------------------------------

    async def closing_price(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Store yesterday's (UTC) closing price of the reference coin"""
        if self.price_client is None:
            raise ValueError("Price client not configured")

        day = (now or datetime.now(timezone.utc)).astimezone(timezone.utc).date() - timedelta(days=1)
        coin_id = settings.CLOSING_PRICE_COIN
        price = await self.price_client.fetch_usd_price(coin_id, day)
        record = ClosingPriceRecord(date=day, coin_id=coin_id, closing_price_usd=price)

        descriptor = get_table(DataSource.COINGECKO, RecordKind.CLOSING_PRICE)
        async with self.session_factory() as session:
            stored = await BulkLoader(session, descriptor).insert_one(record)

        logger.info(f"Closing price {coin_id} {day}: {price} USD")
        return {"date": day.isoformat(), "coin_id": coin_id, "closing_price_usd": price, "stored": stored}

    def checkpoint_snapshot(self) -> Dict[str, str]:
        return self.checkpoints.snapshot()
