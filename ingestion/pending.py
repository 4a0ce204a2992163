"""
Pending transaction tracker.

Swaps seen before finalisation are remembered by id, one tracker per data
source, and handed to the retry pass which re-resolves them by id.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Set

from models.base import DataSource

logger = logging.getLogger(__name__)


class PendingTracker:
    """
    Set of pending transaction ids for one data source.

    All mutations happen under the tracker's lock. ``drain`` takes a
    snapshot and clears the set in one step, so an id tracked while a retry
    pass is running lands in the fresh set instead of being lost.
    """

    def __init__(self, source: DataSource):
        self.source = source
        self._ids: Set[str] = set()
        self._lock = asyncio.Lock()

    async def track(self, tx_id: str):
        if not tx_id:
            return
        async with self._lock:
            self._ids.add(tx_id)

    async def track_many(self, tx_ids: Iterable[str]) -> int:
        """Track several ids; returns how many were new"""
        async with self._lock:
            before = len(self._ids)
            self._ids.update(tx_id for tx_id in tx_ids if tx_id)
            added = len(self._ids) - before
        if added:
            logger.debug(f"[{self.source.value}] tracking {added} new pending ids")
        return added

    async def drain(self) -> List[str]:
        """Snapshot and clear; the caller owns the returned ids"""
        async with self._lock:
            snapshot = sorted(self._ids)
            self._ids = set()
        return snapshot

    async def restore(self, tx_ids: Iterable[str]):
        """Put back ids a retry pass could not resolve"""
        await self.track_many(tx_ids)

    async def contains(self, tx_id: str) -> bool:
        async with self._lock:
            return tx_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)


class PendingRegistry:
    """One ``PendingTracker`` per data source, created on demand"""

    def __init__(self):
        self._trackers: Dict[DataSource, PendingTracker] = {}

    def get(self, source: DataSource) -> PendingTracker:
        if source not in self._trackers:
            self._trackers[source] = PendingTracker(source)
        return self._trackers[source]

    def counts(self) -> Dict[str, int]:
        return {source.value: len(tracker) for source, tracker in self._trackers.items()}
