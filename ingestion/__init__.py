"""
Incremental swap ingestion pipeline.

Modules:
    base: Feed client base class (bounded retry, request gate)
    pending: Per-source pending transaction trackers
    checkpoint: File-backed pagination cursors
    tables: (source, record kind) -> table descriptor registry
    enrichment: USD enrichment of canonical records
    runner: Live-tail, backfill, reconciliation, retry, Chainflip and
        closing price passes
    scheduler: APScheduler integration driving the passes

Subpackages:
    extractors: Midgard, Chainflip and CoinGecko clients
    transformers: Raw payload to canonical record mapping
    loaders: Conflict-tolerant bulk loader

Architecture:
    Scheduler triggers a pass -> the pass fetches a page -> the transformer
    maps it -> the loader stores records and the tracker keeps pending ids
    -> the checkpoint records progress -> repeat until the feed runs dry.

    Record-level errors never escalate; page or batch level errors abort
    only the current pass.

Usage:
    from core.database import get_session_factory
    from ingestion.runner import IngestionRunner
    from models.base import DataSource

    runner = IngestionRunner.create(get_session_factory())
    stats = await runner.live_tail(DataSource.MIDGARD_NATIVE)
"""

__all__ = [
    "IngestionRunner",
    "IngestionScheduler",
    "MidgardClient",
    "ChainflipClient",
    "CoinGeckoClient",
    "SwapTransformer",
    "ChainflipTransformer",
    "BulkLoader",
    "PendingTracker",
    "CheckpointStore",
]
