"""
Run one ingestion pass once, with the same wiring as the scheduler.

    python scripts/run_ingestion.py live_tail --source midgard_native
    python scripts/run_ingestion.py backfill --source midgard_trade --direction prev
    python scripts/run_ingestion.py chainflip
"""

import argparse
import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import dispose_engine, get_session_factory
from core.exceptions import ETLException
from core.logging import log_failure, setup_logging
from ingestion.extractors.midgard_client import ASSET_FILTERS
from ingestion.runner import IngestionRunner
from ingestion.tables import validate_registry
from models.base import DataSource, Direction, PassType

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run one ingestion pass")
    parser.add_argument("pass_type", choices=[p.value for p in PassType])
    parser.add_argument(
        "--source",
        choices=[s.value for s in ASSET_FILTERS],
        action="append",
        help="Midgard source (repeatable, default: all)",
    )
    parser.add_argument("--direction", choices=[d.value for d in Direction], default=Direction.NEXT.value)
    return parser.parse_args(argv)


async def run_pass(runner: IngestionRunner, pass_type: PassType, sources, direction: Direction):
    if pass_type == PassType.CHAINFLIP:
        return [await runner.chainflip_incremental()]
    if pass_type == PassType.CLOSING_PRICE:
        return [await runner.closing_price()]

    results = []
    for source in sources:
        if pass_type == PassType.LIVE_TAIL:
            results.append(await runner.live_tail(source))
        elif pass_type == PassType.BACKFILL:
            results.append(await runner.backfill(source, direction))
        elif pass_type == PassType.RECONCILE:
            results.append(await runner.reconcile(source))
        elif pass_type == PassType.RETRY:
            results.append(await runner.retry_pending(source))
    return results


async def main(argv=None) -> int:
    args = parse_args(argv)
    pass_type = PassType(args.pass_type)
    sources = [DataSource(s) for s in args.source] if args.source else list(ASSET_FILTERS)

    validate_registry()
    runner = IngestionRunner.create(get_session_factory())

    try:
        for stats in await run_pass(runner, pass_type, sources, Direction(args.direction)):
            logger.info(f"{pass_type.value}: {stats}")
        return 0
    except ETLException as e:
        log_failure(logger, f"{pass_type.value} failed", e)
        return 1
    finally:
        await dispose_engine()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main()))
