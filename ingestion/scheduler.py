import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import settings
from core.database import get_session_factory
from core.logging import log_failure
from core.rate_limit import GateRegistry
from ingestion.extractors.midgard_client import ASSET_FILTERS
from ingestion.pending import PendingRegistry
from ingestion.runner import IngestionRunner
from ingestion.tables import validate_registry
from models.base import DataSource, Direction, PassType

logger = logging.getLogger(__name__)


class IngestionScheduler:
    """
    Drive every ingestion pass on its own schedule.

    One job per (pass, source). Jobs share the runner's gates and pending
    trackers but nothing else; a failing job is logged and simply runs
    again on its next tick.
    """

    def __init__(
        self,
        runner: Optional[IngestionRunner] = None,
        session_factory: Optional[async_sessionmaker] = None,
        sources: Optional[Iterable[DataSource]] = None,
    ):
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        if runner is None:
            runner = IngestionRunner.create(
                session_factory or get_session_factory(),
                gates=GateRegistry(settings.REQUEST_MIN_INTERVAL),
                pending=PendingRegistry(),
            )
        self.runner = runner
        self.sources: List[DataSource] = list(sources or ASSET_FILTERS)

    async def run_job(self, name: str, operation: Callable[..., Awaitable[Any]], *args):
        """Run one pass; failures are logged, never raised"""
        logger.info(f"Scheduler: starting {name}")
        try:
            stats = await operation(*args)
        except Exception as e:
            log_failure(logger, f"Scheduler: {name} failed", e)
            return None
        logger.info(f"Scheduler: {name} finished {stats}")
        return stats

    def _add(self, pass_type: PassType, trigger, operation, *args, suffix: str = ""):
        job_id = f"{pass_type.value}:{suffix}" if suffix else pass_type.value
        self.scheduler.add_job(
            self.run_job,
            trigger=trigger,
            args=[job_id, operation, *args],
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def register_jobs(self):
        for source in self.sources:
            self._add(
                PassType.LIVE_TAIL,
                IntervalTrigger(minutes=settings.LIVE_TAIL_INTERVAL_MINUTES),
                self.runner.live_tail, source,
                suffix=source.value,
            )
            self._add(
                PassType.RETRY,
                IntervalTrigger(minutes=settings.RETRY_INTERVAL_MINUTES),
                self.runner.retry_pending, source,
                suffix=source.value,
            )
            self._add(
                PassType.RECONCILE,
                CronTrigger(
                    hour=settings.RECONCILE_HOURS,
                    minute=settings.RECONCILE_MINUTE,
                    timezone=settings.RECONCILE_TIMEZONE,
                ),
                self.runner.reconcile, source,
                suffix=source.value,
            )
            if settings.BACKFILL_ON_STARTUP:
                for direction in settings.BACKFILL_DIRECTIONS:
                    direction = Direction(direction)
                    self._add(
                        PassType.BACKFILL,
                        DateTrigger(),
                        self.runner.backfill, source, direction,
                        suffix=f"{source.value}:{direction.value}",
                    )

        self._add(
            PassType.CHAINFLIP,
            IntervalTrigger(minutes=settings.CHAINFLIP_INTERVAL_MINUTES),
            self.runner.chainflip_incremental,
        )
        self._add(
            PassType.CLOSING_PRICE,
            CronTrigger(hour=settings.CLOSING_PRICE_HOUR, minute=settings.CLOSING_PRICE_MINUTE, timezone="UTC"),
            self.runner.closing_price,
        )

    def start(self):
        """Validate wiring and start the scheduler"""
        validate_registry()
        self.register_jobs()
        self.scheduler.start()
        logger.info(f"Ingestion scheduler started with {len(self.scheduler.get_jobs())} jobs")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Ingestion scheduler stopped")

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def pending_counts(self):
        return self.runner.pending.counts()
