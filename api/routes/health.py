"""
Health check endpoint with database and ingestion status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from api.dependencies import get_db, get_scheduler
from core.database import ping
from schemas.api import CheckpointInfo, HealthCheckResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db), scheduler=Depends(get_scheduler)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Backfill checkpoint cursors
    - Pending transaction counts per source
    """
    db_connected = await ping(db)

    checkpoints = []
    pending = {}
    if scheduler is not None:
        try:
            for key, cursor in scheduler.runner.checkpoint_snapshot().items():
                source, direction = key.split(":", 1)
                checkpoints.append(CheckpointInfo(source=source, direction=direction, cursor=cursor))
        except Exception as e:
            logger.error(f"Failed to read checkpoints: {str(e)}")
        pending = scheduler.pending_counts()

    return HealthCheckResponse.build(
        database_connected=db_connected,
        scheduler_running=bool(scheduler is not None and scheduler.running),
        checkpoints=checkpoints,
        pending_transactions=pending,
    )
