import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import build_engine
from core.logging import setup_logging
from ingestion.tables import validate_registry
from models import Base  # registers every table on Base.metadata

logger = logging.getLogger(__name__)


async def init_database():
    validate_registry()

    logger.info("Connecting to database...")
    engine = build_engine()

    async with engine.begin() as conn:
        logger.info("Creating tables...")
        await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")

    await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
