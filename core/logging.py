"""
Logging configuration
"""

import logging
import sys
from typing import Optional

from core.config import settings


def setup_logging(level: Optional[str] = None):
    """Configure application logging"""

    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Set SQLAlchemy logging to WARNING to reduce noise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

    # Feed clients log their own requests
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler.executors.default").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {level_name} level")


def log_failure(logger: logging.Logger, message: str, error: Exception):
    """
    Log a failure with structured context when the error carries it.

    ETL exceptions expose ``to_dict()``; anything else is logged with its
    traceback since it was not anticipated.
    """
    to_dict = getattr(error, "to_dict", None)
    if callable(to_dict):
        logger.error(f"{message}: {error}", extra={"error_context": to_dict()})
    else:
        logger.exception(f"{message}: {error}")
