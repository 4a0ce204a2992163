"""
Database engine and session factories (SQLAlchemy asyncio).

The storage engine is an external collaborator: this module only builds
engines and sessions for it. One engine is shared by every ingestion pass
and by the read API.
"""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from core.config import settings
import logging

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def build_engine(database_url: Optional[str] = None, **kwargs) -> AsyncEngine:
    """Create an async engine; NullPool unless the caller overrides it."""
    kwargs.setdefault("poolclass", NullPool)
    return create_async_engine(
        database_url or settings.DATABASE_URL,
        echo=False,
        future=True,
        **kwargs
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


def get_engine() -> AsyncEngine:
    """Process-wide engine, created on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine()
        logger.info("Database engine created")
    return _engine


def get_session_factory() -> async_sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
    return _session_factory


async def ping(session: AsyncSession) -> bool:
    """Return True when the database answers a trivial query."""
    try:
        await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")
        return False


async def dispose_engine():
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
