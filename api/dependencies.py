"""
FastAPI dependencies
"""

from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for one request"""
    async with get_session_factory()() as session:
        yield session


def get_scheduler(request: Request) -> Optional[object]:
    """The ingestion scheduler attached at startup, if any"""
    return getattr(request.app.state, "scheduler", None)
