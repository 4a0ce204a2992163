"""
FastAPI application initialization
"""

from fastapi import FastAPI
import logging

from api.middleware import RequestContextMiddleware
from api.routes import health, swaps
from core.config import settings
from core.database import dispose_engine
from core.logging import setup_logging
from ingestion.scheduler import IngestionScheduler

setup_logging()

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Swap History API",
    description="Incremental swap ingestion with a thin read API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

app.include_router(health.router)
app.include_router(swaps.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Swap History API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    app.state.scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = IngestionScheduler()
        scheduler.start()
        app.state.scheduler = scheduler


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Swap History API")
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.stop()
    await dispose_engine()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Swap History API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "swaps": "POST /swaps"
        }
    }
